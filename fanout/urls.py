from django.urls import path
from . import views
from .sse import sse_subscribe

app_name = "fanout"

urlpatterns = [
    path("subscribe", sse_subscribe, name="subscribe"),
    path("send-message", views.send_message, name="send_message"),
]
