from django.urls import path
from . import views

app_name = "chat"

urlpatterns = [
    path("test-api", views.test_api, name="test_api"),

    # Chat
    path("chat", views.chat, name="chat"),
    path("chat/<str:chat_id>", views.chat_detail, name="chat_detail"),

    # Sessions
    path("chat-history", views.chat_history, name="chat_history"),
    path("delete-chat", views.delete_chat, name="delete_chat"),

    # Feedback
    path("rate-response", views.rate_response, name="rate_response"),
]
