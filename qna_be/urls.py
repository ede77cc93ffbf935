from django.urls import path, include

urlpatterns = [
    path("", include("chat.urls")),
    path("realtime/", include("fanout.urls")),
    path("", include("django_prometheus.urls")),
]
