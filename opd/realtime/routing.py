from django.urls import path

from .consumers import QueueStreamConsumer

websocket_urlpatterns = [
    path("ws/queue/<int:doctor_id>/", QueueStreamConsumer.as_asgi()),
]
