"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.rescue_consumer import RescueConsumer

websocket_urlpatterns = [
    # Rescue notifications endpoint (location rooms + report events)
    # URL: ws://localhost:8000/ws/rescue/?token=<access>
    re_path(
        r"ws/rescue/$",
        RescueConsumer.as_asgi(),
        name="rescue-ws"
    ),
]
