"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.driver_consumer import DriverConsumer

websocket_urlpatterns = [
    # Per-driver notification and chat stream
    # URL: ws://localhost:8000/ws/driver/?token=<access>
    re_path(
        r"ws/driver/$",
        DriverConsumer.as_asgi(),
        name="driver-ws"
    ),
]
