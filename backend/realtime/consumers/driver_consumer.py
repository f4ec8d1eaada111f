"""Driver WebSocket consumer streaming course notifications and chat messages."""

import logging

from channels.db import database_sync_to_async

from .base import BaseConsumer
from realtime.notifications import driver_group

logger = logging.getLogger(__name__)


class DriverConsumer(BaseConsumer):
    """
    WebSocket consumer for drivers.

    The socket is receive-only apart from ping: location samples go through
    POST /api/driver/location/. Handles the notification_created and
    chat_message_created group events for this driver.
    """

    async def authorize(self) -> bool:
        if self.role != "driver":
            return False
        self.driver_id = await self._get_driver_id()
        return self.driver_id is not None

    async def on_connect(self):
        """Join this driver's topic."""
        self.driver_group = driver_group(self.driver_id)
        await self._join_group(self.driver_group)

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "driver_id": self.driver_id,
            "role": self.role,
        })

    # ---------------------- Group Event Handlers ----------------------

    async def notification_created(self, event):
        """A notification row was inserted for this driver."""
        await self.send_json({
            "type": "notification",
            "event_id": event.get("event_id"),
            "notification": event.get("notification", {}),
        })

    async def chat_message_created(self, event):
        """A chat message was posted on one of this driver's courses."""
        await self.send_json({
            "type": "chat_message",
            "event_id": event.get("event_id"),
            "message": event.get("message", {}),
        })

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _get_driver_id(self):
        from drivers.models import Driver
        return Driver.objects.filter(user_id=self.user_id).values_list("id", flat=True).first()
