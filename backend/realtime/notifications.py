"""
Helpers for pushing row-insert events to connected drivers.

Every driver socket joins ``driver_<driver_id>``; the helpers here send one
group message per inserted notification or chat message. Each message
carries an ``event_id`` that is unique per row so the client can drop
redeliveries.
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def driver_group(driver_id: int) -> str:
    return f"driver_{driver_id}"


def _send_to_driver(driver_id: int | None, payload: Dict[str, Any]) -> bool:
    if not driver_id:
        return False

    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False

    logger.debug("WS -> driver_%s: %s", driver_id, payload.get("event_id"))
    async_to_sync(channel_layer.group_send)(driver_group(driver_id), payload)
    return True


def serialize_notification(notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "course_id": notification.course_id,
        "read": notification.read,
        "data": notification.data or {},
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


def serialize_chat_message(message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "course_id": message.course_id,
        "driver_id": message.driver_id,
        "sender_role": message.sender_role,
        "content": message.content,
        "read_by_driver": message.read_by_driver,
        "read_by_fleet": message.read_by_fleet,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


def publish_notification(notification) -> bool:
    """
    Push a freshly inserted notification to its driver.

    Broadcast rows (no driver) have no driver topic and are skipped.

    Returns:
        True if a group message was sent, False otherwise
    """
    return _send_to_driver(notification.driver_id, {
        "type": "notification_created",
        "event_id": f"notification:{notification.id}",
        "notification": serialize_notification(notification),
    })


def publish_chat_message(message) -> bool:
    """Push a freshly inserted chat message to the course driver."""
    return _send_to_driver(message.driver_id, {
        "type": "chat_message_created",
        "event_id": f"chat:{message.id}",
        "message": serialize_chat_message(message),
    })
