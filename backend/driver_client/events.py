"""
Typed realtime events received on the driver websocket.

The socket carries ``{"type": "notification" | "chat_message", "event_id", ...}``
frames; anything else (connection_established, pong, error) is not an event.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    kind: ClassVar[str] = "notification"

    event_id: str
    notification_id: int
    notification_type: str
    title: str
    message: str = ""
    course_id: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ChatMessageEvent:
    kind: ClassVar[str] = "chat_message"

    event_id: str
    message_id: int
    course_id: int
    sender_role: str
    content: str = ""


RealtimeEvent = Union[NotificationEvent, ChatMessageEvent]


def _parse_notification(raw: Mapping[str, Any]) -> NotificationEvent:
    body = raw["notification"]
    return NotificationEvent(
        event_id=raw.get("event_id") or f"notification:{body['id']}",
        notification_id=body["id"],
        notification_type=body["type"],
        title=body.get("title", ""),
        message=body.get("message", ""),
        course_id=body.get("course_id"),
        data=dict(body.get("data") or {}),
    )


def _parse_chat_message(raw: Mapping[str, Any]) -> ChatMessageEvent:
    body = raw["message"]
    return ChatMessageEvent(
        event_id=raw.get("event_id") or f"chat:{body['id']}",
        message_id=body["id"],
        course_id=body["course_id"],
        sender_role=body["sender_role"],
        content=body.get("content", ""),
    )


_PARSERS = {
    NotificationEvent.kind: _parse_notification,
    ChatMessageEvent.kind: _parse_chat_message,
}


def parse_event(raw: Mapping[str, Any]) -> Optional[RealtimeEvent]:
    """Build a typed event from a websocket frame, or None if it is not one."""
    parser = _PARSERS.get(raw.get("type"))
    if parser is None:
        return None
    try:
        return parser(raw)
    except (KeyError, TypeError) as exc:
        logger.warning("Dropping malformed %s frame: %s", raw.get("type"), exc)
        return None
