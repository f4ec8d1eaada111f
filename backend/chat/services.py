"""
Course chat between the assigned driver and dispatch.

Drivers only reach the chat of a course they hold; dispatch-side roles reach
any course. Sending marks the message read for the sender's own side.
"""

import logging
from typing import List, Tuple

from chat.models import ChatMessage
from common.exceptions import AuthorizationError, NotFoundError
from courses.models import Course
from realtime.notifications import publish_chat_message

logger = logging.getLogger(__name__)


def _resolve_side(user, course_id: int) -> Tuple[str, Course]:
    """Return the caller's side ("driver" / "dispatcher") and the course."""
    if user is None or not getattr(user, "is_authenticated", False):
        raise AuthorizationError("Authentication required")

    try:
        course = Course.objects.select_related("driver").get(id=course_id)
    except Course.DoesNotExist:
        raise NotFoundError(f"Course {course_id} not found")

    if getattr(user, "is_dispatcher", False):
        return "dispatcher", course

    if getattr(user, "role", None) == "driver":
        driver = getattr(user, "driver", None)
        if driver is not None and course.driver_id == driver.id:
            return "driver", course

    raise AuthorizationError("You cannot access the chat for this course")


def get_messages(user, course_id: int) -> List[ChatMessage]:
    _resolve_side(user, course_id)
    return list(ChatMessage.objects.filter(course_id=course_id))


def send_message(user, course_id: int, content: str) -> ChatMessage:
    side, course = _resolve_side(user, course_id)

    message = ChatMessage.objects.create(
        course=course,
        driver_id=course.driver_id,
        sender_role=side,
        sender_user=user,
        content=content.strip(),
        read_by_driver=(side == "driver"),
        read_by_fleet=(side == "dispatcher"),
    )

    if side == "dispatcher" and course.driver_id:
        try:
            publish_chat_message(message)
        except Exception:
            logger.exception("Failed to publish chat message %s", message.id)
        _record_inbox_entry(course, message)

    return message


def mark_read(user, course_id: int) -> int:
    """Mark the other side's messages read for the caller's side."""
    side, course = _resolve_side(user, course_id)
    qs = ChatMessage.objects.filter(course=course).exclude(sender_role=side)

    if side == "driver":
        return qs.filter(read_by_driver=False).update(read_by_driver=True)
    return qs.filter(read_by_fleet=False).update(read_by_fleet=True)


def _record_inbox_entry(course: Course, message: ChatMessage) -> None:
    # The live alert comes from the chat event itself, so the inbox row is not pushed
    from notifications.payloads import ChatPayload
    from notifications.services import create_notification

    try:
        create_notification(
            ChatPayload(course_id=course.id, message_id=message.id, sender_role=message.sender_role),
            title="New message from dispatch",
            message=message.content[:200],
            driver=course.driver,
            course=course,
            publish=False,
        )
    except Exception:
        logger.exception("Failed to record chat notification for message %s", message.id)
