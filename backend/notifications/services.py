"""
Notification inbox operations.

Notification side effects are best-effort: callers that create notifications
as part of a course mutation wrap them so a failure here never undoes the
mutation itself.
"""

import logging
from typing import Optional

from django.utils import timezone

from notifications.models import Notification
from notifications.payloads import DriverLoginPayload, NotificationPayload
from realtime.notifications import publish_notification
from common.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def create_notification(
    payload: NotificationPayload,
    title: str,
    message: str = "",
    driver=None,
    course=None,
    publish: bool = True,
) -> Notification:
    """
    Insert one notification row from a typed payload.

    Rows addressed to a driver are pushed to that driver's realtime topic
    after insert unless ``publish`` is False.
    """
    notification = Notification.objects.create(
        driver=driver,
        course=course,
        type=payload.type,
        title=title,
        message=message,
        data=payload.to_data(),
    )

    if publish and driver is not None:
        try:
            publish_notification(notification)
        except Exception:
            logger.exception("Failed to publish notification %s", notification.id)

    return notification


def notify_driver_login(driver) -> Optional[Notification]:
    """Record a dispatcher-side broadcast that a driver signed in."""
    now = timezone.now()
    name = driver.name or driver.user.username
    try:
        return create_notification(
            DriverLoginPayload(
                driver_id=driver.id,
                driver_name=name,
                login_at=now.isoformat(),
            ),
            title="Driver logged in",
            message=f"{name} logged in",
        )
    except Exception:
        logger.exception("Failed to record login for driver %s", driver.id)
        return None


def get_driver_notifications(driver, unread_only: bool = False):
    qs = Notification.objects.filter(driver=driver).select_related("course")
    if unread_only:
        qs = qs.filter(read=False)
    return qs


def mark_read(driver, notification_id: int) -> Notification:
    """
    Mark a single notification read.

    Raises:
        NotFoundError: If the notification does not exist or belongs to someone else
    """
    try:
        notification = Notification.objects.get(id=notification_id, driver=driver)
    except Notification.DoesNotExist:
        raise NotFoundError("Notification not found")

    if not notification.read:
        notification.read = True
        notification.save(update_fields=["read"])
    return notification


def mark_all_read(driver) -> int:
    """Mark every unread notification for the driver read; returns the count."""
    return Notification.objects.filter(driver=driver, read=False).update(read=True)
