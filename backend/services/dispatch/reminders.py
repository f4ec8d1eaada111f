"""
Time-driven course notifications.

- check_course_notifications: periodic sweep for unlock and reminder notices
- check_late_pickup_alerts: run after each driver location update
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from django.conf import settings
from django.utils import timezone

from common.utils import get_unlock_time, START_UNLOCK_WINDOW
from courses.models import Course
from notifications.models import Notification
from notifications.payloads import (
    CourseReminderPayload,
    CourseUnlockedPayload,
    LateAlertPayload,
)
from notifications.services import create_notification

logger = logging.getLogger(__name__)

# (lower, upper] bounds in minutes until pickup that raise a late alert
LATE_ALERT_WINDOWS = {
    "accepted": (-5, 10),
    "in_progress": (-30, 5),
}


def _minutes(name: str, default: int) -> timedelta:
    return timedelta(minutes=getattr(settings, name, default))


@dataclass
class SweepResult:
    unlocked: int = 0
    reminders: int = 0


def check_course_notifications(now: Optional[datetime] = None) -> SweepResult:
    """
    Send ``course_unlocked`` once per accepted course when it becomes
    startable, and ``course_reminder`` when a course is still not started
    well after unlocking.
    """
    now = now or timezone.now()
    reminder_delay = _minutes("COURSE_REMINDER_DELAY_MINUTES", 15)
    reminder_interval = _minutes("COURSE_REMINDER_INTERVAL_MINUTES", 5)
    result = SweepResult()

    # Unlocked and pickup still ahead
    unlocked = Course.objects.select_related("driver").filter(
        status="accepted",
        driver__isnull=False,
        pickup_date__gt=now,
        pickup_date__lte=now + START_UNLOCK_WINDOW,
    )
    for course in unlocked:
        if Notification.objects.filter(course=course, type=CourseUnlockedPayload.type).exists():
            continue
        try:
            create_notification(
                CourseUnlockedPayload(course_id=course.id, pickup_date=course.pickup_date.isoformat()),
                title="Course unlocked",
                message=f"You can now start the course for {course.client_name}.",
                driver=course.driver,
                course=course,
            )
            result.unlocked += 1
        except Exception:
            logger.exception("Failed to send unlock notification for course %s", course.id)

    # Still not started long after unlock; stop nagging once pickup is well past
    overdue = Course.objects.select_related("driver").filter(
        status="accepted",
        driver__isnull=False,
        pickup_date__lte=now + START_UNLOCK_WINDOW - reminder_delay,
        pickup_date__gte=now - reminder_delay,
    )
    for course in overdue:
        recent = Notification.objects.filter(
            course=course,
            type=CourseReminderPayload.type,
            created_at__gt=now - reminder_interval,
        ).exists()
        if recent:
            continue

        since_unlock = int((now - get_unlock_time(course.pickup_date)).total_seconds() // 60)
        try:
            create_notification(
                CourseReminderPayload(
                    course_id=course.id,
                    pickup_date=course.pickup_date.isoformat(),
                    minutes_since_unlock=since_unlock,
                ),
                title="Course not started",
                message=f"The course for {course.client_name} unlocked {since_unlock} min ago.",
                driver=course.driver,
                course=course,
            )
            result.reminders += 1
        except Exception:
            logger.exception("Failed to send reminder for course %s", course.id)

    if result.unlocked or result.reminders:
        logger.info("Course sweep: unlocked=%s reminders=%s", result.unlocked, result.reminders)
    return result


def check_late_pickup_alerts(
    driver,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    now: Optional[datetime] = None,
) -> List[Notification]:
    """
    Raise a dispatcher-side ``late_alert`` for courses of this driver whose
    pickup is imminent or just passed. One alert per course per cooldown.
    """
    now = now or timezone.now()
    cooldown = _minutes("LATE_ALERT_COOLDOWN_MINUTES", 10)
    created = []

    courses = Course.objects.filter(driver=driver, status__in=LATE_ALERT_WINDOWS.keys())
    for course in courses:
        lower, upper = LATE_ALERT_WINDOWS[course.status]
        minutes_until = (course.pickup_date - now).total_seconds() / 60
        if not (lower < minutes_until <= upper):
            continue

        recent = Notification.objects.filter(
            course=course,
            type=LateAlertPayload.type,
            created_at__gt=now - cooldown,
        ).exists()
        if recent:
            continue

        rounded = round(minutes_until)
        if course.status == "accepted":
            message = f"Driver {driver.name} has not started the course, pickup in {rounded} min."
        else:
            message = f"Driver {driver.name} may be late for pickup ({rounded} min)."

        try:
            created.append(create_notification(
                LateAlertPayload(
                    course_id=course.id,
                    driver_id=driver.id,
                    status=course.status,
                    minutes_until_pickup=rounded,
                    latitude=latitude,
                    longitude=longitude,
                ),
                title="Late pickup risk",
                message=message,
                course=course,
            ))
        except Exception:
            logger.exception("Failed to send late alert for course %s", course.id)

    return created
