"""
Dispatch fan-out: turn one course event into one ``new_course`` notification
per target driver.

Target resolution has no side effects and can be repeated. Rows are inserted
one at a time so a failed insert only loses that row. A (driver, course)
pair that already has a ``new_course`` notification is skipped, which makes
re-running fan-out for the same course harmless.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from django.db import DatabaseError, IntegrityError, transaction

from common.exceptions import NotFoundError, TransientIOError
from courses.models import Course
from drivers.models import Driver
from notifications.models import Notification
from notifications.payloads import NewCoursePayload
from realtime.notifications import publish_notification

logger = logging.getLogger(__name__)


@dataclass
class FanoutResult:
    course_id: int
    dispatch_mode: Optional[str]
    notified_drivers: int = 0
    skipped_drivers: int = 0
    failed_drivers: int = 0
    notification_ids: List[int] = field(default_factory=list)


def resolve_target_drivers(course: Course) -> List[Driver]:
    """
    Compute the driver set for a course event.

    auto   -> every active, approved driver with a push token
    manual -> the single pre-assigned driver, if any
    """
    if course.dispatch_mode == "auto":
        return list(Driver.objects.reachable().order_by("id"))
    if course.dispatch_mode == "manual":
        if course.driver_id is None:
            return []
        return list(Driver.objects.filter(id=course.driver_id))
    return []


def _build_message(course: Course) -> str:
    return (
        f"{course.client_name}: {course.departure_location} -> "
        f"{course.destination_location} at {course.pickup_date:%d/%m %H:%M}"
    )


def fan_out_course(course_id: int) -> FanoutResult:
    """
    Notify every target driver about a course exactly once.

    Raises:
        NotFoundError: If the course does not exist
        TransientIOError: If the target drivers could not be resolved
    """
    try:
        course = Course.objects.get(id=course_id)
    except Course.DoesNotExist:
        raise NotFoundError(f"Course {course_id} not found")

    result = FanoutResult(course_id=course.id, dispatch_mode=course.dispatch_mode)

    try:
        targets = resolve_target_drivers(course)
        already_notified = set(
            Notification.objects.filter(course=course, type=NewCoursePayload.type)
            .values_list("driver_id", flat=True)
        )
    except DatabaseError as exc:
        logger.exception("Could not resolve drivers for course %s", course.id)
        raise TransientIOError("Could not resolve target drivers") from exc

    payload = NewCoursePayload(course_id=course.id, dispatch_mode=course.dispatch_mode)
    message = _build_message(course)

    for driver in targets:
        if driver.id in already_notified:
            result.skipped_drivers += 1
            continue

        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    driver=driver,
                    course=course,
                    type=payload.type,
                    title="New course available",
                    message=message,
                    data=payload.to_data(),
                )
        except IntegrityError:
            # Inserted by a concurrent fan-out for the same course
            result.skipped_drivers += 1
            continue
        except DatabaseError:
            logger.exception("Failed to insert new_course notification for driver %s", driver.id)
            result.failed_drivers += 1
            continue

        result.notified_drivers += 1
        result.notification_ids.append(notification.id)

        try:
            publish_notification(notification)
        except Exception:
            logger.exception("Failed to publish notification %s", notification.id)

    logger.info(
        "Fan-out for course %s (%s): notified=%s skipped=%s failed=%s",
        course.id,
        course.dispatch_mode,
        result.notified_drivers,
        result.skipped_drivers,
        result.failed_drivers,
    )
    return result
