"""
Core course lifecycle operations.

Every transition follows the same pattern: read the course, check the
preconditions against that snapshot, then issue one conditional UPDATE that
only matches while status and driver still equal what was read. If another
request changed the row in between, the UPDATE touches zero rows and the
transition fails with InvalidStateError. That is the only mutual exclusion
used; concurrent accepts on one course resolve to a single winner.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from common.exceptions import AuthorizationError, InvalidStateError, NotFoundError
from common.utils import get_unlock_time, is_start_unlocked
from courses.models import Course
from drivers.models import Driver

logger = logging.getLogger(__name__)

ACTIONS = ("accept", "refuse", "start", "arrived", "pickup", "dropoff", "complete")

# In-ride milestones: timestamp only, status stays in_progress
MILESTONE_FIELDS = {
    "arrived": "arrived_at",
    "pickup": "picked_up_at",
    "dropoff": "dropped_off_at",
}

STATUS_MESSAGES = {
    "accept": ("Course accepted", "You accepted the course for {client}."),
    "refuse": ("Course refused", "You released the course for {client}."),
    "start": ("Course started", "Course for {client} is in progress."),
    "arrived": ("Arrived at pickup", "You arrived at the pickup for {client}."),
    "pickup": ("Client on board", "{client} is on board."),
    "dropoff": ("Client dropped off", "{client} was dropped off."),
    "complete": ("Course completed", "Course for {client} is completed."),
}


@dataclass
class CourseResult:
    """Result object for course operations."""
    success: bool
    course: Optional[Course] = None
    message: str = ""
    extra: Optional[Dict[str, Any]] = None


# ===================== Lookups =====================

def get_actor_driver(user) -> Driver:
    """
    Resolve the Driver record for an authenticated driver user.

    Raises:
        AuthorizationError: If the user is anonymous, not a driver, or has no driver record
    """
    if user is None or not getattr(user, "is_authenticated", False):
        raise AuthorizationError("Authentication required")
    if getattr(user, "role", None) != "driver":
        raise AuthorizationError("Only drivers can perform course actions")

    driver = Driver.objects.filter(user=user).first()
    if driver is None:
        raise AuthorizationError("Driver record not found")
    return driver


def _get_course(course_id: int) -> Course:
    try:
        return Course.objects.select_related("driver").get(id=course_id)
    except Course.DoesNotExist:
        raise NotFoundError(f"Course {course_id} not found")


def _conditional_update(course: Course, **changes) -> Course:
    """
    Apply ``changes`` only if status and driver still match the snapshot.

    Raises:
        InvalidStateError: If the row changed since it was read
    """
    updated = Course.objects.filter(
        id=course.id,
        status=course.status,
        driver_id=course.driver_id,
    ).update(**changes)

    if updated == 0:
        logger.info("Conditional update lost for course %s (read status=%s)", course.id, course.status)
        raise InvalidStateError("Course was modified by another request, please refresh")

    for field, value in changes.items():
        setattr(course, field, value)
    return course


# ===================== Driver transitions =====================

def _accept(driver: Driver, course: Course, now: datetime, **options) -> Course:
    if course.status not in Course.OPEN_STATUSES:
        raise InvalidStateError("This course was already taken or is no longer available")
    # Manual dispatch pre-assigns a driver while the course is still open
    if course.driver_id is not None and course.driver_id != driver.id:
        raise InvalidStateError("This course is assigned to another driver")

    return _conditional_update(
        course,
        status="accepted",
        driver=driver,
        accepted_at=now,
        started_at=None,
        arrived_at=None,
        picked_up_at=None,
        dropped_off_at=None,
        completed_at=None,
        rating=None,
    )


def _refuse(driver: Driver, course: Course, now: datetime, **options) -> Course:
    if course.status != "accepted":
        raise InvalidStateError("Only accepted courses can be refused")
    return _conditional_update(course, status="pending", driver=None, accepted_at=None)


def _start(driver: Driver, course: Course, now: datetime, **options) -> Course:
    if not is_start_unlocked(course.pickup_date, now):
        unlock_time = get_unlock_time(course.pickup_date)
        raise InvalidStateError(
            "This course cannot be started before one hour prior to pickup",
            unlock_time=unlock_time,
        )
    if course.status != "accepted":
        raise InvalidStateError("Only accepted courses can be started")
    return _conditional_update(course, status="in_progress", started_at=now)


def _milestone(action: str):
    field_name = MILESTONE_FIELDS[action]

    def handler(driver: Driver, course: Course, now: datetime, **options) -> Course:
        if course.status != "in_progress":
            raise InvalidStateError(f"{action} can only be recorded on a course in progress")
        return _conditional_update(course, **{field_name: now})

    return handler


def _complete(driver: Driver, course: Course, now: datetime,
              rating: Optional[int] = None, comment: Optional[str] = None) -> Course:
    if course.status != "in_progress":
        raise InvalidStateError("Only courses in progress can be completed")
    if rating is not None and not 1 <= rating <= 5:
        raise InvalidStateError("Rating must be between 1 and 5")

    changes = {"status": "completed", "completed_at": now}
    if rating is not None:
        changes["rating"] = rating
    if comment:
        prefix = course.notes + "\n\n" if course.notes else ""
        changes["notes"] = f"{prefix}Driver comment: {comment}"
    return _conditional_update(course, **changes)


_HANDLERS = {
    "accept": _accept,
    "refuse": _refuse,
    "start": _start,
    "arrived": _milestone("arrived"),
    "pickup": _milestone("pickup"),
    "dropoff": _milestone("dropoff"),
    "complete": _complete,
}


def transition_course(
    user,
    course_id: int,
    action: str,
    expected_status: Optional[str] = None,
    now: Optional[datetime] = None,
    rating: Optional[int] = None,
    comment: Optional[str] = None,
) -> CourseResult:
    """
    Apply a driver action to a course.

    Args:
        user: Authenticated User performing the action
        course_id: ID of the course
        action: One of accept, refuse, start, arrived, pickup, dropoff, complete
        expected_status: Status the caller believes the course is in
        now: Evaluation instant, defaults to the server clock
        rating: Optional 1-5 rating, complete only
        comment: Optional driver comment appended to the notes, complete only

    Returns:
        CourseResult with the updated course

    Raises:
        AuthorizationError: Actor is not a driver or does not own the course
        InvalidStateError: Precondition failed or course changed concurrently
        NotFoundError: Course does not exist
    """
    if action not in _HANDLERS:
        raise InvalidStateError(f"Unknown action: {action}")

    driver = get_actor_driver(user)
    course = _get_course(course_id)
    now = now or timezone.now()

    if course.is_terminal:
        raise InvalidStateError(f"Course is already {course.status}")

    if action != "accept" and course.driver_id != driver.id:
        raise AuthorizationError("You are not the driver assigned to this course")

    if expected_status is not None and expected_status != course.status:
        raise InvalidStateError(
            f"Course status is {course.status}, expected {expected_status}"
        )

    if action != "complete" and (rating is not None or comment):
        raise InvalidStateError("rating and comment are only accepted with complete")

    options = {"rating": rating, "comment": comment} if action == "complete" else {}
    course = _HANDLERS[action](driver, course, now, **options)
    logger.info("Driver %s applied %s to course %s", driver.id, action, course.id)

    _record_transition(driver, course, action)

    return CourseResult(
        success=True,
        course=course,
        message=STATUS_MESSAGES[action][0],
    )


def _record_transition(driver: Driver, course: Course, action: str) -> None:
    """Tracking notification for the driver plus a dispatcher broadcast, best-effort."""
    from notifications.payloads import AdminCourseUpdatePayload, CourseStatusPayload
    from notifications.services import create_notification

    title, template = STATUS_MESSAGES[action]
    message = template.format(client=course.client_name)

    try:
        create_notification(
            CourseStatusPayload(course_id=course.id, action=action, status=course.status),
            title=title,
            message=message,
            driver=driver,
            course=course,
        )
        create_notification(
            AdminCourseUpdatePayload(
                course_id=course.id,
                action=action,
                status=course.status,
                driver_id=driver.id,
                driver_name=driver.name or driver.user.username,
            ),
            title=title,
            message=f"{driver.name or driver.user.username}: {message}",
            course=course,
        )
    except Exception:
        logger.exception("Failed to record %s notifications for course %s", action, course.id)


# ===================== Dispatcher operations =====================

def _require_dispatcher(user) -> None:
    if user is None or not getattr(user, "is_authenticated", False):
        raise AuthorizationError("Authentication required")
    if not getattr(user, "is_dispatcher", False):
        raise AuthorizationError("Only dispatchers can manage courses")


def _schedule_fanout(course_id: int) -> None:
    """Queue fan-out for a committed course. The course stays created if the broker is down."""
    from courses.tasks import fanout_course_task

    try:
        fanout_course_task.delay(course_id)
    except Exception:
        logger.exception("Failed to queue fan-out for course %s", course_id)


def create_course(user, **fields) -> CourseResult:
    """
    Create a course and schedule its fan-out.

    A course created with a dispatch mode starts as ``dispatched``; manual
    mode pre-assigns ``driver_id``. Fan-out runs once, after the creating
    transaction commits.
    """
    _require_dispatcher(user)

    driver_id = fields.pop("driver_id", None)
    driver = None
    if driver_id:
        driver = Driver.objects.filter(id=driver_id).first()
        if driver is None:
            raise NotFoundError(f"Driver {driver_id} not found")

    dispatch_mode = fields.get("dispatch_mode")

    with transaction.atomic():
        course = Course.objects.create(
            driver=driver,
            status="dispatched" if dispatch_mode else "pending",
            **fields,
        )
        if dispatch_mode:
            course_id = course.id
            transaction.on_commit(lambda: _schedule_fanout(course_id))

    logger.info("Course %s created by %s (dispatch_mode=%s)", course.id, user.id, dispatch_mode)
    return CourseResult(success=True, course=course, message="Course created")


def cancel_course(user, course_id: int, now: Optional[datetime] = None) -> CourseResult:
    """Cancel a non-terminal course from the dispatcher side."""
    _require_dispatcher(user)
    course = _get_course(course_id)

    if course.is_terminal:
        raise InvalidStateError(f"Course is already {course.status}")

    course = _conditional_update(course, status="cancelled", cancelled_at=now or timezone.now())
    logger.info("Course %s cancelled by %s", course.id, user.id)

    from notifications.payloads import CourseStatusPayload
    from notifications.services import create_notification

    if course.driver_id:
        try:
            create_notification(
                CourseStatusPayload(course_id=course.id, action="cancel", status=course.status),
                title="Course cancelled",
                message=f"Course for {course.client_name} was cancelled.",
                driver=course.driver,
                course=course,
            )
        except Exception:
            logger.exception("Failed to notify driver of cancellation for course %s", course.id)

    return CourseResult(success=True, course=course, message="Course cancelled")


# ===================== Queries =====================

def get_driver_courses(driver: Driver, status: Optional[str] = None):
    """Courses the driver holds plus the open pool, ordered by pickup."""
    qs = Course.objects.select_related("driver").filter(
        Q(driver=driver)
        | Q(status__in=Course.OPEN_STATUSES, driver__isnull=True)
    )
    if status:
        qs = qs.filter(status=status)
    return qs.order_by("pickup_date")
