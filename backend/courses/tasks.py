"""Celery tasks for course-related background processing."""

from celery import shared_task
import logging

from common.exceptions import NotFoundError, TransientIOError

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=10)
def fanout_course_task(self, course_id: int):
    """
    Notify target drivers about a newly created course.

    Scheduled once per course creation, after the creating transaction
    commits. Driver resolution failures are retried; rows already inserted
    are skipped on the retry.
    """
    from services.dispatch import fan_out_course

    try:
        result = fan_out_course(course_id)
    except NotFoundError:
        logger.warning("Course %s not found for fan-out task", course_id)
        return 0
    except TransientIOError as exc:
        logger.warning("Fan-out for course %s failed, retrying: %s", course_id, exc)
        raise self.retry(exc=exc)

    return result.notified_drivers


@shared_task
def check_course_notifications_task():
    """Periodic sweep for unlock and reminder notifications."""
    from services.dispatch import check_course_notifications

    result = check_course_notifications()
    return {"unlocked": result.unlocked, "reminders": result.reminders}
