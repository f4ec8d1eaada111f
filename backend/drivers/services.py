import logging
from typing import Optional

from django.utils import timezone

from drivers.models import Driver, DriverLocation

logger = logging.getLogger(__name__)


# DRIVER STATUS UPDATE
def update_driver_status(driver: Driver, new_status: str, fcm_token: Optional[str] = None):
    """
    Toggle auto-dispatch availability.
    Only active drivers with a push token receive auto-dispatched courses.
    """
    driver.status = new_status
    update_fields = ["status"]

    if fcm_token is not None:
        driver.fcm_token = fcm_token or None
        update_fields.append("fcm_token")

    driver.save(update_fields=update_fields)
    logger.info("Driver %s is now %s", driver.id, new_status)
    return driver


def record_driver_location(driver: Driver, latitude, longitude,
                           heading=None, speed=None, accuracy=None, now=None):
    """
    Overwrite the driver's latest position with a new sample.

    After the upsert the driver's imminent courses are checked for late
    pickup; that check never fails the location update.
    """
    now = now or timezone.now()
    location, _ = DriverLocation.objects.update_or_create(
        driver=driver,
        defaults={
            "latitude": latitude,
            "longitude": longitude,
            "heading": heading,
            "speed": speed,
            "accuracy": accuracy,
            "updated_at": now,
        },
    )

    try:
        from services.dispatch import check_late_pickup_alerts
        check_late_pickup_alerts(driver, float(latitude), float(longitude), now=now)
    except Exception:
        logger.exception("Late pickup check failed for driver %s", driver.id)

    return location


def send_sos(driver: Driver, course_id=None, latitude=None, longitude=None, message=""):
    """
    Raise a critical dispatcher-side alert for this driver.

    Falls back to the last stored position when the request carries none.
    """
    from notifications.payloads import SosAlertPayload
    from notifications.services import create_notification
    from courses.models import Course

    course = None
    if course_id:
        course = Course.objects.filter(id=course_id, driver=driver).first()

    if latitude is None or longitude is None:
        last = DriverLocation.objects.filter(driver=driver).first()
        if last is not None:
            latitude, longitude = float(last.latitude), float(last.longitude)

    name = driver.name or driver.user.username
    notification = create_notification(
        SosAlertPayload(
            driver_id=driver.id,
            driver_name=name,
            course_id=course.id if course else None,
            latitude=latitude,
            longitude=longitude,
        ),
        title="SOS",
        message=message or f"{name} triggered an SOS alert",
        course=course,
    )
    logger.warning("SOS raised by driver %s (course=%s)", driver.id, course_id)
    return notification
