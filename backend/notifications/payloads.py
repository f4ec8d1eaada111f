"""
Typed notification payloads.

Each notification type has one payload dataclass; ``type`` is the tag stored
in ``Notification.type`` and ``to_data()`` is what lands in the JSON column.
"""

from dataclasses import asdict, dataclass
from typing import Any, ClassVar, Dict, Optional


@dataclass
class NotificationPayload:
    type: ClassVar[str] = ""

    def to_data(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class NewCoursePayload(NotificationPayload):
    type: ClassVar[str] = "new_course"
    course_id: int
    dispatch_mode: Optional[str] = None


@dataclass
class CourseStatusPayload(NotificationPayload):
    type: ClassVar[str] = "course_status"
    course_id: int
    action: str
    status: str


@dataclass
class AdminCourseUpdatePayload(NotificationPayload):
    type: ClassVar[str] = "admin_course_update"
    course_id: int
    action: str
    status: str
    driver_id: Optional[int] = None
    driver_name: Optional[str] = None


@dataclass
class CourseUnlockedPayload(NotificationPayload):
    type: ClassVar[str] = "course_unlocked"
    course_id: int
    pickup_date: str


@dataclass
class CourseReminderPayload(NotificationPayload):
    type: ClassVar[str] = "course_reminder"
    course_id: int
    pickup_date: str
    minutes_since_unlock: int


@dataclass
class LateAlertPayload(NotificationPayload):
    type: ClassVar[str] = "late_alert"
    course_id: int
    driver_id: int
    status: str
    minutes_until_pickup: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass
class SosAlertPayload(NotificationPayload):
    type: ClassVar[str] = "sos_alert"
    driver_id: int
    driver_name: str
    course_id: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    urgency: str = "critical"


@dataclass
class DriverLoginPayload(NotificationPayload):
    type: ClassVar[str] = "driver_login"
    driver_id: int
    driver_name: str
    login_at: str


@dataclass
class ChatPayload(NotificationPayload):
    type: ClassVar[str] = "chat"
    course_id: int
    message_id: int
    sender_role: str
