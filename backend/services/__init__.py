"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - course_management: Course state machine and dispatcher operations
    - dispatch: Notification fan-out, reminder sweeps and late alerts
"""

# Expose commonly used functions at package level
from .course_management import (
    transition_course,
    create_course,
    cancel_course,
    get_driver_courses,
)
from .dispatch import (
    fan_out_course,
    check_course_notifications,
    check_late_pickup_alerts,
)

__all__ = [
    # Course management
    "transition_course",
    "create_course",
    "cancel_course",
    "get_driver_courses",
    # Dispatch
    "fan_out_course",
    "check_course_notifications",
    "check_late_pickup_alerts",
]
