"""
Dispatch service - who hears about a course, and when.

This module handles:
    - Fan-out of new courses to target drivers
    - Unlock and reminder sweeps
    - Late pickup alerts on location updates
"""

from .fanout import FanoutResult, fan_out_course, resolve_target_drivers
from .reminders import SweepResult, check_course_notifications, check_late_pickup_alerts

__all__ = [
    "FanoutResult",
    "fan_out_course",
    "resolve_target_drivers",
    "SweepResult",
    "check_course_notifications",
    "check_late_pickup_alerts",
]
