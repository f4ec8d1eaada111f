"""
Course management service - course state machine and dispatcher operations.

This module handles:
    - Driver transitions (accept, refuse, start, complete)
    - Dispatcher course creation and cancellation
    - Driver course listing
"""

from .lifecycle import (
    ACTIONS,
    CourseResult,
    transition_course,
    create_course,
    cancel_course,
    get_actor_driver,
    get_driver_courses,
)

__all__ = [
    "ACTIONS",
    "CourseResult",
    "transition_course",
    "create_course",
    "cancel_course",
    "get_actor_driver",
    "get_driver_courses",
]
