"""Common utility functions."""

from .geo import calculate_distance
from .scheduling import START_UNLOCK_WINDOW, get_unlock_time, is_start_unlocked, time_until_unlock

__all__ = [
    "calculate_distance",
    "START_UNLOCK_WINDOW",
    "get_unlock_time",
    "is_start_unlocked",
    "time_until_unlock",
]
