"""
Pickup scheduling rules shared by the server and the driver client.

A course can only be started once its unlock time is reached, which is
one hour before the scheduled pickup.
"""

from datetime import datetime, timedelta

START_UNLOCK_WINDOW = timedelta(hours=1)


def get_unlock_time(pickup_date: datetime) -> datetime:
    """Earliest instant a driver may start the course."""
    return pickup_date - START_UNLOCK_WINDOW


def is_start_unlocked(pickup_date: datetime, now: datetime) -> bool:
    return now >= get_unlock_time(pickup_date)


def time_until_unlock(pickup_date: datetime, now: datetime) -> timedelta:
    """Remaining time before the course unlocks, never negative."""
    remaining = get_unlock_time(pickup_date) - now
    if remaining < timedelta(0):
        return timedelta(0)
    return remaining
