"""Countdown to the start unlock time, recomputed from the wall clock every tick."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from common.utils import time_until_unlock

logger = logging.getLogger(__name__)

READY_TEXT = "Ready to start"


def format_remaining(remaining: timedelta) -> str:
    total_seconds = int(remaining.total_seconds())
    if total_seconds <= 0:
        return READY_TEXT

    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)

    if hours > 0:
        return f"Can start in {hours}h {minutes}min {seconds}s"
    if minutes > 0:
        return f"Can start in {minutes}min {seconds}s"
    return f"Can start in {seconds}s"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnlockCountdown:
    """
    Display-only countdown. The server re-checks the unlock rule on start,
    so this never decides anything.
    """

    def __init__(
        self,
        pickup_date: datetime,
        on_tick: Callable[[timedelta, str], None],
        on_unlock: Optional[Callable[[], None]] = None,
        clock: Callable[[], datetime] = _utcnow,
        interval: float = 1.0,
    ):
        self.pickup_date = pickup_date
        self._on_tick = on_tick
        self._on_unlock = on_unlock
        self._clock = clock
        self._interval = interval
        self._task: Optional[asyncio.Task] = None
        self.unlocked = False

    def remaining(self) -> timedelta:
        return time_until_unlock(self.pickup_date, self._clock())

    def tick(self) -> timedelta:
        remaining = self.remaining()
        self._on_tick(remaining, format_remaining(remaining))

        if remaining <= timedelta(0) and not self.unlocked:
            self.unlocked = True
            if self._on_unlock is not None:
                self._on_unlock()
        return remaining

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()

    async def _run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._interval)
