"""
Location throttling between the device's position provider and the backend.

A fix is forwarded when it is the first one, when the driver moved more than
MIN_DISTANCE_METERS since the last forwarded fix, or when more than
MIN_INTERVAL_SECONDS passed since then. Uploads are fire-and-forget.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, Protocol, Set

from common.utils import calculate_distance

logger = logging.getLogger(__name__)

MIN_DISTANCE_METERS = 10.0
MIN_INTERVAL_SECONDS = 1.0


@dataclass(frozen=True)
class PositionFix:
    latitude: float
    longitude: float
    heading: Optional[float] = None
    speed: Optional[float] = None
    accuracy: Optional[float] = None
    timestamp: float = field(default_factory=time.monotonic)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "latitude": round(self.latitude, 6),
            "longitude": round(self.longitude, 6),
            "heading": self.heading,
            "speed": self.speed,
            "accuracy": self.accuracy,
        }


class PositionPermissionDenied(Exception):
    """The user refused location access."""


class PositionUnsupported(Exception):
    """The device has no usable location provider."""


TERMINAL_PROVIDER_ERRORS = (PositionPermissionDenied, PositionUnsupported)


class PositionProvider(Protocol):
    def watch(
        self,
        on_fix: Callable[[PositionFix], None],
        on_error: Callable[[Exception], None],
    ) -> Hashable:
        """Start delivering fixes; returns a handle for clear_watch()."""

    def clear_watch(self, handle: Hashable) -> None:
        """Stop delivering fixes for the handle. No callbacks fire afterwards."""


class PositionSampler:
    """
    Owns the provider watch and the last forwarded fix for one driver session.

    States: ``idle`` -> ``tracking`` -> ``idle``; a permission or capability
    failure moves to ``error`` and releases the watch. ``start()`` from
    ``error`` tries again.
    """

    def __init__(
        self,
        provider: PositionProvider,
        send: Callable[[Dict[str, Any]], Awaitable[Any]],
        min_distance: float = MIN_DISTANCE_METERS,
        min_interval: float = MIN_INTERVAL_SECONDS,
    ):
        self._provider = provider
        self._send = send
        self.min_distance = min_distance
        self.min_interval = min_interval

        self.state = "idle"
        self.error: Optional[Exception] = None
        self.last_sent: Optional[PositionFix] = None
        self._watch_handle: Optional[Hashable] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def is_tracking(self) -> bool:
        return self.state == "tracking"

    def start(self) -> None:
        if self.state == "tracking":
            return

        self.error = None
        try:
            self._watch_handle = self._provider.watch(self.handle_fix, self._on_provider_error)
        except TERMINAL_PROVIDER_ERRORS as exc:
            self._fail(exc)
            return

        self.state = "tracking"
        logger.info("Location tracking started")

    def stop(self) -> None:
        self._release_watch()
        if self.state == "tracking":
            self.state = "idle"
            logger.info("Location tracking stopped")

    def should_send(self, fix: PositionFix) -> bool:
        last = self.last_sent
        if last is None:
            return True

        distance = calculate_distance(last.latitude, last.longitude, fix.latitude, fix.longitude)
        if distance > self.min_distance:
            return True
        return (fix.timestamp - last.timestamp) > self.min_interval

    def handle_fix(self, fix: PositionFix) -> bool:
        """Provider callback. Returns True if the fix was forwarded."""
        if self.state != "tracking":
            return False
        if not self.should_send(fix):
            return False

        # Record before uploading so a slow upload does not resend the same fix
        self.last_sent = fix
        task = asyncio.ensure_future(self._transmit(fix))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _transmit(self, fix: PositionFix) -> None:
        try:
            await self._send(fix.to_payload())
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Location upload failed: %s", exc)

    async def drain(self) -> None:
        """Wait for uploads already in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_provider_error(self, exc: Exception) -> None:
        if isinstance(exc, TERMINAL_PROVIDER_ERRORS):
            self._fail(exc)
        else:
            logger.warning("Location provider error: %s", exc)

    def _fail(self, exc: Exception) -> None:
        logger.error("Location tracking unavailable: %s", exc)
        self._release_watch()
        self.error = exc
        self.state = "error"

    def _release_watch(self) -> None:
        handle, self._watch_handle = self._watch_handle, None
        if handle is not None:
            self._provider.clear_watch(handle)
