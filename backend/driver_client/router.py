"""
Per-driver realtime event router.

Consumes one subscription, drops redelivered event ids and the driver's own
chat messages, then plays the alert for everything else. The processed-id
set belongs to the router instance and lives as long as it does.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Callable, Dict, Optional, Protocol, Set

from .alerts import AlertPresenter, build_alert, play_haptic_pattern
from .api import DriverSession
from .events import ChatMessageEvent, RealtimeEvent, parse_event

logger = logging.getLogger(__name__)


class Subscription(Protocol):
    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]: ...

    def close(self) -> None: ...


class RealtimeEventRouter:
    """
    Usage:
        router = RealtimeEventRouter(presenter, subscribe=DriverChannel)
        router.enable(session)
        ...
        router.disable()
    """

    def __init__(
        self,
        presenter: AlertPresenter,
        subscribe: Callable[[DriverSession], Subscription],
        sound_id: str = "default",
    ):
        self._presenter = presenter
        self._subscribe = subscribe
        self.sound_id = sound_id

        self.processed_ids: Set[str] = set()
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None
        self._session: Optional[DriverSession] = None

    @property
    def enabled(self) -> bool:
        return self._task is not None

    def enable(self, session: DriverSession) -> None:
        """Open the subscription for this driver. No-op if already enabled."""
        if self._task is not None:
            return

        self._session = session
        self._subscription = self._subscribe(session)
        self._task = asyncio.ensure_future(self._run(self._subscription))
        logger.info("Realtime router enabled for driver %s", session.driver_id)

    def disable(self) -> None:
        """Close the subscription and stop the receive loop before returning."""
        subscription, self._subscription = self._subscription, None
        task, self._task = self._task, None

        if subscription is not None:
            subscription.close()
        if task is not None:
            task.cancel()
            logger.info("Realtime router disabled")
        self._session = None

    async def _run(self, subscription: Subscription) -> None:
        try:
            async for raw in subscription:
                if subscription is not self._subscription:
                    break
                try:
                    await self.dispatch(raw)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Realtime handler failed")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Realtime subscription ended with an error")
        finally:
            if self._subscription is subscription:
                self._subscription = None
                self._task = None

    async def dispatch(self, raw: Dict[str, Any]) -> bool:
        """Handle one raw frame. Returns True if it produced an alert."""
        event = parse_event(raw)
        if event is None:
            return False

        if isinstance(event, ChatMessageEvent) and event.sender_role == "driver":
            return False

        if event.event_id in self.processed_ids:
            logger.debug("Dropping duplicate event %s", event.event_id)
            return False
        self.processed_ids.add(event.event_id)

        await self._deliver(event)
        return True

    async def _deliver(self, event: RealtimeEvent) -> None:
        alert = build_alert(event, self.sound_id)
        presenter = self._presenter

        await presenter.play_sound(alert.sound)
        await play_haptic_pattern(presenter, alert.haptic)
        presenter.show(alert, lambda: presenter.navigate(alert.route))
