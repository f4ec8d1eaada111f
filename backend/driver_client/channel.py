"""Websocket subscription to the per-driver realtime topic."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from common.exceptions import TransientIOError

from .api import DriverSession

logger = logging.getLogger(__name__)


class DriverChannel:
    """
    Async iterator over raw frames from ``ws/driver/``.

    ``close()`` is synchronous: it marks the channel closed so no further
    frame is yielded, drops the socket handle and schedules the websocket
    close handshake on the running loop.
    """

    def __init__(
        self,
        session: DriverSession,
        http: Optional[aiohttp.ClientSession] = None,
        heartbeat: float = 30.0,
    ):
        self._session = session
        self._http = http
        self._heartbeat = heartbeat
        self.closed = False
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._closing: Optional[asyncio.Task] = None

    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        return self._iterate()

    def close(self) -> None:
        self.closed = True
        ws, self._ws = self._ws, None
        if ws is None or ws.closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._closing = loop.create_task(ws.close())

    async def _iterate(self) -> AsyncIterator[Dict[str, Any]]:
        http = self._http
        owns_http = http is None
        if owns_http:
            http = aiohttp.ClientSession()

        try:
            async with http.ws_connect(self._session.ws_url, heartbeat=self._heartbeat) as ws:
                if self.closed:
                    return
                self._ws = ws
                logger.info("Realtime channel open for driver %s", self._session.driver_id)
                async for msg in ws:
                    if self.closed:
                        break
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        try:
                            frame = msg.json()
                        except ValueError:
                            logger.warning("Ignoring non-JSON frame")
                            continue
                        if isinstance(frame, dict):
                            yield frame
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        raise TransientIOError(f"Realtime channel error: {ws.exception()}")
        except aiohttp.ClientError as exc:
            raise TransientIOError(f"Realtime channel unavailable: {exc}") from exc
        finally:
            self._ws = None
            if owns_http:
                await http.close()
            logger.info("Realtime channel closed for driver %s", self._session.driver_id)
