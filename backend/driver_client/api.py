"""
Async HTTP client for the dispatch backend.

Error responses are turned back into the same exception classes the backend
raised, so callers can tell a blocking authorization failure from a
retryable network problem.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

import aiohttp

from common.exceptions import (
    AuthorizationError,
    DispatchError,
    InvalidStateError,
    NotFoundError,
    TransientIOError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=15, connect=5)


@dataclass
class DriverSession:
    """Explicit per-driver context handed to the sampler, channel and router."""
    base_url: str
    access_token: str
    driver_id: int
    refresh_token: Optional[str] = None

    @property
    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    @property
    def ws_url(self) -> str:
        parts = urlsplit(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        path = parts.path.rstrip("/") + "/ws/driver/"
        return urlunsplit((scheme, parts.netloc, path, urlencode({"token": self.access_token}), ""))


def error_from_response(status: int, body: Dict[str, Any]) -> DispatchError:
    """Map an HTTP error response to the matching exception."""
    code = body.get("error") if isinstance(body, dict) else None
    message = ""
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail") or str(body.get("error", ""))

    if code == InvalidStateError.error_code or status == 409:
        unlock_time = None
        raw = body.get("unlock_time") if isinstance(body, dict) else None
        if raw:
            unlock_time = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        return InvalidStateError(message, unlock_time=unlock_time)
    if code == AuthorizationError.error_code or status in (401, 403):
        return AuthorizationError(message)
    if code == NotFoundError.error_code or status == 404:
        return NotFoundError(message)
    if status >= 500:
        return TransientIOError(message or f"Backend returned {status}")
    return DispatchError(message or f"Request failed with {status}")


class DispatchApiClient:
    """
    Thin wrapper over the REST API for one driver session.

    Pass an existing ``aiohttp.ClientSession`` to share a connection pool;
    otherwise one is created lazily and closed by ``close()``.
    """

    def __init__(
        self,
        session: DriverSession,
        http: Optional[aiohttp.ClientSession] = None,
        timeout: aiohttp.ClientTimeout = DEFAULT_TIMEOUT,
    ):
        self.session = session
        self._http = http
        self._owns_http = http is None
        self._timeout = timeout

    async def __aenter__(self) -> "DispatchApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_http = True
        return self._http

    async def close(self) -> None:
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self.session.base_url.rstrip("/") + path
        http = self._get_http()
        try:
            async with http.request(method, url, json=json, headers=self.session.auth_headers) as resp:
                status = resp.status
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = {}
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransientIOError(str(exc) or "Network error") from exc

        if status >= 400:
            raise error_from_response(status, body or {})
        return body or {}

    # ---------------------- Location ----------------------

    async def send_location(self, payload: Dict[str, Any]) -> None:
        await self._request("POST", "/api/driver/location/", json=payload)

    async def set_status(self, status: str, fcm_token: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"status": status}
        if fcm_token is not None:
            body["fcm_token"] = fcm_token
        return await self._request("PUT", "/api/driver/status/", json=body)

    async def send_sos(self, course_id: Optional[int] = None,
                       latitude: Optional[float] = None, longitude: Optional[float] = None) -> Dict[str, Any]:
        body = {"course_id": course_id, "latitude": latitude, "longitude": longitude}
        return await self._request("POST", "/api/driver/sos/", json={k: v for k, v in body.items() if v is not None})

    # ---------------------- Courses ----------------------

    async def get_courses(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        path = "/api/courses/"
        if status:
            path += "?" + urlencode({"status": status})
        body = await self._request("GET", path)
        return body.get("courses", [])

    async def transition(self, course_id: int, action: str,
                         expected_status: Optional[str] = None,
                         **extra: Any) -> Dict[str, Any]:
        """Apply a course action and return the updated course."""
        body: Dict[str, Any] = {"course_id": course_id, "action": action}
        if expected_status:
            body["expected_status"] = expected_status
        body.update({key: value for key, value in extra.items() if value is not None})
        result = await self._request("POST", "/api/courses/transition/", json=body)
        return result.get("course", {})

    async def accept(self, course_id: int) -> Dict[str, Any]:
        return await self.transition(course_id, "accept")

    async def refuse(self, course_id: int) -> Dict[str, Any]:
        return await self.transition(course_id, "refuse")

    async def start(self, course_id: int) -> Dict[str, Any]:
        return await self.transition(course_id, "start")

    async def arrived(self, course_id: int) -> Dict[str, Any]:
        return await self.transition(course_id, "arrived")

    async def pickup(self, course_id: int) -> Dict[str, Any]:
        return await self.transition(course_id, "pickup")

    async def dropoff(self, course_id: int) -> Dict[str, Any]:
        return await self.transition(course_id, "dropoff")

    async def complete(self, course_id: int, rating: Optional[int] = None,
                       comment: Optional[str] = None) -> Dict[str, Any]:
        return await self.transition(course_id, "complete", rating=rating, comment=comment)

    # ---------------------- Chat ----------------------

    async def get_messages(self, course_id: int) -> List[Dict[str, Any]]:
        body = await self._request("POST", "/api/chat/", json={"action": "get_messages", "course_id": course_id})
        return body.get("messages", [])

    async def send_message(self, course_id: int, content: str) -> Dict[str, Any]:
        body = await self._request("POST", "/api/chat/", json={
            "action": "send_message",
            "course_id": course_id,
            "content": content,
        })
        return body.get("message", {})

    async def mark_chat_read(self, course_id: int) -> int:
        body = await self._request("POST", "/api/chat/", json={"action": "mark_read", "course_id": course_id})
        return body.get("updated", 0)
