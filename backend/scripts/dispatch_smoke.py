"""End-to-end smoke check for course fan-out over the driver WebSocket.

Prerequisites:
1. `python manage.py runserver` (or daphne) must be running, with a celery
   worker, or CELERY_TASK_ALWAYS_EAGER=True in the settings.
2. A dispatcher account and an approved driver account must exist. Set their
   credentials with DISPATCH_SMOKE_DISPATCHER / DISPATCH_SMOKE_DRIVER as
   "username:password" (defaults below).
3. Install dependencies once: `pip install requests websocket-client`.

The script will:
- Log both accounts in via the REST API.
- Mark the driver active with an fcm token and push one location.
- Open the driver WebSocket connection (JWT in the querystring).
- Create an auto-dispatch course as the dispatcher and wait for the new_course
  notification frame.
"""

from __future__ import annotations

import json
import os
import queue
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Tuple

import requests
import websocket  # type: ignore

BASE_URL = os.environ.get("DISPATCH_BASE_URL", "http://127.0.0.1:8000")
API_ROOT = f"{BASE_URL}/api"
AUTH_API = f"{API_ROOT}/auth"

DISPATCHER_CREDS = os.environ.get("DISPATCH_SMOKE_DISPATCHER", "smoke_dispatcher:demo1234")
DRIVER_CREDS = os.environ.get("DISPATCH_SMOKE_DRIVER", "smoke_driver:demo1234")

DRIVER_POSITION = {
    "latitude": 48.8566,
    "longitude": 2.3522,
}


def _split_creds(raw: str) -> Tuple[str, str]:
    username, _, password = raw.partition(":")
    return username, password


def _login(session: requests.Session, raw_creds: str) -> Dict:
    username, password = _split_creds(raw_creds)
    resp = session.post(
        f"{AUTH_API}/login/",
        json={"username": username, "password": password},
        timeout=10,
    )
    resp.raise_for_status()
    data = resp.json()
    session.headers.update({"Authorization": f"Bearer {data['tokens']['access']}"})
    return data


def _prepare_driver(session: requests.Session) -> None:
    resp = session.put(
        f"{API_ROOT}/driver/status/",
        json={"status": "active", "fcm_token": "smoke-test-token"},
        timeout=10,
    )
    resp.raise_for_status()

    resp = session.post(f"{API_ROOT}/driver/location/", json=DRIVER_POSITION, timeout=10)
    resp.raise_for_status()


def _open_driver_socket(access_token: str, ready_evt: threading.Event, queue_out: queue.Queue) -> None:
    ws_url = BASE_URL.replace("http", "ws", 1) + f"/ws/driver/?token={access_token}"

    def on_open(ws):  # type: ignore[no-untyped-def]
        print("[WS] Connected to driver channel")
        ready_evt.set()

    def on_message(ws, message):  # type: ignore[no-untyped-def]
        payload = json.loads(message)
        print(f"[WS] Received payload: {payload}")
        if payload.get("type") != "notification":
            return
        if payload.get("notification", {}).get("type") == "new_course":
            queue_out.put(payload)
            ws.close()

    def on_error(ws, error):  # type: ignore[no-untyped-def]
        print(f"[WS] Error: {error}")
        ready_evt.set()

    def on_close(_ws, *_):  # type: ignore[no-untyped-def]
        print("[WS] Connection closed")

    ws_app = websocket.WebSocketApp(
        ws_url,
        on_open=on_open,
        on_message=on_message,
        on_error=on_error,
        on_close=on_close,
    )
    ws_app.run_forever()


def _create_course(dispatcher_session: requests.Session) -> Dict:
    pickup = datetime.now(timezone.utc) + timedelta(hours=3)
    body = {
        "client_name": "Smoke Client",
        "client_phone": "+33600000000",
        "departure_location": "Gare de Lyon",
        "destination_location": "Orly",
        "pickup_date": pickup.isoformat(),
        "passengers_count": 2,
        "dispatch_mode": "auto",
    }
    resp = dispatcher_session.post(f"{API_ROOT}/courses/", json=body, timeout=10)
    resp.raise_for_status()
    data = resp.json()
    print(f"[HTTP] Course created: #{data['course']['id']} | {data['message']}")
    return data["course"]


def main() -> None:
    dispatcher_session = requests.Session()
    driver_session = requests.Session()

    print("[HTTP] Logging in smoke accounts ...")
    _login(dispatcher_session, DISPATCHER_CREDS)
    driver_login = _login(driver_session, DRIVER_CREDS)
    if driver_login.get("driver_id") is None:
        raise RuntimeError("Driver account has no driver profile")
    _prepare_driver(driver_session)
    print(f"[HTTP] Driver #{driver_login['driver_id']} ready")

    ready_evt = threading.Event()
    message_queue: queue.Queue = queue.Queue()
    ws_thread = threading.Thread(
        target=_open_driver_socket,
        args=(driver_login["tokens"]["access"], ready_evt, message_queue),
        daemon=True,
    )
    ws_thread.start()

    if not ready_evt.wait(timeout=5):
        raise TimeoutError("Driver WebSocket failed to connect within 5 seconds")

    course = _create_course(dispatcher_session)

    try:
        payload = message_queue.get(timeout=30)
    except queue.Empty:
        raise TimeoutError("Driver WebSocket did not receive a new_course notification within 30 seconds")

    notification = payload["notification"]
    print(
        "[RESULT] Driver notified for course",
        notification.get("course_id"),
        "event_id=",
        payload.get("event_id"),
    )
    if notification.get("course_id") != course["id"]:
        print("[WARN] Notification was for a different course; an older fan-out may still be in flight")

    print("[DONE] End-to-end dispatch check completed.")


if __name__ == "__main__":
    main()
