"""Sound, haptic and toast selection for realtime events."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Protocol

from .events import ChatMessageEvent, RealtimeEvent

CHAT_PREVIEW_LENGTH = 60


class HapticStyle(str, Enum):
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


@dataclass(frozen=True)
class HapticPattern:
    style: HapticStyle
    repeat: int
    interval_ms: int


HAPTIC_PATTERNS: Dict[str, HapticPattern] = {
    "new_course": HapticPattern(HapticStyle.HEAVY, repeat=3, interval_ms=150),
    "chat_message": HapticPattern(HapticStyle.LIGHT, repeat=1, interval_ms=0),
    "urgent_alert": HapticPattern(HapticStyle.HEAVY, repeat=5, interval_ms=100),
    "course_update": HapticPattern(HapticStyle.MEDIUM, repeat=2, interval_ms=200),
    "default": HapticPattern(HapticStyle.MEDIUM, repeat=1, interval_ms=0),
}

NOTIFICATION_SOUNDS = ("default", "bell", "chime", "alert", "gentle")

# notification type -> haptic pattern name
_HAPTIC_BY_TYPE = {
    "new_course": "new_course",
    "sos_alert": "urgent_alert",
    "late_alert": "urgent_alert",
    "course_status": "course_update",
    "course_unlocked": "course_update",
    "course_reminder": "course_update",
    "admin_course_update": "course_update",
    "chat": "chat_message",
}


@dataclass(frozen=True)
class Alert:
    title: str
    body: str
    route: str
    haptic: str
    sound: str
    duration_seconds: int = 8


class AlertPresenter(Protocol):
    async def play_sound(self, sound_id: str) -> None: ...

    async def impact(self, style: HapticStyle) -> None: ...

    def show(self, alert: Alert, on_activate: Callable[[], None]) -> None: ...

    def navigate(self, route: str) -> None: ...


def resolve_sound(sound_id: str) -> str:
    return sound_id if sound_id in NOTIFICATION_SOUNDS else "default"


def haptic_for(event: RealtimeEvent) -> str:
    if isinstance(event, ChatMessageEvent):
        return "chat_message"
    return _HAPTIC_BY_TYPE.get(event.notification_type, "default")


def chat_preview(content: str) -> str:
    if len(content) > CHAT_PREVIEW_LENGTH:
        return content[:CHAT_PREVIEW_LENGTH] + "..."
    return content


def build_alert(event: RealtimeEvent, sound_id: str = "default") -> Alert:
    sound = resolve_sound(sound_id)
    if isinstance(event, ChatMessageEvent):
        return Alert(
            title="New message from dispatch",
            body=chat_preview(event.content),
            route=f"/chat/{event.course_id}",
            haptic="chat_message",
            sound=sound,
        )

    route = f"/courses/{event.course_id}" if event.course_id else "/notifications"
    return Alert(
        title=event.title,
        body=event.message,
        route=route,
        haptic=haptic_for(event),
        sound="alert" if event.notification_type == "sos_alert" else sound,
        duration_seconds=15 if event.notification_type == "new_course" else 8,
    )


async def play_haptic_pattern(presenter: AlertPresenter, name: str) -> None:
    pattern = HAPTIC_PATTERNS.get(name, HAPTIC_PATTERNS["default"])
    for i in range(pattern.repeat):
        await presenter.impact(pattern.style)
        if pattern.interval_ms > 0 and i < pattern.repeat - 1:
            await asyncio.sleep(pattern.interval_ms / 1000)

