"""Event bus exports."""

from goosetap.core.event.bus import (
    CallbackType,
    EventBus,
    EventListener,
    EventPayload,
    ListenerPriority,
    matches,
)

__all__ = [
    "EventBus",
    "EventListener",
    "EventPayload",
    "CallbackType",
    "ListenerPriority",
    "matches",
]
