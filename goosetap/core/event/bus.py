"""
Goose Tap EventBus: async pub/sub with priority tiers.

Purpose
-------
Decouple ledger services from side effects (notifications, analytics,
alerting). Services publish events after their transaction work; listeners
run without being able to fail the operation that published.

Responsibilities
----------------
- Register/unregister listeners with priorities
- Publish events to all matching listeners (exact + wildcard)
- Execute listeners according to priority tier:
  * CRITICAL / HIGH: sequential, ordered, awaited with timeout
  * NORMAL: concurrent (gather), awaited with timeout
  * LOW: fire-and-forget background tasks
- Error isolation (one failing listener never blocks others)

Design Decisions
----------------
- **Instance-based**: one bus per ServiceContainer; tests create their own.
- **Wildcard support**: subscriptions like "player.*" or "*.claimed".
- **Config-driven timeouts**: loaded from ConfigManager
  (`core.event.listener_timeout_seconds`).

Event names published by the ledger
-----------------------------------
- player.created, player.reset
- player.tapped, player.level_up, player.upgrade_purchased, player.state_saved
- rewards.task_claimed, rewards.daily_claimed
- referral.resolved, referral.resolution_failed
- session.offline_settled
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from goosetap.core.logging.logger import get_logger

logger = get_logger(__name__)


EventPayload = Dict[str, Any]

CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


class ListenerPriority(Enum):
    """
    Execution tier of a listener.

    CRITICAL (0) and HIGH (10) run sequentially in priority order, NORMAL (50)
    runs concurrently, LOW (100) is scheduled in the background.
    """

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


@dataclass(slots=True, frozen=True)
class EventListener:
    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str],
        once: bool,
    ) -> EventListener:
        if identifier is None:
            module = getattr(callback, "__module__", "unknown")
            qualname = getattr(
                callback, "__qualname__", getattr(callback, "__name__", "callback")
            )
            identifier = f"{module}.{qualname}@{event_name}"
        return cls(callback=callback, priority=priority, identifier=identifier, once=once)


def matches(event_name: str, pattern: str) -> bool:
    """
    Check if an event name matches a wildcard pattern.

    >>> matches("player.level_up", "player.*")
    True
    >>> matches("rewards.task_claimed", "*.task_claimed")
    True
    >>> matches("player.level_up", "referral.*")
    False
    """
    if pattern == "*":
        return True
    if "*" not in pattern:
        return event_name == pattern

    while "**" in pattern:
        pattern = pattern.replace("**", "*")

    parts = pattern.split("*")
    if parts[0] and not event_name.startswith(parts[0]):
        return False
    if parts[-1] and not event_name.endswith(parts[-1]):
        return False

    idx = len(parts[0])
    for mid in parts[1:-1]:
        if not mid:
            continue
        next_idx = event_name.find(mid, idx)
        if next_idx == -1:
            return False
        idx = next_idx + len(mid)

    return True


class EventBus:
    """
    Async EventBus with priority tiers and wildcard routing.

    Examples
    --------
    >>> bus = EventBus(config_manager=ConfigManager)
    >>> bus.subscribe("player.level_up", on_level_up, priority=ListenerPriority.HIGH)
    >>> await bus.publish("player.level_up", {"telegram_id": 123, "new_level": 5})
    """

    def __init__(
        self,
        config_manager: Optional[Any] = None,
        *,
        listener_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._listeners: Dict[str, List[EventListener]] = {}
        self._background_tasks: Set[asyncio.Task[Any]] = set()
        self._published: Dict[str, int] = {}
        self._errors: Dict[str, int] = {}

        self._timeout = self._load_timeout(
            key="core.event.listener_timeout_seconds",
            override=listener_timeout_seconds,
            default=5.0,
        )

        logger.info(
            "EventBus initialized",
            extra={"listener_timeout_seconds": self._timeout},
        )

    # ------------------------------------------------------------------ #
    # Configuration Loading
    # ------------------------------------------------------------------ #

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        """Resolve timeout with fallback chain: override, config, default."""
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return float(default)

        value = self._config_manager.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid listener timeout in config, using default",
                extra={"config_key": key, "value": value, "default_value": default},
            )
            return float(default)

    # ------------------------------------------------------------------ #
    # Listener Validation
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """
        Ensure callback accepts exactly one parameter.

        Raises
        ------
        ValueError:
            If callback signature is invalid.
        """
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            # Built-ins may not expose a signature
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            callback_name = getattr(callback, "__qualname__", None) or getattr(
                callback, "__name__", repr(callback)
            )
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event or wildcard pattern.

        Returns the listener identifier (for unsubscribing later). Registering
        the same identifier twice for one event is ignored.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        bucket = self._listeners.setdefault(event_name, [])
        if any(existing.identifier == listener.identifier for existing in bucket):
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )
            return listener.identifier

        bucket.append(listener)
        bucket.sort(key=lambda item: item.priority.value)

        logger.debug(
            "EventBus: subscribed listener",
            extra={
                "event_name": event_name,
                "listener_id": listener.identifier,
                "priority": listener.priority.name,
                "once": listener.once,
            },
        )
        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        bucket = self._listeners.get(event_name, [])
        remaining = [item for item in bucket if item.identifier != identifier]
        removed = len(remaining) != len(bucket)

        if remaining:
            self._listeners[event_name] = remaining
        else:
            self._listeners.pop(event_name, None)

        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        """Remove all listeners from all events."""
        total = self.get_listener_count()
        self._listeners.clear()
        logger.info(
            "EventBus: cleared all listeners",
            extra={"previous_listener_count": total},
        )

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    def _extract_listeners(self, event_name: str) -> List[EventListener]:
        selected: List[EventListener] = []
        for pattern, bucket in list(self._listeners.items()):
            if not matches(event_name, pattern):
                continue
            selected.extend(bucket)
            once_ids = {item.identifier for item in bucket if item.once}
            if once_ids:
                # Pruned before execution so a slow one-shot listener never fires twice
                kept = [item for item in bucket if item.identifier not in once_ids]
                if kept:
                    self._listeners[pattern] = kept
                else:
                    self._listeners.pop(pattern, None)

        selected.sort(key=lambda item: item.priority.value)
        return selected

    async def _invoke(
        self, event_name: str, listener: EventListener, payload: EventPayload
    ) -> Any:
        try:
            result = listener.callback(payload)
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, timeout=self._timeout)
            return result
        except asyncio.TimeoutError:
            self._errors[event_name] = self._errors.get(event_name, 0) + 1
            logger.error(
                "EventBus: listener timed out",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "timeout_seconds": self._timeout,
                },
            )
        except Exception as exc:
            self._errors[event_name] = self._errors.get(event_name, 0) + 1
            logger.error(
                "EventBus: listener failed",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
        return None

    async def publish(self, event_name: str, data: EventPayload) -> List[Any]:
        """
        Publish an event to all subscribed listeners.

        Returns results from CRITICAL/HIGH/NORMAL listeners; failed or timed
        out listeners contribute None. LOW listeners are not awaited.
        """
        self._published[event_name] = self._published.get(event_name, 0) + 1

        listeners = self._extract_listeners(event_name)
        if not listeners:
            logger.debug(
                "EventBus: no listeners for event",
                extra={"event_name": event_name},
            )
            return []

        logger.debug(
            "EventBus: publishing event",
            extra={
                "event_name": event_name,
                "listener_count": len(listeners),
                "payload_keys": list(data.keys()),
            },
        )

        results: List[Any] = []

        sequential = [
            item
            for item in listeners
            if item.priority in (ListenerPriority.CRITICAL, ListenerPriority.HIGH)
        ]
        concurrent = [item for item in listeners if item.priority is ListenerPriority.NORMAL]
        background = [item for item in listeners if item.priority is ListenerPriority.LOW]

        for listener in sequential:
            results.append(await self._invoke(event_name, listener, data))

        if concurrent:
            results.extend(
                await asyncio.gather(
                    *(self._invoke(event_name, item, data) for item in concurrent)
                )
            )

        for listener in background:
            task = asyncio.create_task(self._invoke(event_name, listener, data))
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

        return results

    async def drain(self) -> None:
        """Wait for all background (LOW) listeners to finish."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        """
        Number of listeners; with `event_name`, the number that would receive
        that event (wildcards included).
        """
        if event_name:
            return sum(
                len(bucket)
                for pattern, bucket in self._listeners.items()
                if matches(event_name, pattern)
            )
        return sum(len(bucket) for bucket in self._listeners.values())

    def get_all_events(self) -> List[str]:
        return sorted(self._listeners.keys())

    def get_metrics_summary(self) -> Dict[str, Any]:
        total_published = sum(self._published.values())
        total_errors = sum(self._errors.values())
        return {
            "total_events_published": total_published,
            "events_by_type": dict(self._published),
            "total_errors": total_errors,
            "errors_by_event": dict(self._errors),
            "total_listeners": self.get_listener_count(),
        }
