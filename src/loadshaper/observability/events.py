"""
Publish/subscribe interface for live run observers.

Observers register a callback per lifecycle event and receive a handle they
can later pass to ``unsubscribe``. Callbacks run synchronously on the emitting
task; a failing callback is logged and never reaches the engine.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

import structlog

from loadshaper.protocols import LifecycleEvent

logger = structlog.get_logger(__name__)

Callback = Callable[[LifecycleEvent, Dict[str, Any]], None]


@dataclass(frozen=True)
class Subscription:
    """Opaque handle returned by ``EventBus.subscribe``."""

    id: int
    event: LifecycleEvent


class EventBus:
    def __init__(self) -> None:
        self._subscribers: Dict[LifecycleEvent, Dict[int, Callback]] = {e: {} for e in LifecycleEvent}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, event: LifecycleEvent | str, callback: Callback) -> Subscription:
        event = LifecycleEvent(event)
        with self._lock:
            handle = Subscription(next(self._ids), event)
            self._subscribers[event][handle.id] = callback
        return handle

    def unsubscribe(self, handle: Subscription) -> bool:
        """Remove a subscription. Returns False if it was already removed."""
        with self._lock:
            return self._subscribers[handle.event].pop(handle.id, None) is not None

    def subscriber_count(self, event: LifecycleEvent) -> int:
        return len(self._subscribers[event])

    def emit(self, event: LifecycleEvent, payload: Dict[str, Any]) -> None:
        with self._lock:
            callbacks: List[Callback] = list(self._subscribers[event].values())
        for callback in callbacks:
            try:
                callback(event, payload)
            except Exception as e:
                logger.warning("Event observer failed", lifecycle_event=event.value, error=str(e))
