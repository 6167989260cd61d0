"""Synchronous observers for provisioning milestones."""

from __future__ import annotations

import bisect
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable

__all__ = ["Event", "EventHandler", "EventBus", "STANDARD_EVENTS"]

STANDARD_EVENTS = (
    "descriptor_loaded",
    "features_resolved",
    "toolchain_resolved",
    "closure_resolved",
    "environment_materialized",
    "build_finished",
    "artifact_wrapped",
)


@dataclass(frozen=True)
class Event:
    name: str
    payload: dict[str, Any] = field(default_factory=dict)


EventHandler = Callable[[Event], None]


class EventBus:
    """Call subscribers highest priority first; ties keep subscription order.

    Handlers run inline on the emitting thread and their exceptions propagate
    to the caller of :meth:`emit`.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[tuple[int, int, EventHandler]]] = {}
        self._counter = itertools.count()

    def on(self, event_name: str, handler: EventHandler, priority: int = 0) -> None:
        queue = self._subscribers.setdefault(event_name, [])
        # sort key is (-priority, arrival); handlers themselves are never compared
        key = (-priority, next(self._counter))
        position = bisect.bisect(queue, key, key=lambda item: item[:2])
        queue.insert(position, (*key, handler))

    def on_all(self, handler: EventHandler, priority: int = 0) -> None:
        for name in STANDARD_EVENTS:
            self.on(name, handler, priority=priority)

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        event = Event(event_name, payload)
        for _, _, handler in tuple(self._subscribers.get(event_name, ())):
            handler(event)
