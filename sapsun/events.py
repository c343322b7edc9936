"""
Change records emitted by the store.

Every mutation appends a typed `ChangeEvent` to the store's `EventQueue`
instead of calling listeners directly. The caller (a renderer or UI)
drains the queue when it is ready, or calls `dispatch()` to fan the
pending records out to subscribers. Listeners therefore never run in the
middle of a mutation and may safely call back into the store.

The queue is bounded; when a caller never drains it the oldest records
are dropped first.
"""

import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventKind(Enum):
    SEGMENT_ADDED = "segment:added"
    SEGMENT_REMOVED = "segment:removed"
    SEGMENT_UPDATED = "segment:updated"
    RESOURCES_CHANGED = "resources:changed"
    CLIMATE_UPDATED = "climate:updated"
    SELECTION_CHANGED = "selection:changed"
    TICK = "tick"


@dataclass(frozen=True)
class ChangeEvent:
    """One state change, stamped with the tick it happened on."""

    kind: EventKind
    tick: int
    segment_ids: tuple[int, ...] = ()
    payload: Any = None


Listener = Callable[[ChangeEvent], None]


class EventQueue:
    """Bounded FIFO of change records with optional subscribers."""

    def __init__(self, limit: int = 10000) -> None:
        self._events: deque[ChangeEvent] = deque(maxlen=limit)
        self._listeners: list[Listener] = []

    def __len__(self) -> int:
        return len(self._events)

    def push(self, event: ChangeEvent) -> None:
        self._events.append(event)

    def drain(self) -> list[ChangeEvent]:
        """Remove and return all pending records, oldest first."""
        events = list(self._events)
        self._events.clear()
        return events

    def clear(self) -> None:
        self._events.clear()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self) -> int:
        """
        Deliver every pending record to every listener.

        Records produced by listeners during delivery stay queued for the
        next dispatch. Returns the number of records delivered.
        """
        events = self.drain()
        for event in events:
            for listener in list(self._listeners):
                listener(event)
        if events:
            logger.debug(
                "Dispatched %d change records to %d listeners", len(events), len(self._listeners)
            )
        return len(events)
