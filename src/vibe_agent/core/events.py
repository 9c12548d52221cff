# src/vibe_agent/core/events.py

from __future__ import annotations

"""
Observation boundary.

A small in-process pub/sub bus. Notifications are advisory: handlers run synchronously in
publish order, and a failing handler is logged and skipped. Nothing in the state machine
depends on anyone listening.
"""

import logging
import threading
import time
import uuid
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    BOARD_CREATED = "board_created"
    BOARD_DELETED = "board_deleted"
    TASK_CREATED = "task_created"
    TASK_STATUS_CHANGED = "task_status_changed"
    EXECUTION_STARTED = "execution_started"
    EXECUTION_STOPPED = "execution_stopped"
    BOARD_WARNING = "board_warning"
    PERSISTENCE_ERROR = "persistence_error"


@dataclass(slots=True, frozen=True)
class Event:
    type: EventType
    board_id: str | None
    payload: dict[str, Any] = field(default_factory=dict)
    ts: float = field(default_factory=time.time)


EventHandler = Callable[[Event], Any]


@dataclass(slots=True)
class _Subscription:
    id: str
    handler: EventHandler
    event_types: frozenset[EventType] | None


class EventBus:
    def __init__(self, *, history_size: int = 200) -> None:
        self._subs: list[_Subscription] = []
        self._lock = threading.Lock()
        self._history: deque[Event] = deque(maxlen=max(1, int(history_size)))

    def subscribe(
        self,
        handler: EventHandler,
        event_types: Iterable[EventType] | None = None,
    ) -> str:
        """Register a handler for the given event types (all types when None). Returns a subscription id."""
        sub = _Subscription(
            id=uuid.uuid4().hex,
            handler=handler,
            event_types=frozenset(event_types) if event_types is not None else None,
        )
        with self._lock:
            self._subs.append(sub)
        return sub.id

    def unsubscribe(self, subscription_id: str) -> bool:
        with self._lock:
            for i, sub in enumerate(self._subs):
                if sub.id == subscription_id:
                    del self._subs[i]
                    return True
        return False

    def publish(self, event: Event) -> None:
        with self._lock:
            self._history.append(event)
            subs = list(self._subs)

        for sub in subs:
            if sub.event_types is not None and event.type not in sub.event_types:
                continue
            try:
                sub.handler(event)
            except Exception:
                logger.exception("Event handler failed event=%s subscription=%s", event.type.value, sub.id)

    def emit(self, event_type: EventType, board_id: str | None, **payload: Any) -> Event:
        event = Event(type=event_type, board_id=board_id, payload=payload)
        logger.debug("event %s board=%s %s", event_type.value, board_id, payload)
        self.publish(event)
        return event

    def history(self, event_type: EventType | None = None) -> list[Event]:
        with self._lock:
            events = list(self._history)
        if event_type is None:
            return events
        return [e for e in events if e.type == event_type]
