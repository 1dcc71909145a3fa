"""
In-process domain event bus.

Route handlers publish events after a successful write; realtime endpoints
subscribe and push them to connected clients. Events are always scoped to
one institution and nothing here is persisted: a restart clears history.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable

from schoolops.core.config import settings

logger = logging.getLogger(__name__)


class DomainEventType(str, Enum):
    ATTENDANCE_MARKED = "AttendanceMarked"
    ANNOUNCEMENT_PUBLISHED = "AnnouncementPublished"
    NOTIFICATION_CREATED = "NotificationCreated"


@dataclass(frozen=True)
class DomainEvent:
    type: DomainEventType
    institution_id: int
    payload: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "timestamp": self.timestamp,
            "institutionId": self.institution_id,
            "payload": self.payload,
        }


EventHandler = Callable[[DomainEvent], None]


def create_domain_event(
    event_type: DomainEventType | str,
    institution_id: int,
    payload: dict[str, Any],
) -> DomainEvent:
    return DomainEvent(
        type=DomainEventType(event_type),
        institution_id=institution_id,
        payload=dict(payload),
    )


class EventBus:
    """
    Publish/subscribe with a bounded history.

    Handlers run synchronously on the publisher's thread and must not block;
    the SSE bridge only hands the event to an asyncio queue.
    """

    def __init__(self, max_history: int = 500):
        self._lock = threading.Lock()
        self._history: deque[DomainEvent] = deque(maxlen=max_history)
        self._subscribers: list[tuple[frozenset[DomainEventType], EventHandler]] = []

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            self._history.append(event)
            subscribers = list(self._subscribers)

        for types, handler in subscribers:
            if event.type not in types:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s (%s)", event.type.value, event.id)

    def subscribe(
        self,
        types: Iterable[DomainEventType | str],
        handler: EventHandler,
    ) -> Callable[[], None]:
        """Register *handler* for *types*; returns a function that unsubscribes it."""
        entry = (frozenset(DomainEventType(t) for t in types), handler)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def recent(
        self,
        institution_id: int,
        types: Iterable[DomainEventType | str],
        since: str | None = None,
        limit: int = 50,
    ) -> list[DomainEvent]:
        """Newest *limit* matching events after *since* (ISO timestamp), oldest first."""
        wanted = frozenset(DomainEventType(t) for t in types)
        cutoff = _parse_timestamp(since)
        with self._lock:
            history = list(self._history)

        matched = [
            event
            for event in history
            if event.institution_id == institution_id
            and event.type in wanted
            and (cutoff is None or _parse_timestamp(event.timestamp) > cutoff)
        ]
        return matched[-limit:] if limit > 0 else []

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def clear(self) -> None:
        with self._lock:
            self._history.clear()
            self._subscribers.clear()


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Ignoring unparseable 'since' value: %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


event_bus = EventBus(max_history=settings.EVENT_HISTORY_SIZE)


def publish_domain_event(event: DomainEvent) -> None:
    event_bus.publish(event)
