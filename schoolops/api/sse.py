"""
Server-Sent Events bridge between the domain event bus and HTTP clients.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

from schoolops.core.events import DomainEvent, DomainEventType, EventBus, event_bus

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def sse_frame(data: str, event: str | None = None) -> str:
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {data}\n\n"


def event_frame(event: DomainEvent) -> str:
    return sse_frame(json.dumps(event.to_dict()))


def is_sse_request(accept: str | None) -> bool:
    return bool(accept and "text/event-stream" in accept)


async def event_stream(
    institution_id: int,
    types: Iterable[DomainEventType | str],
    since: str | None = None,
    heartbeat_seconds: float = 30.0,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    bus: EventBus = event_bus,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for one client: a ``ready`` frame, the backlog since
    *since*, then live events for *institution_id* with ``ping`` frames
    whenever nothing happened for *heartbeat_seconds*.
    """
    types = [DomainEventType(t) for t in types]
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[DomainEvent] = asyncio.Queue()

    def _enqueue(event: DomainEvent) -> None:
        if event.institution_id == institution_id:
            loop.call_soon_threadsafe(queue.put_nowait, event)

    # Subscribe before reading the backlog so nothing published in between is lost.
    unsubscribe = bus.subscribe(types, _enqueue)
    try:
        yield sse_frame(json.dumps({"types": [t.value for t in types]}), event="ready")

        backlog = bus.recent(institution_id, types, since, limit=50)
        seen = {event.id for event in backlog}
        for event in backlog:
            yield event_frame(event)

        while True:
            if is_disconnected is not None and await is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield sse_frame(str(int(time.time() * 1000)), event="ping")
                continue
            if event.id in seen:
                continue
            yield event_frame(event)
    finally:
        unsubscribe()
