"""Tests for the domain event bus and the SSE bridge."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from schoolops.api.sse import event_frame, event_stream, is_sse_request, sse_frame
from schoolops.core.events import (DomainEvent, DomainEventType, EventBus,
                                   create_domain_event)

ANNOUNCED = DomainEventType.ANNOUNCEMENT_PUBLISHED
NOTIFIED = DomainEventType.NOTIFICATION_CREATED


def _notification(institution_id: int) -> DomainEvent:
    return create_domain_event(
        NOTIFIED,
        institution_id,
        {"channel": "system", "title": "Test", "body": "Test event", "actorId": 1},
    )


def test_recent_is_institution_scoped():
    bus = EventBus()
    event = _notification(1)
    bus.publish(event)

    assert [e.id for e in bus.recent(1, [NOTIFIED])] == [event.id]
    assert bus.recent(2, [NOTIFIED]) == []


def test_recent_filters_by_type_and_limit():
    bus = EventBus()
    published = [_notification(1) for _ in range(5)]
    for event in published:
        bus.publish(event)
    bus.publish(create_domain_event(ANNOUNCED, 1, {"title": "x"}))

    assert len(bus.recent(1, [ANNOUNCED])) == 1
    latest = bus.recent(1, [NOTIFIED], limit=2)
    assert [e.id for e in latest] == [e.id for e in published[-2:]]
    assert bus.recent(1, ["NotificationCreated"], limit=0) == []


def test_recent_since():
    bus = EventBus()
    old = DomainEvent(
        type=NOTIFIED,
        institution_id=1,
        timestamp=(datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat(),
    )
    new = _notification(1)
    bus.publish(old)
    bus.publish(new)

    cutoff = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
    assert [e.id for e in bus.recent(1, [NOTIFIED], since=cutoff)] == [new.id]
    # garbage "since" is ignored rather than failing
    assert len(bus.recent(1, [NOTIFIED], since="yesterday")) == 2


def test_history_is_bounded():
    bus = EventBus(max_history=3)
    for _ in range(10):
        bus.publish(_notification(1))
    assert len(bus.recent(1, [NOTIFIED])) == 3


def test_subscribe_and_unsubscribe():
    bus = EventBus()
    received: list[DomainEvent] = []
    unsubscribe = bus.subscribe([ANNOUNCED], received.append)

    bus.publish(_notification(1))
    announcement = create_domain_event(ANNOUNCED, 1, {"title": "Hi"})
    bus.publish(announcement)
    assert received == [announcement]

    unsubscribe()
    unsubscribe()  # idempotent
    bus.publish(create_domain_event(ANNOUNCED, 1, {"title": "Again"}))
    assert received == [announcement]
    assert bus.subscriber_count() == 0


def test_failing_subscriber_does_not_block_others():
    bus = EventBus()
    received: list[DomainEvent] = []

    def _boom(_event):
        raise RuntimeError("boom")

    bus.subscribe([NOTIFIED], _boom)
    bus.subscribe([NOTIFIED], received.append)
    bus.publish(_notification(1))
    assert len(received) == 1


def test_event_serialisation():
    event = create_domain_event("AnnouncementPublished", 7, {"title": "Exam week"})
    data = event.to_dict()
    assert data["type"] == "AnnouncementPublished"
    assert data["institutionId"] == 7
    assert data["payload"] == {"title": "Exam week"}
    assert data["id"] and data["timestamp"]


def test_unknown_event_type_rejected():
    with pytest.raises(ValueError):
        create_domain_event("GradesLeaked", 1, {})


# ── SSE ─────────────────────────────────────────────────────────────
def test_sse_frames():
    assert sse_frame("x") == "data: x\n\n"
    assert sse_frame("{}", event="ready") == "event: ready\ndata: {}\n\n"
    event = _notification(1)
    assert json.loads(event_frame(event)[len("data: "):].strip())["id"] == event.id


def test_is_sse_request():
    assert is_sse_request("text/event-stream")
    assert is_sse_request("text/html, text/event-stream;q=0.9")
    assert not is_sse_request("application/json")
    assert not is_sse_request(None)


@pytest.mark.asyncio
async def test_event_stream_delivers_backlog_then_live_events():
    bus = EventBus()
    backlog = create_domain_event(ANNOUNCED, 1, {"title": "Earlier"})
    bus.publish(backlog)

    stream = event_stream(1, [ANNOUNCED], heartbeat_seconds=5, bus=bus)
    try:
        ready = await stream.__anext__()
        assert ready.startswith("event: ready\n")
        assert bus.subscriber_count() == 1

        first = await stream.__anext__()
        assert backlog.id in first

        bus.publish(create_domain_event(ANNOUNCED, 2, {"title": "Other school"}))
        live = create_domain_event(ANNOUNCED, 1, {"title": "Live"})
        bus.publish(live)

        frame = await asyncio.wait_for(stream.__anext__(), timeout=2)
        assert live.id in frame
        assert "Other school" not in frame
    finally:
        await stream.aclose()

    assert bus.subscriber_count() == 0


@pytest.mark.asyncio
async def test_event_stream_heartbeat_and_disconnect():
    bus = EventBus()
    disconnected = False

    async def _is_disconnected() -> bool:
        return disconnected

    stream = event_stream(1, [ANNOUNCED], heartbeat_seconds=0.01, is_disconnected=_is_disconnected, bus=bus)
    await stream.__anext__()  # ready
    ping = await asyncio.wait_for(stream.__anext__(), timeout=2)
    assert ping.startswith("event: ping\n")

    disconnected = True
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(stream.__anext__(), timeout=2)
    assert bus.subscriber_count() == 0
