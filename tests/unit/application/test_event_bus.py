"""Tests for EventBus delivery semantics"""

import pytest

from inboxlink.application.events import Event, EventBus, EventType


def _event(event_type: EventType = EventType.TOKEN_REFRESHED, **data) -> Event:
    return Event(type=event_type, data=data)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_subscribers_receive_matching_events_only():
    bus = EventBus()
    refreshed, cleared = [], []
    bus.subscribe(EventType.TOKEN_REFRESHED, refreshed.append)
    bus.subscribe(EventType.TOKEN_CLEARED, cleared.append)

    await bus.start()
    await bus.publish(_event(source="sso"))
    await bus.stop()

    assert [e.data for e in refreshed] == [{"source": "sso"}]
    assert cleared == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_events_published_before_start_are_delivered():
    bus = EventBus()
    received = []
    bus.subscribe(EventType.TOKEN_CLEARED, received.append)

    bus.publish_sync(_event(EventType.TOKEN_CLEARED))
    await bus.start()
    await bus.stop()

    assert len(received) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_global_handlers_run_before_typed_handlers():
    bus = EventBus()
    order = []
    bus.subscribe(EventType.MESSAGE_RECEIVED, lambda e: order.append("typed"))
    bus.add_handler(lambda e: order.append("global"))

    await bus.start()
    bus.publish_sync(_event(EventType.MESSAGE_RECEIVED))
    await bus.stop()

    assert order == ["global", "typed"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_async_handlers_are_awaited():
    bus = EventBus()
    received = []

    async def handler(event):
        received.append(event.type)

    bus.subscribe(EventType.CONNECTION_STATE_CHANGED, handler)
    await bus.start()
    await bus.publish(_event(EventType.CONNECTION_STATE_CHANGED))
    await bus.stop()

    assert received == [EventType.CONNECTION_STATE_CHANGED]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failing_handler_does_not_block_others():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("subscriber bug")

    bus.subscribe(EventType.TOKEN_REFRESHED, broken)
    bus.subscribe(EventType.TOKEN_REFRESHED, received.append)

    await bus.start()
    await bus.publish(_event())
    await bus.publish(_event())
    await bus.stop()

    assert len(received) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery():
    bus = EventBus()
    received = []
    bus.subscribe(EventType.TOKEN_REFRESHED, received.append)
    bus.unsubscribe(EventType.TOKEN_REFRESHED, received.append)
    bus.unsubscribe(EventType.TOKEN_CLEARED, received.append)

    await bus.start()
    await bus.publish(_event())
    await bus.stop()

    assert received == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_start_and_stop_are_idempotent():
    bus = EventBus()

    await bus.stop()
    await bus.start()
    await bus.start()
    assert bus.is_running is True

    await bus.stop()
    await bus.stop()
    assert bus.is_running is False
