"""Tests for TokenManager caching, refresh deduplication and auto-refresh"""

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from inboxlink.domain.models import EventType
from inboxlink.shared.exceptions import AuthenticationError, TransientNetworkError
from tests.factories import StubTokenManager


async def _release(manager: StubTokenManager) -> None:
    """Let queued waiters reach the gate, then open it"""
    await asyncio.sleep(0)
    assert manager.gate is not None
    manager.gate.set()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrent_get_token_shares_one_acquisition(clock):
    """All callers racing a refresh observe the same token"""
    manager = StubTokenManager([3600], clock)
    manager.gate = asyncio.Event()

    results, _ = await asyncio.gather(
        asyncio.gather(*(manager.get_token() for _ in range(5))),
        _release(manager),
    )

    assert len(manager.calls) == 1
    assert set(results) == {"token-1"}
    assert manager.is_refreshing is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_concurrent_failure_reaches_every_waiter_then_clears(clock):
    """A failed refresh rejects every waiter and does not poison the slot"""
    error = AuthenticationError("not signed in", code=13001)
    manager = StubTokenManager([error, 3600], clock)
    manager.gate = asyncio.Event()

    results, _ = await asyncio.gather(
        asyncio.gather(
            *(manager.get_token() for _ in range(3)), return_exceptions=True
        ),
        _release(manager),
    )

    assert len(manager.calls) == 1
    assert all(result is error for result in results)
    assert manager.is_refreshing is False
    assert manager.get_token_status().error == "not signed in"

    manager.gate = None
    assert await manager.get_token() == "token-2"
    assert len(manager.calls) == 2
    assert manager.get_token_status().error is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_token_inside_refresh_threshold_is_refreshed(clock):
    """A token expiring in 3 minutes is invalid, one in 10 minutes is valid"""
    manager = StubTokenManager([180, 600], clock)

    assert await manager.get_token() == "token-1"
    assert manager.is_token_valid() is False

    assert await manager.get_token() == "token-2"
    assert manager.is_token_valid() is True

    assert await manager.get_token() == "token-2"
    assert len(manager.calls) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cached_token_reused_until_threshold(clock):
    """Test cache hit before and refresh after the 5-minute threshold"""
    manager = StubTokenManager([3600, 3600], clock)

    await manager.get_token()
    clock.advance(3600 - 301)
    await manager.get_token()
    assert len(manager.calls) == 1

    clock.advance(2)
    assert await manager.get_token() == "token-2"
    assert len(manager.calls) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_force_refresh_discards_valid_token(clock):
    manager = StubTokenManager([3600, 3600], clock)

    await manager.get_token()
    assert await manager.force_refresh() == "token-2"
    assert len(manager.calls) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_clear_during_refresh_discards_late_result(clock):
    """An acquisition finishing after clear() is not cached"""
    manager = StubTokenManager([3600], clock)
    manager.gate = asyncio.Event()

    pending = asyncio.create_task(manager.get_token())
    await asyncio.sleep(0)
    manager.clear()
    manager.gate.set()

    assert await pending == "token-1"
    assert manager.is_authenticated is False
    assert manager.time_until_expiry() is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_waiter_cancellation_does_not_cancel_acquisition(clock):
    manager = StubTokenManager([3600], clock)
    manager.gate = asyncio.Event()

    first = asyncio.create_task(manager.get_token())
    second = asyncio.create_task(manager.get_token())
    await asyncio.sleep(0)
    first.cancel()
    manager.gate.set()

    assert await second == "token-1"
    assert first.cancelled()
    assert len(manager.calls) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_token_status_reports_expiry_and_refresh_times(clock):
    manager = StubTokenManager([1200], clock)

    status = manager.get_token_status()
    assert status.is_authenticated is False
    assert status.time_until_expiry is None
    assert status.time_until_refresh is None

    await manager.get_token()
    status = manager.get_token_status()
    assert status.is_authenticated is True
    assert status.has_valid_token is True
    assert status.time_until_expiry == 1200
    assert status.time_until_refresh == 900
    assert status.is_refreshing is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_events_published_for_refresh_outcomes(clock):
    bus = MagicMock()
    manager = StubTokenManager(
        [TransientNetworkError("offline"), 3600], clock, event_bus=bus
    )

    with pytest.raises(TransientNetworkError):
        await manager.get_token()
    await manager.get_token()
    manager.clear()

    published = [call.args[0].type for call in bus.publish_sync.call_args_list]
    assert published == [
        EventType.TOKEN_REFRESH_FAILED,
        EventType.TOKEN_REFRESHED,
        EventType.TOKEN_CLEARED,
    ]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_start_auto_refresh_without_token_returns_false(clock):
    manager = StubTokenManager([], clock)

    assert manager.start_auto_refresh() is False
    assert manager.auto_refresh_running is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_auto_refresh_renews_at_threshold_and_reschedules(clock, mocker):
    """Scheduled refresh fires at expiry minus 5 minutes, then reschedules"""
    manager = StubTokenManager([600, 600], clock)
    await manager.get_token()

    sleeps: list[float] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)
        if len(sleeps) == 2:
            raise asyncio.CancelledError
        clock.advance(delay)

    mocker.patch(
        "inboxlink.infrastructure.auth.token_manager.asyncio.sleep",
        side_effect=fake_sleep,
    )

    assert manager.start_auto_refresh() is True
    task = manager._auto_refresh_task
    with pytest.raises(asyncio.CancelledError):
        await task

    assert sleeps == [300, 300]
    assert manager.calls == [False, True]
    assert manager._cached is not None
    assert manager._cached.expires_at == clock.now + timedelta(seconds=600)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_auto_refresh_failure_retries_after_cooldown(clock, mocker):
    """A failed scheduled refresh waits the cooldown and tries again"""
    manager = StubTokenManager(
        [600, TransientNetworkError("offline"), 600], clock
    )
    await manager.get_token()

    sleeps: list[float] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)
        if len(sleeps) == 4:
            raise asyncio.CancelledError
        clock.advance(delay)

    mocker.patch(
        "inboxlink.infrastructure.auth.token_manager.asyncio.sleep",
        side_effect=fake_sleep,
    )

    manager.start_auto_refresh()
    with pytest.raises(asyncio.CancelledError):
        await manager._auto_refresh_task

    assert sleeps == [300, 60, 0, 300]
    assert manager.calls == [False, True, True]
    assert manager.is_token_valid() is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_stop_auto_refresh_cancels_task(clock):
    manager = StubTokenManager([3600], clock)
    await manager.get_token()

    manager.start_auto_refresh()
    task = manager._auto_refresh_task
    manager.stop_auto_refresh()
    await asyncio.sleep(0)

    assert task is not None and task.cancelled()
    assert manager.auto_refresh_running is False
