import asyncio
from datetime import datetime, timezone

import pytest

from fitleague import scheduler
from fitleague.config import settings
from fitleague.core.locks import KeyedLock, RunGuard, advisory_key


def test_daily_run_waits_for_local_midnight():
    # 07:00 in Bogota, so the next close is 17 hours away
    now = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)
    assert scheduler.seconds_until_daily_run(now) == 17 * 3600


def test_weekly_run_targets_sunday_end_of_day():
    wednesday = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)
    assert scheduler.seconds_until_weekly_run(wednesday) == 4 * 86400 + 16 * 3600 + 59 * 60 + 59

    # A tick that lands exactly on the rotation moment waits for next week
    rotation = datetime(2026, 10, 19, 4, 59, 59, tzinfo=timezone.utc)
    assert scheduler.seconds_until_weekly_run(rotation) == 7 * 86400


def test_advisory_key_is_stable():
    assert advisory_key("job", "x") == advisory_key("job", "x")
    assert advisory_key("job", "x") != advisory_key("user", "x")
    assert -(2 ** 63) <= advisory_key("job", "x") < 2 ** 63


@pytest.mark.asyncio
async def test_run_guard_skips_while_running():
    guard = RunGuard("test-job")
    async with guard.try_run() as first:
        assert first is True
        async with guard.try_run() as second:
            assert second is False
    async with guard.try_run() as after:
        assert after is True


@pytest.mark.asyncio
async def test_rotation_is_skipped_while_one_is_in_flight(session_factory):
    async with scheduler.ROTATION_GUARD.try_run() as acquired:
        assert acquired
        assert await scheduler.run_rotation(session_factory) is None


@pytest.mark.asyncio
async def test_sweep_runs_when_idle(session_factory):
    summary = await scheduler.run_mission_sweep(session_factory)
    assert summary is not None
    assert summary.errors == []


@pytest.mark.asyncio
async def test_keyed_lock_serializes_same_key():
    locks = KeyedLock()
    events = []

    async def worker(key, name):
        async with locks.hold(key):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(worker("u1", "a"), worker("u1", "b"))
    assert events == ["a-in", "a-out", "b-in", "b-out"]
    assert not locks.is_held("u1")
    assert locks._locks == {}


@pytest.mark.asyncio
async def test_keyed_lock_lets_other_keys_through():
    locks = KeyedLock()
    events = []

    async def worker(key):
        async with locks.hold(key):
            events.append(f"{key}-in")
            await asyncio.sleep(0.01)
            events.append(f"{key}-out")

    await asyncio.gather(worker("u1"), worker("u2"))
    assert events[:2] == ["u1-in", "u2-in"]


@pytest.mark.asyncio
async def test_schedulers_can_be_disabled(monkeypatch, session_factory):
    monkeypatch.setattr(settings, "SCHEDULERS_ENABLED", False)
    assert scheduler.start_schedulers(session_factory) == []


@pytest.mark.asyncio
async def test_stop_schedulers_cancels_loops():
    task = asyncio.create_task(asyncio.sleep(3600))
    await scheduler.stop_schedulers([task])
    assert task.cancelled()
