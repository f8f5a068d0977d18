"""
Tests for the scheduler loop: run markers, catch-up after downtime, failure
handling, in-flight protection and shutdown.
"""
import asyncio
from datetime import time, timedelta
from zoneinfo import ZoneInfo

import pytest

from bot.tasks.run_markers import RunMarker, RunMarkerStore
from bot.tasks.schedules import DailySchedule, IntervalSchedule, Task, TaskKind
from bot.tasks.scheduler import CancellationToken, Scheduler
from utils.error_handling import FetchError
from test_support import FailingStore, FakeClock, utc

NS = "test"
UTC = ZoneInfo("UTC")


class RecordingHandler:
    """Records (task name, fired_at); can fail or block on demand."""

    def __init__(self):
        self.calls = []
        self.error = None
        self.gate = None

    async def __call__(self, task, fired_at):
        self.calls.append((task.name, fired_at))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error


def make_scheduler(store, handler, clock=None, **kwargs):
    handlers = {kind: handler for kind in TaskKind}
    return Scheduler(store, handlers, NS, clock=clock or FakeClock(utc(2024, 1, 1)), **kwargs)


def poll_task(seconds=300, name="poll"):
    return Task(name, TaskKind.POLL_NEW_EVENTS, IntervalSchedule(seconds))


def daily_task(at=time(6, 0), name="daily"):
    return Task(name, TaskKind.DAILY_DIGEST, DailySchedule(at, UTC))


# --- registration ---

def test_duplicate_task_name_is_rejected():
    scheduler = make_scheduler(FailingStore(), RecordingHandler())
    scheduler.register(poll_task())
    with pytest.raises(ValueError):
        scheduler.register(poll_task())


def test_task_without_handler_is_rejected():
    scheduler = Scheduler(FailingStore(), {}, NS)
    with pytest.raises(ValueError):
        scheduler.register(poll_task())


# --- markers ---

@pytest.mark.asyncio
async def test_successful_run_persists_marker():
    store, handler = FailingStore(), RecordingHandler()
    now = utc(2024, 1, 1, 12)
    scheduler = make_scheduler(store, handler)
    scheduler.register(poll_task())

    await scheduler.prepare(now)
    assert await scheduler.tick(now) == ["poll"]
    assert await scheduler.drain(timeout=1)

    assert handler.calls == [("poll", now)]
    assert await RunMarkerStore(store, NS).load("poll") == now
    assert scheduler.planned_for("poll") == now + timedelta(seconds=300)


@pytest.mark.asyncio
async def test_failed_handler_keeps_marker_and_waits_for_next_interval():
    store, handler = FailingStore(), RecordingHandler()
    handler.error = FetchError("calendar down")
    last = utc(2024, 1, 1, 12)
    await RunMarkerStore(store, NS).save("poll", last)

    scheduler = make_scheduler(store, handler)
    task = poll_task(300)
    scheduler.register(task)
    await scheduler.prepare(last + timedelta(seconds=10))
    assert scheduler.planned_for("poll") == last + timedelta(seconds=300)

    fire = last + timedelta(seconds=300)
    assert await scheduler.tick(fire) == ["poll"]
    await scheduler.drain(timeout=1)

    marker = await RunMarkerStore(store, NS).load("poll")
    assert marker == last
    assert task.schedule.next_fire_time(last + timedelta(seconds=10), marker) == last + timedelta(seconds=300)
    assert scheduler.health.error_count("poll") == 1
    # No tight retry loop: nothing fires again before the next regular instant
    assert await scheduler.tick(fire + timedelta(seconds=1)) == []
    assert scheduler.planned_for("poll") == last + timedelta(seconds=600)


@pytest.mark.parametrize("error", [None, FetchError("calendar down")])
@pytest.mark.asyncio
async def test_overdue_interval_fires_once_then_waits_a_full_interval(error):
    store, handler = FailingStore(), RecordingHandler()
    handler.error = error
    last = utc(2024, 1, 1, 12)
    await RunMarkerStore(store, NS).save("poll", last)

    scheduler = make_scheduler(store, handler)
    scheduler.register(poll_task(300))
    await scheduler.prepare(last + timedelta(seconds=10))

    # Clock jumps well past several intervals
    jumped = last + timedelta(seconds=1000)
    assert await scheduler.tick(jumped) == ["poll"]
    await scheduler.drain(timeout=1)
    assert await scheduler.tick(jumped + timedelta(milliseconds=5)) == []

    assert handler.calls == [("poll", last + timedelta(seconds=300))]
    assert scheduler.planned_for("poll") == jumped + timedelta(seconds=300)


@pytest.mark.asyncio
async def test_unexpected_handler_exception_is_contained():
    store, handler = FailingStore(), RecordingHandler()
    handler.error = RuntimeError("boom")
    now = utc(2024, 1, 1, 12)
    scheduler = make_scheduler(store, handler)
    scheduler.register(poll_task())
    await scheduler.prepare(now)
    await scheduler.tick(now)
    assert await scheduler.drain(timeout=1)
    assert await RunMarkerStore(store, NS).load("poll") is None
    assert not scheduler.health.is_running("poll")


@pytest.mark.asyncio
async def test_marker_written_by_another_run_skips_handler():
    store, handler = FailingStore(), RecordingHandler()
    now = utc(2024, 1, 1, 12)
    scheduler = make_scheduler(store, handler)
    scheduler.register(poll_task())
    await scheduler.prepare(now)

    await RunMarkerStore(store, NS).save("poll", now)
    await scheduler.tick(now)
    await scheduler.drain(timeout=1)
    assert handler.calls == []


@pytest.mark.asyncio
async def test_repeated_marker_failures_are_counted():
    store, handler = FailingStore(), RecordingHandler()
    store.fail_writes = True
    now = utc(2024, 1, 1, 12)
    scheduler = make_scheduler(store, handler)
    scheduler.register(poll_task(60))
    await scheduler.prepare(now)

    await scheduler.tick(now)
    await scheduler.drain(timeout=1)
    await scheduler.tick(now + timedelta(seconds=60))
    await scheduler.drain(timeout=1)

    assert len(handler.calls) == 2
    assert scheduler.health.marker_failures("poll") == 2

    store.fail_writes = False
    await scheduler.tick(now + timedelta(seconds=120))
    await scheduler.drain(timeout=1)
    assert scheduler.health.marker_failures("poll") == 0


@pytest.mark.asyncio
async def test_unreadable_marker_is_treated_as_never_run():
    store, handler = FailingStore(), RecordingHandler()
    await store.set(RunMarkerStore(store, NS).key_for("poll"), b"garbage")
    now = utc(2024, 1, 1, 12)
    scheduler = make_scheduler(store, handler)
    scheduler.register(poll_task())
    await scheduler.prepare(now)
    assert scheduler.planned_for("poll") == now


def test_run_marker_encoding_is_utc_json():
    marker = RunMarker("daily", utc(2024, 1, 1, 6))
    assert RunMarker.decode(marker.encode()) == marker
    assert b'"last_fired_at": "2024-01-01T06:00:00+00:00"' in marker.encode()


# --- catch-up and crash recovery ---

@pytest.mark.asyncio
async def test_missed_daily_run_within_grace_fires_on_startup():
    store, handler = FailingStore(), RecordingHandler()
    now = utc(2024, 1, 1, 6, 30)
    scheduler = make_scheduler(store, handler, misfire_grace=3600)
    scheduler.register(daily_task())
    await scheduler.prepare(now)

    assert scheduler.planned_for("daily") == utc(2024, 1, 1, 6)
    await scheduler.tick(now)
    await scheduler.drain(timeout=1)
    assert handler.calls == [("daily", utc(2024, 1, 1, 6))]
    assert scheduler.planned_for("daily") == utc(2024, 1, 2, 6)


@pytest.mark.asyncio
async def test_missed_daily_run_outside_grace_is_skipped():
    scheduler = make_scheduler(FailingStore(), RecordingHandler(), misfire_grace=3600)
    scheduler.register(daily_task())
    await scheduler.prepare(utc(2024, 1, 1, 8))
    assert scheduler.planned_for("daily") == utc(2024, 1, 2, 6)


@pytest.mark.asyncio
async def test_daily_run_already_recorded_is_not_repeated():
    store = FailingStore()
    await RunMarkerStore(store, NS).save("daily", utc(2024, 1, 1, 6))
    scheduler = make_scheduler(store, RecordingHandler(), misfire_grace=3600)
    scheduler.register(daily_task())
    await scheduler.prepare(utc(2024, 1, 1, 6, 30))
    assert scheduler.planned_for("daily") == utc(2024, 1, 2, 6)


@pytest.mark.asyncio
async def test_crash_before_marker_fires_at_most_once_more():
    store, handler = FailingStore(), RecordingHandler()
    fire = utc(2024, 1, 1, 6)

    # First process: handler succeeds but the marker is never written
    store.fail_writes = True
    first = make_scheduler(store, handler)
    first.register(daily_task())
    await first.prepare(fire - timedelta(minutes=1))
    await first.tick(fire)
    await first.drain(timeout=1)
    store.fail_writes = False

    # Restart inside the grace window: one catch-up run, marker persisted
    second = make_scheduler(store, handler)
    second.register(daily_task())
    restart = fire + timedelta(minutes=5)
    await second.prepare(restart)
    await second.tick(restart)
    await second.drain(timeout=1)

    # Further restarts never fire the same instant again
    third = make_scheduler(store, handler)
    third.register(daily_task())
    await third.prepare(restart + timedelta(minutes=1))
    assert await third.tick(restart + timedelta(minutes=1)) == []

    assert handler.calls == [("daily", fire), ("daily", fire)]
    assert await RunMarkerStore(store, NS).load("daily") == fire


# --- concurrency ---

@pytest.mark.asyncio
async def test_task_still_running_is_not_started_again():
    store, handler = FailingStore(), RecordingHandler()
    handler.gate = asyncio.Event()
    now = utc(2024, 1, 1, 12)
    scheduler = make_scheduler(store, handler)
    scheduler.register(poll_task(60))
    await scheduler.prepare(now)

    assert await scheduler.tick(now) == ["poll"]
    await asyncio.sleep(0)
    assert await scheduler.tick(now + timedelta(seconds=60)) == []
    assert scheduler.health.is_running("poll")

    handler.gate.set()
    assert await scheduler.drain(timeout=1)
    assert len(handler.calls) == 1


@pytest.mark.asyncio
async def test_slow_task_does_not_block_other_tasks():
    store, handler = FailingStore(), RecordingHandler()
    handler.gate = asyncio.Event()
    now = utc(2024, 1, 1, 12)
    scheduler = make_scheduler(store, handler)
    scheduler.register(poll_task(60, name="slow"))
    scheduler.register(poll_task(60, name="other"))
    await scheduler.prepare(now)

    assert await scheduler.tick(now) == ["slow", "other"]
    for _ in range(5):
        await asyncio.sleep(0)
    assert {name for name, _ in handler.calls} == {"slow", "other"}
    handler.gate.set()
    await scheduler.drain(timeout=1)


@pytest.mark.asyncio
async def test_drain_reports_stragglers_without_cancelling_them():
    store, handler = FailingStore(), RecordingHandler()
    handler.gate = asyncio.Event()
    now = utc(2024, 1, 1, 12)
    scheduler = make_scheduler(store, handler)
    scheduler.register(poll_task())
    await scheduler.prepare(now)
    await scheduler.tick(now)

    assert not await scheduler.drain(timeout=0.01)
    handler.gate.set()
    assert await scheduler.drain(timeout=1)
    assert await RunMarkerStore(store, NS).load("poll") == now


# --- run loop ---

@pytest.mark.asyncio
async def test_run_fires_due_task_and_stops_on_request():
    store, handler = FailingStore(), RecordingHandler()
    scheduler = make_scheduler(store, handler, max_sleep=0.01)
    scheduler.register(poll_task(3600))

    runner = asyncio.create_task(scheduler.run())
    for _ in range(100):
        if handler.calls:
            break
        await asyncio.sleep(0.01)
    scheduler.stop()
    await asyncio.wait_for(runner, timeout=2)

    assert len(handler.calls) == 1
    assert scheduler.token.cancelled


@pytest.mark.asyncio
async def test_cancelled_scheduler_does_not_fire_due_task():
    store, handler = FailingStore(), RecordingHandler()
    now = utc(2024, 1, 1, 12)
    scheduler = make_scheduler(store, handler)
    scheduler.register(poll_task())
    await scheduler.prepare(now)

    scheduler.token.cancel()
    assert await scheduler.tick(now) == []
    assert await scheduler.drain(timeout=1)

    assert handler.calls == []
    assert await RunMarkerStore(store, NS).load("poll") is None
    assert scheduler.planned_for("poll") == now


@pytest.mark.asyncio
async def test_task_registered_while_running_is_planned_and_fired():
    store, handler = FailingStore(), RecordingHandler()
    scheduler = make_scheduler(store, handler, max_sleep=0.01)
    scheduler.register(poll_task(3600, name="early"))

    runner = asyncio.create_task(scheduler.run())
    for _ in range(100):
        if handler.calls:
            break
        await asyncio.sleep(0.01)
    scheduler.register(poll_task(3600, name="late"))
    for _ in range(100):
        if len(handler.calls) == 2:
            break
        await asyncio.sleep(0.01)
    scheduler.stop()
    await asyncio.wait_for(runner, timeout=2)

    assert [name for name, _ in handler.calls] == ["early", "late"]


@pytest.mark.asyncio
async def test_health_summary_reports_last_success():
    store, handler = FailingStore(), RecordingHandler()
    now = utc(2024, 1, 1, 12)
    scheduler = make_scheduler(store, handler)
    scheduler.register(poll_task(name="good"))
    await scheduler.prepare(now)
    await scheduler.tick(now)
    await scheduler.drain(timeout=1)

    handler.error = FetchError("calendar down")
    scheduler.register(poll_task(name="bad"))
    await scheduler.prepare(now)
    await scheduler.tick(now)
    await scheduler.drain(timeout=1)

    summary = scheduler.health.summary()
    assert scheduler.health.last_success("good") is not None
    assert scheduler.health.last_success("bad") is None
    assert "bad: idle (errors: 1, last success: never)" in summary
    assert "good: idle (errors: 0, last success: " in summary
    assert "good: idle (errors: 0, last success: never)" not in summary


@pytest.mark.asyncio
async def test_cancellation_token_wait_returns_early():
    token = CancellationToken()
    assert not await token.wait(0.01)
    asyncio.get_running_loop().call_later(0.01, token.cancel)
    assert await token.wait(5)
