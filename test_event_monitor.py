"""
Tests for the new-event poll handler: silent baseline, at-most-once
announcements, retry after failed sends and message batching.
"""
from datetime import timedelta
from zoneinfo import ZoneInfo

import pytest

from bot.events.dedup import DedupEngine
from bot.events.models import TimeWindow
from bot.tasks.event_monitor import NewEventsHandler, batch_for_messages
from bot.tasks.schedules import IntervalSchedule, Task, TaskKind
from utils.error_handling import FetchError, SendError, StoreError
from utils.message_formatter import DISCORD_MESSAGE_LIMIT, format_new_events
from test_support import (
    FailingStore,
    FakeClock,
    RecordingNotifier,
    ScriptedCalendar,
    make_event,
    utc,
)

BERLIN = ZoneInfo("Europe/Berlin")
CHANNEL = 555
TASK = Task("new_events", TaskKind.POLL_NEW_EVENTS, IntervalSchedule(300))


class Harness:
    def __init__(self, silent_baseline=True):
        self.clock = FakeClock(utc(2024, 1, 1))
        self.store = FailingStore()
        self.calendar = ScriptedCalendar()
        self.notifier = RecordingNotifier()
        self.dedup = DedupEngine(self.store, "test", clock=self.clock)
        self.handler = NewEventsHandler(
            self.calendar, self.notifier, self.dedup, CHANNEL, BERLIN,
            lookahead_days=28, silent_baseline=silent_baseline, clock=self.clock,
        )

    async def poll(self):
        await self.handler(TASK, self.clock())


@pytest.mark.asyncio
async def test_first_poll_records_silent_baseline():
    h = Harness()
    h.calendar.events = [make_event("1", utc(2024, 1, 3, 10)), make_event("2", utc(2024, 1, 5, 10))]

    await h.poll()
    assert h.notifier.sent == []
    assert await h.dedup.has_baseline(TASK.name)

    h.calendar.events.append(make_event("3", utc(2024, 1, 6, 10), summary="Planning"))
    await h.poll()
    assert len(h.notifier.sent) == 1
    channel, content = h.notifier.sent[0]
    assert channel == CHANNEL
    assert "Planning" in content
    assert "Event 1" not in content


@pytest.mark.asyncio
async def test_empty_calendar_still_creates_baseline():
    h = Harness()
    await h.poll()
    h.calendar.events = [make_event("1", utc(2024, 1, 3, 10))]
    await h.poll()
    assert len(h.notifier.sent) == 1


@pytest.mark.asyncio
async def test_without_silent_baseline_everything_is_announced_once():
    h = Harness(silent_baseline=False)
    h.calendar.events = [make_event("1", utc(2024, 1, 3, 10)), make_event("2", utc(2024, 1, 5, 10))]

    await h.poll()
    await h.poll()
    assert len(h.notifier.sent) == 1
    assert "Event 1" in h.notifier.contents[0] and "Event 2" in h.notifier.contents[0]


@pytest.mark.asyncio
async def test_failed_send_leaves_events_for_next_poll():
    h = Harness(silent_baseline=False)
    h.calendar.events = [make_event("1", utc(2024, 1, 3, 10))]

    h.notifier.fail = True
    with pytest.raises(SendError):
        await h.poll()
    assert h.notifier.sent == []

    h.notifier.fail = False
    await h.poll()
    assert len(h.notifier.sent) == 1
    await h.poll()
    assert len(h.notifier.sent) == 1


@pytest.mark.asyncio
async def test_fetch_error_skips_the_cycle():
    h = Harness(silent_baseline=False)
    h.calendar.fail = True
    with pytest.raises(FetchError):
        await h.poll()
    assert h.notifier.sent == []
    assert not await h.dedup.has_baseline(TASK.name)


@pytest.mark.asyncio
async def test_unreachable_store_sends_nothing():
    h = Harness()
    h.calendar.events = [make_event("1", utc(2024, 1, 3, 10))]
    await h.poll()
    h.calendar.events.append(make_event("2", utc(2024, 1, 4, 10)))

    h.store.fail_reads = True
    with pytest.raises(StoreError):
        await h.poll()
    assert h.notifier.sent == []

    h.store.fail_reads = False
    await h.poll()
    assert len(h.notifier.sent) == 1


@pytest.mark.asyncio
async def test_poll_window_is_lookahead_from_now():
    h = Harness()
    await h.poll()
    now = h.clock()
    assert h.calendar.windows == [TimeWindow(now, now + timedelta(days=28))]


@pytest.mark.asyncio
async def test_partial_batch_failure_does_not_reannounce_sent_batches():
    h = Harness(silent_baseline=False)
    long_title = "x" * 150
    h.calendar.events = [
        make_event(str(i), utc(2024, 1, 2) + timedelta(hours=i), summary=f"{long_title} {i}")
        for i in range(40)
    ]

    h.notifier.fail_from_call = 2
    with pytest.raises(SendError):
        await h.poll()
    first_batch = h.notifier.contents[0]
    assert len(first_batch) <= DISCORD_MESSAGE_LIMIT

    h.notifier.fail_from_call = None
    await h.poll()
    later = "\n".join(h.notifier.contents[1:])
    announced_first = {line for line in first_batch.splitlines() if line.startswith("•")}
    assert announced_first
    assert not any(line in later for line in announced_first)
    assert sum(c.count("•") for c in h.notifier.contents) == 40


def test_batches_fit_in_one_message():
    events = [make_event(str(i), utc(2024, 1, 2) + timedelta(hours=i), summary="y" * 300) for i in range(20)]
    batches = list(batch_for_messages(events, BERLIN))
    assert len(batches) > 1
    assert sum(len(b) for b in batches) == 20
    for batch in batches:
        assert len(format_new_events(batch, BERLIN)) <= DISCORD_MESSAGE_LIMIT
