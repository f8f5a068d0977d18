"""
Tests for component wiring and the async entry point.
"""
import asyncio

import pytest

from bot.components import ComponentManager, ComponentState
from bot.core import (
    DAILY_TASK,
    NEW_EVENTS_TASK,
    WEEKLY_TASK,
    HeraldContext,
    NotifierComponent,
    SchedulerComponent,
    StateStoreComponent,
    build_tasks,
    main,
)
from bot.storage import MemoryStateStore
from bot.tasks.schedules import TaskKind
from config.settings import MEMORY_STORE_URL, load_settings
from test_support import RecordingNotifier, ScriptedCalendar

ENV = {
    "DISCORD_BOT_TOKEN": "token",
    "CALENDAR_CHANNEL_ID": "42",
    "CALENDAR_SOURCE": "ics:https://example.com/cal.ics",
    "REDIS_URL": MEMORY_STORE_URL,
    "SHUTDOWN_GRACE_SECONDS": "1",
}


def settings_with(**overrides):
    env = dict(ENV)
    env.update(overrides)
    return load_settings(env)


def test_build_tasks_follows_toggles():
    assert [t.name for t in build_tasks(settings_with())] == [DAILY_TASK, WEEKLY_TASK, NEW_EVENTS_TASK]
    only_poll = build_tasks(settings_with(DAILY_DIGEST_ENABLED="false", WEEKLY_DIGEST_ENABLED="false"))
    assert [(t.name, t.kind) for t in only_poll] == [(NEW_EVENTS_TASK, TaskKind.POLL_NEW_EVENTS)]


def test_build_tasks_uses_configured_weekday():
    weekly = build_tasks(settings_with(WEEKLY_NOTIFICATION_DAY="wednesday"))[1]
    assert weekly.schedule.weekday == 2


@pytest.mark.asyncio
async def test_state_store_component_uses_memory_backend():
    ctx = HeraldContext(settings_with())
    component = StateStoreComponent()
    await component.init(ctx)
    assert isinstance(ctx.store, MemoryStateStore)
    await component.shutdown()


class FakeNotifier(RecordingNotifier):
    def __init__(self):
        super().__init__()
        self.started = False
        self.closed = False

    async def start(self):
        self.started = True

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_notifier_component_starts_and_closes():
    notifier = FakeNotifier()
    ctx = HeraldContext(settings_with())
    component = NotifierComponent(notifier)
    await component.init(ctx)
    assert ctx.notifier is notifier and notifier.started
    await component.shutdown()
    assert notifier.closed


@pytest.mark.asyncio
async def test_scheduler_component_runs_and_stops():
    ctx = HeraldContext(
        settings_with(DAILY_DIGEST_ENABLED="false", WEEKLY_DIGEST_ENABLED="false"),
        store=MemoryStateStore(),
        calendar=ScriptedCalendar(),
        notifier=RecordingNotifier(),
    )
    component = SchedulerComponent()
    await component.init(ctx)
    assert [t.name for t in ctx.scheduler.tasks] == [NEW_EVENTS_TASK]
    assert component.runner is not None and not component.runner.done()

    await component.shutdown()
    assert ctx.scheduler.token.cancelled
    assert component.runner is None


class Stub:
    def __init__(self, name, journal, fail=False):
        self._name = name
        self.journal = journal
        self.fail = fail

    def name(self):
        return self._name

    async def init(self, ctx):
        self.journal.append(("init", self._name))
        if self.fail:
            raise RuntimeError("nope")

    async def shutdown(self):
        self.journal.append(("shutdown", self._name))


@pytest.mark.asyncio
async def test_main_runs_until_stopped_then_shuts_down():
    journal = []
    manager = ComponentManager()
    manager.register(Stub("store", journal))
    manager.register(Stub("notifier", journal))
    stop = asyncio.Event()
    asyncio.get_running_loop().call_later(0.01, stop.set)

    assert await main(settings_with(), manager=manager, stop=stop) == 0
    assert journal == [("init", "store"), ("init", "notifier"), ("shutdown", "notifier"), ("shutdown", "store")]
    assert manager.state_of("store") is ComponentState.SHUT_DOWN


@pytest.mark.asyncio
async def test_main_reports_startup_failure():
    journal = []
    manager = ComponentManager()
    manager.register(Stub("store", journal))
    manager.register(Stub("notifier", journal, fail=True))

    assert await main(settings_with(), manager=manager, stop=asyncio.Event()) == 1
    assert ("shutdown", "store") in journal
