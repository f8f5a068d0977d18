# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                     CALENDAR HERALD CORE MODULE                            ║
# ║    Wires settings into components, starts them in order, and runs until    ║
# ║    SIGINT/SIGTERM, then shuts everything down in reverse.                  ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
core.py: Component wiring and the async entry point.
"""
import asyncio
import signal
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional

from bot.components import ComponentManager
from bot.events.dedup import DedupEngine
from bot.events.event_fetching import CalendarClient, create_calendar_client
from bot.notifier import DiscordNotifier
from bot.storage import StateStore, create_state_store
from bot.tasks import (
    DailyDigestHandler,
    DailySchedule,
    IntervalSchedule,
    NewEventsHandler,
    Scheduler,
    Task,
    TaskKind,
    WeeklyDigestHandler,
    WeeklySchedule,
)
from config.settings import Settings
from utils.error_handling import ComponentInitError, ComponentShutdownError, StoreError
from utils.logging import logger

DAILY_TASK = "daily_digest"
WEEKLY_TASK = "weekly_digest"
NEW_EVENTS_TASK = "new_events"

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ SHARED CONTEXT                                                            ║
# ╚════════════════════════════════════════════════════════════════════════════╝

@dataclass
class HeraldContext:
    """Filled in by the components as they come up."""
    settings: Settings
    store: Optional[StateStore] = None
    calendar: Optional[CalendarClient] = None
    notifier: Optional[DiscordNotifier] = None
    scheduler: Optional[Scheduler] = None

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ TASK TABLE                                                                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- build_tasks ---
# Returns: The enabled tasks for these settings, in a stable order.
def build_tasks(settings: Settings) -> List[Task]:
    tz = settings.timezone
    tasks = []
    if settings.daily_enabled:
        tasks.append(Task(DAILY_TASK, TaskKind.DAILY_DIGEST, DailySchedule(settings.daily_time, tz)))
    if settings.weekly_enabled:
        tasks.append(Task(WEEKLY_TASK, TaskKind.WEEKLY_DIGEST,
                          WeeklySchedule(at=settings.weekly_time, tz=tz, weekday=settings.weekly_day)))
    if settings.new_events_enabled:
        tasks.append(Task(NEW_EVENTS_TASK, TaskKind.POLL_NEW_EVENTS, IntervalSchedule(settings.poll_interval)))
    return tasks

# --- build_handlers ---
def build_handlers(settings: Settings, calendar: CalendarClient, notifier, dedup: DedupEngine) -> Dict[TaskKind, object]:
    tz = settings.timezone
    return {
        TaskKind.DAILY_DIGEST: DailyDigestHandler(
            calendar, notifier, settings.channel_id, tz, settings.post_empty_digests),
        TaskKind.WEEKLY_DIGEST: WeeklyDigestHandler(
            calendar, notifier, settings.channel_id, tz, settings.post_empty_digests),
        TaskKind.POLL_NEW_EVENTS: NewEventsHandler(
            calendar, notifier, dedup, settings.channel_id, tz,
            lookahead_days=settings.lookahead_days,
            silent_baseline=settings.silent_baseline,
        ),
    }

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ COMPONENTS                                                                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class StateStoreComponent:
    def __init__(self):
        self._store: Optional[StateStore] = None

    def name(self) -> str:
        return "state_store"

    async def init(self, ctx: HeraldContext) -> None:
        store = create_state_store(ctx.settings.redis_url)
        try:
            await store.ping()
        except StoreError:
            await store.close()
            raise
        ctx.store = store
        self._store = store

    async def shutdown(self) -> None:
        if self._store is not None:
            await self._store.close()
            self._store = None


class CalendarComponent:
    def name(self) -> str:
        return "calendar"

    async def init(self, ctx: HeraldContext) -> None:
        # Loading Google credentials reads files and may refresh a token
        ctx.calendar = await asyncio.to_thread(create_calendar_client, ctx.settings)
        logger.info(f"📆 Calendar source: {ctx.calendar.describe()}")

    async def shutdown(self) -> None:
        pass


class NotifierComponent:
    def __init__(self, notifier: Optional[DiscordNotifier] = None):
        self._notifier = notifier

    def name(self) -> str:
        return "notifier"

    async def init(self, ctx: HeraldContext) -> None:
        if self._notifier is None:
            self._notifier = DiscordNotifier(ctx.settings.discord_token)
        await self._notifier.start()
        ctx.notifier = self._notifier

    async def shutdown(self) -> None:
        if self._notifier is not None:
            await self._notifier.close()


class SchedulerComponent:
    def __init__(self):
        self._scheduler: Optional[Scheduler] = None
        self._runner: Optional[asyncio.Task] = None

    def name(self) -> str:
        return "scheduler"

    @property
    def runner(self) -> Optional[asyncio.Task]:
        return self._runner

    async def init(self, ctx: HeraldContext) -> None:
        settings = ctx.settings
        dedup = DedupEngine(
            ctx.store,
            settings.namespace,
            retention=timedelta(hours=settings.retention_hours),
            policy=settings.dedup_policy,
        )
        scheduler = Scheduler(
            ctx.store,
            build_handlers(settings, ctx.calendar, ctx.notifier, dedup),
            settings.namespace,
            misfire_grace=settings.misfire_grace,
            shutdown_grace=settings.shutdown_grace,
        )
        for task in build_tasks(settings):
            scheduler.register(task)
        if not scheduler.tasks:
            logger.warning("⚠️ Every task is disabled; the bot will idle")

        self._scheduler = scheduler
        ctx.scheduler = scheduler
        self._runner = asyncio.create_task(scheduler.run(), name="herald-scheduler")

    # --- shutdown ---
    # Stops the loop; run() itself waits out the shutdown grace.
    async def shutdown(self) -> None:
        if self._scheduler is None or self._runner is None:
            return
        self._scheduler.stop()
        await self._runner
        self._runner = None

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ ENTRY POINT                                                               ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- build_manager ---
# Registration order is init order; shutdown runs in reverse, so the
# scheduler stops before the notifier and store it depends on.
def build_manager() -> ComponentManager:
    manager = ComponentManager()
    manager.register(StateStoreComponent())
    manager.register(CalendarComponent())
    manager.register(NotifierComponent())
    manager.register(SchedulerComponent())
    return manager

# --- _install_signal_handlers ---
def _install_signal_handlers(stop: asyncio.Event) -> List[int]:
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Signal handler for {sig} not supported on this platform")
    return installed

# --- main ---
# Starts every component and blocks until a stop signal arrives.
# Args:
#     settings: Loaded configuration.
#     manager: Optional pre-built ComponentManager (tests pass their own).
#     stop: Optional event that ends the run when set.
# Returns: Process exit code.
async def main(settings: Settings, manager: Optional[ComponentManager] = None,
               stop: Optional[asyncio.Event] = None) -> int:
    manager = manager or build_manager()
    stop = stop or asyncio.Event()
    ctx = HeraldContext(settings)
    installed = _install_signal_handlers(stop)
    exit_code = 0
    try:
        try:
            await manager.init_all(ctx)
        except ComponentInitError as e:
            logger.critical(f"🚨 Startup failed: {e}")
            return 1
        logger.info("🏰 Calendar herald is up")

        waiters = [asyncio.create_task(stop.wait())]
        scheduler_component = manager.get("scheduler")
        runner = getattr(scheduler_component, "runner", None)
        if runner is not None:
            waiters.append(runner)
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        waiters[0].cancel()
        if runner is not None and runner.done() and not stop.is_set():
            logger.error("Scheduler loop ended unexpectedly, shutting down")
            exit_code = 1

        logger.info("Shutting down...")
        if ctx.scheduler is not None:
            ctx.scheduler.stop()
        try:
            await manager.shutdown_all()
        except ComponentShutdownError as e:
            for name, error in e.errors:
                logger.error(f"Shutdown error in {name}: {error}")
            exit_code = 1
        return exit_code
    finally:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)
