# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                      BOT TASKS SCHEDULER MODULE                            ║
# ║    Single-timer scheduler: plans the next instant for every task, sleeps   ║
# ║    until the earliest one, fires due handlers, persists run markers.       ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
Scheduler.

One logical timer drives every task. Sleep happens in bounded chunks so wall
clock jumps are noticed on the next wake. Each due task runs its handler as a
separate asyncio task; the run marker is written only after the handler
succeeds, and a failed run is not retried before the task's next regular
instant.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Mapping, Optional

from bot.storage import StateStore
from bot.tasks.health import TaskHealth
from bot.tasks.run_markers import RunMarkerStore
from bot.tasks.schedules import Task, TaskKind
from utils.error_handling import HeraldError, StoreError
from utils.logging import logger
from utils.timezone_utils import utc_now

Handler = Callable[[Task, datetime], Awaitable[None]]

DEFAULT_MAX_SLEEP = 60.0

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CANCELLATION                                                              ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class CancellationToken:
    """Cooperative stop signal checked at sleep boundaries and before each fire."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    # --- wait ---
    # Sleeps up to `timeout` seconds, returning early on cancellation.
    # Returns: True if cancelled.
    async def wait(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(timeout, 0.0))
        except asyncio.TimeoutError:
            pass
        return self._event.is_set()

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ SCHEDULER                                                                 ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class Scheduler:
    # --- __init__ ---
    # Args:
    #     store: Where run markers live.
    #     handlers: One coroutine function per TaskKind, called as handler(task, fired_at).
    #     namespace: State key prefix.
    #     misfire_grace: Seconds after a missed daily/weekly instant during which
    #                    a restart still fires it (0 disables catch-up).
    #     max_sleep: Upper bound for a single sleep, in seconds.
    #     shutdown_grace: Seconds in-flight handlers get to finish on stop.
    #     clock: Returns the current aware UTC time.
    def __init__(
        self,
        store: StateStore,
        handlers: Mapping[TaskKind, Handler],
        namespace: str,
        misfire_grace: int = 3600,
        max_sleep: float = DEFAULT_MAX_SLEEP,
        shutdown_grace: float = 30.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._markers = RunMarkerStore(store, namespace)
        self._handlers: Dict[TaskKind, Handler] = dict(handlers)
        self._misfire_grace = timedelta(seconds=misfire_grace)
        self._max_sleep = max_sleep
        self._shutdown_grace = shutdown_grace
        self._clock = clock

        self._tasks: Dict[str, Task] = {}
        self._planned: Dict[str, datetime] = {}
        self._attempted: Dict[str, datetime] = {}
        self._in_flight: Dict[str, asyncio.Task] = {}
        self.health = TaskHealth()
        self.token = CancellationToken()

    # ------------------------------------------------------------------
    # Registration and planning
    # ------------------------------------------------------------------

    # --- register ---
    # Adds a task. Its first instant is planned on the next prepare(), which
    # the run loop also calls for tasks registered while it is running.
    def register(self, task: Task) -> None:
        if task.name in self._tasks:
            raise ValueError(f"Task '{task.name}' is already registered")
        if task.kind not in self._handlers:
            raise ValueError(f"No handler for task kind '{task.kind.value}'")
        self._tasks[task.name] = task
        logger.debug(f"Registered task {task.name} ({task.schedule.describe()})")

    @property
    def tasks(self) -> List[Task]:
        return list(self._tasks.values())

    def planned_for(self, task_name: str) -> Optional[datetime]:
        return self._planned.get(task_name)

    # --- _load_marker ---
    # A store failure is logged and reads as "never ran".
    async def _load_marker(self, task_name: str) -> Optional[datetime]:
        try:
            return await self._markers.load(task_name)
        except StoreError as e:
            logger.warning(f"Could not read run marker for {task_name}: {e}")
            return None

    # --- _initial_plan ---
    # First instant for a task at startup. A daily/weekly instant missed by
    # less than the misfire grace, and not covered by the marker, is planned
    # in the past so it fires right away.
    def _initial_plan(self, task: Task, now: datetime, marker: Optional[datetime]) -> datetime:
        schedule = task.schedule
        previous = schedule.previous_fire_time(now)
        if (
            previous is not None
            and self._misfire_grace > timedelta(0)
            and now - previous <= self._misfire_grace
            and (marker is None or marker < previous)
        ):
            logger.info(f"🔁 {task.name} missed its run at {previous.isoformat()}, catching up")
            return previous
        return schedule.next_fire_time(now, marker)

    # --- prepare ---
    # Loads run markers and plans every task not yet planned.
    async def prepare(self, now: Optional[datetime] = None) -> None:
        now = now or self._clock()
        for name, task in self._tasks.items():
            if name in self._planned:
                continue
            marker = await self._load_marker(name)
            basis = max(filter(None, (marker, self._attempted.get(name))), default=None)
            self._planned[name] = self._initial_plan(task, now, basis)
            logger.info(f"⏰ {name} ({task.schedule.describe()}) next run at {self._planned[name].isoformat()}")

    def next_wakeup(self) -> Optional[datetime]:
        return min(self._planned.values(), default=None)

    # ------------------------------------------------------------------
    # Firing
    # ------------------------------------------------------------------

    # --- _advance ---
    # Next plan after firing `planned`, always strictly after `now`. A
    # coalesced interval backlog resolves to `now`, so the following run is
    # one interval after this one.
    def _advance(self, task: Task, now: datetime, planned: datetime) -> datetime:
        following = task.schedule.next_fire_time(now, planned)
        if following <= now:
            following = task.schedule.next_fire_time(now, now)
        return following

    # --- tick ---
    # Fires every task whose planned instant is at or before `now`.
    # The plan advances before the handler starts, so a failed run waits for
    # the task's next regular instant.
    # Returns: Names of the tasks whose handlers were started.
    async def tick(self, now: Optional[datetime] = None) -> List[str]:
        now = now or self._clock()
        started = []
        for name, task in self._tasks.items():
            planned = self._planned.get(name)
            if planned is None or planned > now:
                continue
            if self.token.cancelled:
                break
            self._attempted[name] = planned
            self._planned[name] = self._advance(task, now, planned)
            if not self.health.try_lock(name):
                continue
            self._in_flight[name] = asyncio.create_task(self._run_task(task, planned), name=f"herald-{name}")
            started.append(name)
        return started

    # --- _run_task ---
    # Re-checks the marker, runs the handler, then persists the marker.
    async def _run_task(self, task: Task, planned: datetime) -> None:
        name = task.name
        try:
            try:
                marker = await self._markers.load(name)
            except StoreError as e:
                logger.warning(f"Could not re-check run marker for {name}, running anyway: {e}")
                marker = None
            if marker is not None and marker >= planned:
                logger.info(f"⏭️ {name} already ran for {planned.isoformat()}, skipping")
                return

            logger.info(f"▶️ Running {name} for {planned.isoformat()}")
            try:
                await self._handlers[task.kind](task, planned)
            except HeraldError as e:
                self.health.update_task_health(name, False)
                logger.error(f"❌ {name} failed: {e}")
                return
            except Exception as e:
                self.health.update_task_health(name, False)
                logger.exception(f"❌ Unexpected error in {name}: {e}")
                return
            self.health.update_task_health(name, True)

            try:
                await self._markers.save(name, planned)
                self.health.record_marker_save(name, True)
            except StoreError as e:
                self.health.record_marker_save(name, False)
                logger.error(f"Could not persist run marker for {name}: {e}")
        finally:
            self.health.unlock(name)
            self._in_flight.pop(name, None)

    # ------------------------------------------------------------------
    # Main loop and shutdown
    # ------------------------------------------------------------------

    # --- run ---
    # Blocks until stop() is called, then waits for in-flight handlers.
    async def run(self) -> None:
        await self.prepare()
        logger.info(f"🕰️ Scheduler running {len(self._tasks)} task(s)")
        try:
            while not self.token.cancelled:
                if len(self._planned) < len(self._tasks):
                    await self.prepare()
                await self.tick()
                wakeup = self.next_wakeup()
                if wakeup is None:
                    delay = self._max_sleep
                else:
                    delay = (wakeup - self._clock()).total_seconds()
                await self.token.wait(min(max(delay, 0.0), self._max_sleep))
        finally:
            await self.drain()
            if self._tasks:
                logger.info(f"Task health: {self.health.summary()}")
            logger.info("🕰️ Scheduler stopped")

    def stop(self) -> None:
        if not self.token.cancelled:
            logger.info("Stopping scheduler...")
        self.token.cancel()

    # --- drain ---
    # Waits up to `timeout` (default: shutdown grace) for running handlers.
    # Handlers are never cancelled; stragglers are only reported.
    async def drain(self, timeout: Optional[float] = None) -> bool:
        pending = [t for t in self._in_flight.values() if not t.done()]
        if not pending:
            return True
        grace = self._shutdown_grace if timeout is None else timeout
        logger.info(f"Waiting up to {grace}s for {len(pending)} running task(s)")
        _, still_running = await asyncio.wait(pending, timeout=grace)
        if still_running:
            names = ", ".join(sorted(t.get_name() for t in still_running))
            logger.warning(f"Tasks still running after {grace}s grace: {names}")
            return False
        return True
