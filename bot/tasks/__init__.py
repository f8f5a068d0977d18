# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                       BOT TASKS PACKAGE INIT                               ║
# ║    Schedules, run markers, the scheduler loop, and the three task          ║
# ║    handlers it drives.                                                     ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
tasks package: Scheduled work for the calendar herald.
"""
from .schedules import (
    TaskKind,
    Task,
    DailySchedule,
    WeeklySchedule,
    IntervalSchedule,
)

from .run_markers import (
    RunMarker,
    RunMarkerStore,
)

from .health import TaskHealth

from .scheduler import (
    CancellationToken,
    Scheduler,
)

from .daily_posts import DailyDigestHandler
from .weekly_posts import WeeklyDigestHandler
from .event_monitor import NewEventsHandler, batch_for_messages
