# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                      BOT TASKS SCHEDULES MODULE                            ║
# ║    Task definitions and the deterministic next-fire computation for        ║
# ║    daily, weekly and fixed-interval schedules.                             ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
Schedules and tasks.

Daily and weekly schedules fire at a local wall-clock time in their own
timezone and are DST-aware: a time that does not exist on a spring-forward
day fires at the first instant after the gap, and a time that occurs twice
on a fall-back day fires on its first occurrence.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Optional, Union
from zoneinfo import ZoneInfo

from utils.timezone_utils import resolve_local_time

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ TASK KINDS                                                                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class TaskKind(str, Enum):
    DAILY_DIGEST = "daily_digest"
    WEEKLY_DIGEST = "weekly_digest"
    POLL_NEW_EVENTS = "poll_new_events"

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ SCHEDULES                                                                 ║
# ╚════════════════════════════════════════════════════════════════════════════╝

def _require_aware(moment: datetime, name: str) -> None:
    if moment.tzinfo is None:
        raise ValueError(f"{name} must be timezone-aware")


@dataclass(frozen=True)
class DailySchedule:
    at: time
    tz: ZoneInfo

    def _matches(self, day: date) -> bool:
        return True

    def _instant_on(self, day: date) -> datetime:
        return resolve_local_time(day, self.at, self.tz)

    # --- next_fire_time ---
    # Smallest scheduled instant strictly after both `now` and `last_fired_at`.
    def next_fire_time(self, now: datetime, last_fired_at: Optional[datetime] = None) -> datetime:
        _require_aware(now, "now")
        floor = now if last_fired_at is None else max(now, last_fired_at)
        day = floor.astimezone(self.tz).date() - timedelta(days=1)
        # A weekly schedule needs at most 8 days of lookahead, plus the day before
        for _ in range(10):
            if self._matches(day):
                candidate = self._instant_on(day)
                if candidate > floor:
                    return candidate
            day += timedelta(days=1)
        raise RuntimeError(f"No fire time found after {floor} for {self}")

    # --- previous_fire_time ---
    # Largest scheduled instant at or before `now`.
    def previous_fire_time(self, now: datetime) -> datetime:
        _require_aware(now, "now")
        day = now.astimezone(self.tz).date() + timedelta(days=1)
        for _ in range(10):
            if self._matches(day):
                candidate = self._instant_on(day)
                if candidate <= now:
                    return candidate
            day -= timedelta(days=1)
        raise RuntimeError(f"No fire time found before {now} for {self}")

    def describe(self) -> str:
        return f"daily at {self.at:%H:%M} {self.tz.key}"


@dataclass(frozen=True)
class WeeklySchedule(DailySchedule):
    weekday: int = 0  # Monday == 0

    def __post_init__(self):
        if not 0 <= self.weekday <= 6:
            raise ValueError(f"weekday must be 0..6, got {self.weekday}")

    def _matches(self, day: date) -> bool:
        return day.weekday() == self.weekday

    def describe(self) -> str:
        return f"weekly on {date(2024, 1, 1 + self.weekday):%A} at {self.at:%H:%M} {self.tz.key}"


@dataclass(frozen=True)
class IntervalSchedule:
    seconds: int

    def __post_init__(self):
        if self.seconds <= 0:
            raise ValueError(f"interval must be positive, got {self.seconds}")

    @property
    def interval(self) -> timedelta:
        return timedelta(seconds=self.seconds)

    # --- next_fire_time ---
    # `last_fired_at + interval`; immediately when there is no previous run.
    # When more than one whole interval has been missed the backlog is
    # coalesced into a single run at `now`.
    def next_fire_time(self, now: datetime, last_fired_at: Optional[datetime] = None) -> datetime:
        _require_aware(now, "now")
        if last_fired_at is None:
            return now
        candidate = last_fired_at + self.interval
        if candidate + self.interval <= now:
            return now
        return candidate

    def previous_fire_time(self, now: datetime) -> Optional[datetime]:
        return None

    def describe(self) -> str:
        return f"every {self.seconds}s"


Schedule = Union[DailySchedule, WeeklySchedule, IntervalSchedule]

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ TASK                                                                      ║
# ╚════════════════════════════════════════════════════════════════════════════╝

@dataclass(frozen=True)
class Task:
    name: str
    kind: TaskKind
    schedule: Schedule

    def __post_init__(self):
        if not self.name or ":" in self.name:
            raise ValueError(f"invalid task name '{self.name}'")
