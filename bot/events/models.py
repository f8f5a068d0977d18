# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                      BOT EVENTS DATA MODEL MODULE                          ║
# ║    Immutable calendar event and time window types, plus converters from    ║
# ║    Google Calendar API items and ICS components.                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
models.py: Event and TimeWindow value types.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from utils.timezone_utils import parse_datetime, local_midnight

UNNAMED_EVENT = "Unnamed event"

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ VALUE TYPES                                                               ║
# ╚════════════════════════════════════════════════════════════════════════════╝

@dataclass(frozen=True)
class TimeWindow:
    """Half-open interval ``[start, end)`` of aware datetimes."""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("TimeWindow bounds must be timezone-aware")
        if self.end < self.start:
            raise ValueError(f"TimeWindow end {self.end} precedes start {self.start}")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end

    def overlaps(self, start: datetime, end: Optional[datetime]) -> bool:
        if end is None or end <= start:
            return self.contains(start)
        return start < self.end and end > self.start

    # --- for_local_days ---
    # Window covering `days` whole local days starting at midnight of `first_day`.
    @classmethod
    def for_local_days(cls, first_day: date, days: int, tz: ZoneInfo) -> "TimeWindow":
        return cls(local_midnight(first_day, tz), local_midnight(first_day + timedelta(days=days), tz))


@dataclass(frozen=True)
class Event:
    id: str
    start: datetime
    end: Optional[datetime]
    summary: str
    last_modified: Optional[str] = None
    all_day: bool = False
    location: str = ""

    @property
    def title(self) -> str:
        return self.summary.strip() or UNNAMED_EVENT

    @property
    def sort_key(self):
        return (self.start, self.id)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CONVERTERS                                                                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- _parse_boundary ---
# Reads a Google `{"dateTime": ...}` / `{"date": ...}` container.
# Returns: (aware datetime or None, is_all_day)
def _parse_boundary(container: Any, tz: ZoneInfo):
    if not isinstance(container, dict):
        return None, False
    if container.get("dateTime"):
        return parse_datetime(container["dateTime"], tz), False
    if container.get("date"):
        day = date.fromisoformat(container["date"])
        return local_midnight(day, tz), True
    return None, False

# --- event_from_google ---
# Converts one item of a Google Calendar `events.list` response.
# Args:
#     item: The raw event dict.
#     tz: Timezone for all-day events and naive timestamps.
# Returns: An Event, or None if the item is cancelled or lacks an id or start.
def event_from_google(item: Dict[str, Any], tz: ZoneInfo) -> Optional[Event]:
    if not item or item.get("status") == "cancelled":
        return None
    event_id = item.get("id")
    start, all_day = _parse_boundary(item.get("start"), tz)
    if not event_id or start is None:
        return None
    end, _ = _parse_boundary(item.get("end"), tz)
    return Event(
        id=str(event_id),
        start=start,
        end=end,
        summary=(item.get("summary") or "").strip(),
        last_modified=item.get("updated"),
        all_day=all_day,
        location=(item.get("location") or "").strip(),
    )

# --- event_from_ics ---
# Converts an `ics.Event`. The UID is the stable id; LAST-MODIFIED (or CREATED)
# is the modification marker.
def event_from_ics(component: Any, tz: ZoneInfo) -> Optional[Event]:
    uid = getattr(component, "uid", None)
    begin = getattr(component, "begin", None)
    if not uid or begin is None:
        return None

    all_day = bool(getattr(component, "all_day", False))
    if all_day:
        start = local_midnight(begin.date(), tz)
        end_raw = getattr(component, "end", None)
        end = local_midnight(end_raw.date(), tz) if end_raw is not None else start + timedelta(days=1)
    else:
        start = begin.datetime.astimezone(tz) if begin.tzinfo else begin.datetime.replace(tzinfo=tz)
        end_raw = getattr(component, "end", None)
        end = None
        if end_raw is not None:
            end = end_raw.datetime.astimezone(tz) if end_raw.tzinfo else end_raw.datetime.replace(tzinfo=tz)

    modified = getattr(component, "last_modified", None) or getattr(component, "created", None)
    return Event(
        id=str(uid),
        start=start,
        end=end,
        summary=(getattr(component, "name", None) or "").strip(),
        last_modified=modified.isoformat() if modified is not None else None,
        all_day=all_day,
        location=(getattr(component, "location", None) or "").strip(),
    )
