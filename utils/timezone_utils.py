"""
timezone_utils.py: Standardized timezone handling across the application

Resolves configured timezone names, parses calendar timestamps into aware
datetimes, and maps local wall-clock times onto real instants across DST
transitions.
"""

from datetime import datetime, date, time, timedelta, timezone as dt_timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from utils.error_handling import ConfigError

logger = logging.getLogger("calendarherald")

# Default timezone to use if none is specified
DEFAULT_TIMEZONE = "UTC"

UTC = dt_timezone.utc

# Common timezone mappings for user-friendly configuration
COMMON_TIMEZONE_ALIASES = {
    "est": "America/New_York",
    "cst": "America/Chicago",
    "mst": "America/Denver",
    "pst": "America/Los_Angeles",
    "edt": "America/New_York",
    "cdt": "America/Chicago",
    "mdt": "America/Denver",
    "pdt": "America/Los_Angeles",
    "cet": "Europe/Berlin",
    "cest": "Europe/Berlin",
    "gmt": "UTC",
    "utc": "UTC"
}

def get_timezone(tz_name: str, strict: bool = False) -> ZoneInfo:
    """
    Get a ZoneInfo object for the specified timezone name.

    Args:
        tz_name: Timezone name or alias
        strict: Raise ConfigError instead of falling back to UTC

    Returns:
        ZoneInfo object for the timezone
    """
    if not tz_name:
        return ZoneInfo(DEFAULT_TIMEZONE)

    name = tz_name.strip()
    alias = COMMON_TIMEZONE_ALIASES.get(name.lower())
    if alias:
        name = alias

    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        if strict:
            raise ConfigError(f"Unknown timezone '{tz_name}'") from e
        logger.warning(f"Invalid timezone '{tz_name}', falling back to {DEFAULT_TIMEZONE}: {e}")
        return ZoneInfo(DEFAULT_TIMEZONE)

def parse_hhmm(value: str) -> time:
    """Parse a 24h ``HH:MM`` string. Raises ValueError on anything else."""
    parts = (value or "").strip().split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"expected HH:MM, got '{value}'")
    hour, minute = int(parts[0]), int(parts[1])
    if hour > 23 or minute > 59:
        raise ValueError(f"time out of range: '{value}'")
    return time(hour, minute)

def parse_datetime(dt_str: str, tz: Optional[Union[str, ZoneInfo]] = None) -> datetime:
    """
    Parse an ISO-8601 date or datetime string into a timezone-aware datetime.

    Date-only strings become local midnight in ``tz``. Naive datetimes are
    interpreted in ``tz``. Raises ValueError on unparseable input.
    """
    if isinstance(tz, str):
        tz = get_timezone(tz)
    elif tz is None:
        tz = ZoneInfo(DEFAULT_TIMEZONE)

    text = dt_str.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    if "T" not in text and len(text) <= 10:
        return datetime.combine(date.fromisoformat(text), time.min, tzinfo=tz)

    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt

def to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("naive datetime")
    return dt.astimezone(UTC)

def utc_now() -> datetime:
    return datetime.now(UTC)

def resolve_local_time(day: date, at: time, tz: ZoneInfo) -> datetime:
    """
    Map a local wall-clock time on ``day`` to a UTC instant.

    Ambiguous times (fall-back) resolve to the first occurrence. Nonexistent
    times (spring-forward gap) resolve to the first valid instant after the gap.
    """
    wall = datetime.combine(day, at)
    local = wall.replace(tzinfo=tz, fold=0)
    instant = local.astimezone(UTC)
    if instant.astimezone(tz).replace(tzinfo=None) == wall:
        return instant

    # Inside a gap: the transition lies between the fold=1 and fold=0 readings.
    lo = wall.replace(tzinfo=tz, fold=1).astimezone(UTC)
    hi = instant
    if lo > hi:
        lo, hi = hi, lo
    before = lo.astimezone(tz).utcoffset()
    while hi - lo > timedelta(seconds=1):
        mid = lo + (hi - lo) / 2
        if mid.astimezone(tz).utcoffset() == before:
            lo = mid
        else:
            hi = mid
    return hi.replace(microsecond=0)

def local_midnight(day: date, tz: ZoneInfo) -> datetime:
    return resolve_local_time(day, time.min, tz)

