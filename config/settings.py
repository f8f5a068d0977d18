# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                          HERALD SETTINGS MODULE                            ║
# ║    Builds the immutable, validated Settings object from the environment.   ║
# ║    Anything missing or malformed raises ConfigError before startup.        ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
settings.py: Validated runtime configuration.
"""
import os
from dataclasses import dataclass
from datetime import time
from enum import Enum
from typing import Mapping, Optional
from zoneinfo import ZoneInfo

from utils.environ import get_bool_env, get_str_env, get_default_service_account_path
from utils.error_handling import ConfigError
from utils.timezone_utils import get_timezone, parse_hhmm

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CONSTANTS                                                                 ║
# ╚════════════════════════════════════════════════════════════════════════════╝

DEFAULT_DAILY_TIME = "06:00"
DEFAULT_WEEKLY_TIME = "06:00"
DEFAULT_WEEKLY_DAY = "monday"
DEFAULT_POLL_INTERVAL = 300
MIN_POLL_INTERVAL = 10
DEFAULT_LOOKAHEAD_DAYS = 28
DEFAULT_RETENTION_HOURS = 72
DEFAULT_MISFIRE_GRACE = 3600
DEFAULT_SHUTDOWN_GRACE = 30
DEFAULT_REDIS_URL = "redis://127.0.0.1:6379/0"
DEFAULT_NAMESPACE = "calendar_herald"
MEMORY_STORE_URL = "memory://"

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class DedupPolicy(str, Enum):
    ID = "id"
    ID_AND_LAST_MODIFIED = "id_and_last_modified"


class CalendarSourceType(str, Enum):
    GOOGLE = "google"
    ICS = "ics"

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ SETTINGS                                                                  ║
# ╚════════════════════════════════════════════════════════════════════════════╝

@dataclass(frozen=True)
class Settings:
    discord_token: str
    channel_id: int
    source_type: CalendarSourceType
    source: str
    timezone: ZoneInfo
    daily_time: time
    weekly_time: time
    weekly_day: int
    poll_interval: int
    lookahead_days: int
    retention_hours: int
    dedup_policy: DedupPolicy
    silent_baseline: bool
    post_empty_digests: bool
    misfire_grace: int
    shutdown_grace: int
    daily_enabled: bool
    weekly_enabled: bool
    new_events_enabled: bool
    redis_url: str
    namespace: str
    credentials_path: str

    @property
    def uses_memory_store(self) -> bool:
        return self.redis_url == MEMORY_STORE_URL

    # --- describe ---
    # One-line summary for the startup banner. Never includes the token.
    def describe(self) -> str:
        enabled = [name for name, on in (
            ("daily", self.daily_enabled),
            ("weekly", self.weekly_enabled),
            ("new-events", self.new_events_enabled),
        ) if on]
        return (
            f"source={self.source_type.value} channel={self.channel_id} tz={self.timezone.key} "
            f"daily={self.daily_time:%H:%M} weekly={WEEKDAYS[self.weekly_day]}@{self.weekly_time:%H:%M} "
            f"poll={self.poll_interval}s tasks={','.join(enabled) or 'none'}"
        )

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ PARSING HELPERS                                                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

def _required(env: Mapping[str, str], name: str) -> str:
    value = get_str_env(name, "", env)
    if not value:
        raise ConfigError(f"{name} environment variable is required")
    return value

def _int_setting(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = get_str_env(name, "", env)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got '{raw}'") from e
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value

def _time_setting(env: Mapping[str, str], name: str, default: str) -> time:
    raw = get_str_env(name, default, env)
    try:
        return parse_hhmm(raw)
    except ValueError as e:
        raise ConfigError(f"{name}: {e}") from e

def _weekday_setting(env: Mapping[str, str], name: str, default: str) -> int:
    raw = get_str_env(name, default, env).lower()
    for index, day in enumerate(WEEKDAYS):
        if raw == day or raw == day[:3]:
            return index
    raise ConfigError(f"{name} must be a weekday name, got '{raw}'")

# --- parse_calendar_source ---
# Splits CALENDAR_SOURCE into (type, id-or-url).
# Accepts 'google:<calendar_id>', 'ics:<url>', or a bare calendar id (Google).
def parse_calendar_source(raw: str):
    kind, sep, rest = raw.partition(":")
    kind = kind.strip().lower()
    if sep and kind in (CalendarSourceType.GOOGLE.value, CalendarSourceType.ICS.value):
        target = rest.strip()
        if not target:
            raise ConfigError(f"CALENDAR_SOURCE '{raw}' has an empty {kind} target")
        if kind == CalendarSourceType.ICS.value:
            target = target.replace("webcal://", "https://", 1)
        return CalendarSourceType(kind), target
    if raw.startswith(("http://", "https://", "webcal://")):
        return CalendarSourceType.ICS, raw.replace("webcal://", "https://", 1)
    return CalendarSourceType.GOOGLE, raw.strip()

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ LOADER                                                                    ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- load_settings ---
# Reads and validates every setting.
# Args:
#     env: Mapping to read from (defaults to os.environ).
# Returns: A frozen Settings instance.
# Raises: ConfigError on the first missing or malformed value.
def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env

    token = _required(env, "DISCORD_BOT_TOKEN")
    raw_channel = _required(env, "CALENDAR_CHANNEL_ID")
    try:
        channel_id = int(raw_channel)
    except ValueError as e:
        raise ConfigError(f"CALENDAR_CHANNEL_ID must be numeric, got '{raw_channel}'") from e
    if channel_id <= 0:
        raise ConfigError("CALENDAR_CHANNEL_ID must be positive")

    source_type, source = parse_calendar_source(_required(env, "CALENDAR_SOURCE"))

    raw_policy = get_str_env("DEDUP_POLICY", DedupPolicy.ID.value, env).lower()
    try:
        policy = DedupPolicy(raw_policy)
    except ValueError as e:
        options = ", ".join(p.value for p in DedupPolicy)
        raise ConfigError(f"DEDUP_POLICY must be one of {options}, got '{raw_policy}'") from e

    def flag(name: str, default: bool) -> bool:
        return get_bool_env(name, default, env)

    return Settings(
        discord_token=token,
        channel_id=channel_id,
        source_type=source_type,
        source=source,
        timezone=get_timezone(get_str_env("TIMEZONE", "UTC", env), strict=True),
        daily_time=_time_setting(env, "DAILY_NOTIFICATION_TIME", DEFAULT_DAILY_TIME),
        weekly_time=_time_setting(env, "WEEKLY_NOTIFICATION_TIME", DEFAULT_WEEKLY_TIME),
        weekly_day=_weekday_setting(env, "WEEKLY_NOTIFICATION_DAY", DEFAULT_WEEKLY_DAY),
        poll_interval=_int_setting(env, "NEW_EVENTS_CHECK_INTERVAL", DEFAULT_POLL_INTERVAL, MIN_POLL_INTERVAL),
        lookahead_days=_int_setting(env, "NEW_EVENTS_LOOKAHEAD_DAYS", DEFAULT_LOOKAHEAD_DAYS, 1),
        retention_hours=_int_setting(env, "SEEN_RETENTION_HOURS", DEFAULT_RETENTION_HOURS, 1),
        dedup_policy=policy,
        silent_baseline=flag("SILENT_BASELINE", True),
        post_empty_digests=flag("POST_EMPTY_DIGESTS", False),
        misfire_grace=_int_setting(env, "MISFIRE_GRACE_SECONDS", DEFAULT_MISFIRE_GRACE, 0),
        shutdown_grace=_int_setting(env, "SHUTDOWN_GRACE_SECONDS", DEFAULT_SHUTDOWN_GRACE, 0),
        daily_enabled=flag("DAILY_DIGEST_ENABLED", True),
        weekly_enabled=flag("WEEKLY_DIGEST_ENABLED", True),
        new_events_enabled=flag("NEW_EVENTS_ENABLED", True),
        redis_url=get_str_env("REDIS_URL", DEFAULT_REDIS_URL, env),
        namespace=get_str_env("STATE_NAMESPACE", DEFAULT_NAMESPACE, env),
        credentials_path=get_str_env(
            "GOOGLE_APPLICATION_CREDENTIALS", get_default_service_account_path(), env
        ),
    )
