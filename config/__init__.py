# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                      CONFIGURATION PACKAGE INITIALIZER                     ║
# ║                                                                            ║
# ║  Centralizes runtime configuration for the Calendar Herald. Settings are   ║
# ║  read once at startup and passed by handle, never mutated afterwards.      ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- Exports ---
from .settings import (
    Settings,               # Frozen, validated configuration
    DedupPolicy,            # How seen-event keys are built
    CalendarSourceType,     # google | ics
    load_settings,          # Builds Settings from the environment (raises ConfigError)
    parse_calendar_source,  # Splits CALENDAR_SOURCE into (type, target)
    MEMORY_STORE_URL,       # REDIS_URL value selecting the in-memory store
    WEEKDAYS,
)
