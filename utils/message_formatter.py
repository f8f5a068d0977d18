# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                       DISCORD MESSAGE FORMATTERS                           ║
# ║ Turns calendar events into the plain-text digest and new-event messages,   ║
# ║ and splits long messages to fit Discord's per-message limit.               ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Standard library imports
from datetime import date, timedelta
from typing import Dict, Iterable, List, Sequence
from zoneinfo import ZoneInfo

# Local application imports
from bot.events.models import Event

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CONSTANTS                                                                  ║
# ╚════════════════════════════════════════════════════════════════════════════╝

DISCORD_MESSAGE_LIMIT = 2000

DAILY_TITLE = "📅 Today's events"
WEEKLY_TITLE = "🗓️ This week's events"
NEW_EVENTS_TITLE = "🆕 New calendar events"
NO_EVENTS_TODAY = "No events today."
NO_EVENTS_THIS_WEEK = "No events this week."
ALL_DAY = "all day"

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ HELPER FUNCTIONS                                                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- format_day_header ---
# "Monday 01.01." style label used for weekly sections.
def format_day_header(day: date) -> str:
    return day.strftime("%A %d.%m.")

# --- format_event_line ---
# One bullet line for an event.
# Args:
#     event: The event to render.
#     tz: Display timezone.
#     with_date: Prefix the time with "dd.mm." (used for new-event notices).
# Returns: e.g. "• Standup (09:30)" or "• Offsite (05.01. 09:30)".
def format_event_line(event: Event, tz: ZoneInfo, with_date: bool = False) -> str:
    local_start = event.start.astimezone(tz)
    if event.all_day:
        when = f"{local_start:%d.%m.}, {ALL_DAY}" if with_date else ALL_DAY
    elif with_date:
        when = f"{local_start:%d.%m. %H:%M}"
    else:
        when = f"{local_start:%H:%M}"
    line = f"• {event.title} ({when})"
    if event.location:
        line += f" 📍 {event.location}"
    return line

# --- group_events_by_day ---
# Buckets events by their local start date. Events that began before
# `first_day` (multi-day events still running) land on `first_day`.
def group_events_by_day(events: Iterable[Event], tz: ZoneInfo, first_day: date, days: int) -> Dict[date, List[Event]]:
    grouped: Dict[date, List[Event]] = {first_day + timedelta(days=i): [] for i in range(days)}
    for event in sorted(events, key=lambda ev: ev.sort_key):
        day = max(event.start.astimezone(tz).date(), first_day)
        if day in grouped:
            grouped[day].append(event)
    return grouped

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ MESSAGE FORMATTERS                                                         ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- format_daily_digest ---
# Today's agenda: a title line, then one bullet per event in start order.
def format_daily_digest(events: Sequence[Event], tz: ZoneInfo) -> str:
    lines = [f"**{DAILY_TITLE}**"]
    if not events:
        lines.append(NO_EVENTS_TODAY)
    for event in sorted(events, key=lambda ev: ev.sort_key):
        lines.append(format_event_line(event, tz))
    return "\n".join(lines)

# --- format_weekly_digest ---
# The coming week grouped by day. Days without events are left out.
# Args:
#     events: Events inside the week window.
#     tz: Display timezone.
#     first_day: Local date the week starts on.
#     days: Length of the window in days (7).
def format_weekly_digest(events: Sequence[Event], tz: ZoneInfo, first_day: date, days: int = 7) -> str:
    lines = [f"**{WEEKLY_TITLE}**"]
    grouped = group_events_by_day(events, tz, first_day, days)
    if not any(grouped.values()):
        lines.append(NO_EVENTS_THIS_WEEK)
    for day, day_events in grouped.items():
        if not day_events:
            continue
        lines.append("")
        lines.append(f"**{format_day_header(day)}:**")
        lines.extend(format_event_line(event, tz) for event in day_events)
    return "\n".join(lines)

# --- format_new_events ---
# Notification for newly added events, each line carrying its date.
def format_new_events(events: Sequence[Event], tz: ZoneInfo) -> str:
    lines = [f"**{NEW_EVENTS_TITLE}**"]
    for event in sorted(events, key=lambda ev: ev.sort_key):
        lines.append(format_event_line(event, tz, with_date=True))
    return "\n".join(lines)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ MESSAGE SPLITTING                                                          ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- split_message ---
# Splits content into chunks no longer than `limit`, breaking on newlines.
# A single line longer than the limit is hard-wrapped.
# Returns: A list of non-empty chunks ([] for blank content).
def split_message(content: str, limit: int = DISCORD_MESSAGE_LIMIT) -> List[str]:
    if limit <= 0:
        raise ValueError("limit must be positive")
    chunks: List[str] = []
    current = ""
    for line in content.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current.strip():
        chunks.append(current)
    return [chunk for chunk in chunks if chunk.strip()]
