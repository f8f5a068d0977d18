# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                    BOT TASKS WEEKLY POSTS MODULE                           ║
# ║       Posts the coming week's schedule, grouped by day, when the weekly    ║
# ║       task fires (Monday morning by default).                              ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
Weekly digest handler.
"""
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from bot.events.event_fetching import CalendarClient
from bot.events.models import TimeWindow
from bot.tasks.schedules import Task
from utils.logging import logger
from utils.message_formatter import format_weekly_digest

WEEK_DAYS = 7

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ WEEKLY DIGEST                                                             ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class WeeklyDigestHandler:
    def __init__(self, calendar: CalendarClient, notifier, channel_id: int, tz: ZoneInfo, post_empty: bool = False):
        self._calendar = calendar
        self._notifier = notifier
        self._channel_id = channel_id
        self._tz = tz
        self._post_empty = post_empty

    # --- __call__ ---
    # Covers seven local days starting at midnight of the fire day.
    async def __call__(self, task: Task, fired_at: datetime) -> None:
        first_day = fired_at.astimezone(self._tz).date()
        window = TimeWindow.for_local_days(first_day, WEEK_DAYS, self._tz)
        events = await self._calendar.list_events(window)

        last_day = first_day + timedelta(days=WEEK_DAYS - 1)
        if not events and not self._post_empty:
            logger.info(f"📭 No events between {first_day:%Y-%m-%d} and {last_day:%Y-%m-%d}, skipping weekly digest")
            return

        content = format_weekly_digest(events, self._tz, first_day, WEEK_DAYS)
        await self._notifier.send_message(self._channel_id, content)
        logger.info(f"🗓️ Posted weekly digest for {first_day:%Y-%m-%d}..{last_day:%Y-%m-%d} with {len(events)} event(s)")
