# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                     BOT TASKS DAILY POSTS MODULE                           ║
# ║    Posts today's events to the calendar channel when the daily task        ║
# ║    fires.                                                                  ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
Daily digest handler.
"""
from datetime import datetime
from zoneinfo import ZoneInfo

from bot.events.event_fetching import CalendarClient
from bot.events.models import TimeWindow
from bot.tasks.schedules import Task
from utils.logging import logger
from utils.message_formatter import format_daily_digest

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ DAILY DIGEST                                                              ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class DailyDigestHandler:
    # --- __init__ ---
    # Args:
    #     calendar: Source of events.
    #     notifier: Anything with `async send_message(channel_id, content)`.
    #     channel_id: Target channel.
    #     tz: Timezone that defines "today".
    #     post_empty: Post a "no events" message instead of staying silent.
    def __init__(self, calendar: CalendarClient, notifier, channel_id: int, tz: ZoneInfo, post_empty: bool = False):
        self._calendar = calendar
        self._notifier = notifier
        self._channel_id = channel_id
        self._tz = tz
        self._post_empty = post_empty

    # --- __call__ ---
    # Fetches the local day containing `fired_at` and posts the digest.
    # FetchError and SendError propagate to the scheduler, which keeps the
    # run marker untouched.
    async def __call__(self, task: Task, fired_at: datetime) -> None:
        day = fired_at.astimezone(self._tz).date()
        window = TimeWindow.for_local_days(day, 1, self._tz)
        events = await self._calendar.list_events(window)

        if not events and not self._post_empty:
            logger.info(f"📭 No events on {day:%Y-%m-%d}, skipping daily digest")
            return

        await self._notifier.send_message(self._channel_id, format_daily_digest(events, self._tz))
        logger.info(f"📅 Posted daily digest for {day:%Y-%m-%d} with {len(events)} event(s)")
