# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                    BOT TASKS EVENT MONITOR MODULE                          ║
# ║    Polls the calendar for events that have not been announced yet,         ║
# ║    announces them, and only then records them as seen.                     ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
New-event poll handler.

The first poll of a fresh scope records everything it sees as a silent
baseline, so a new deployment does not announce the whole calendar.
"""
from datetime import datetime, timedelta
from typing import Callable, Iterator, List, Sequence
from zoneinfo import ZoneInfo

from bot.events.dedup import DedupEngine
from bot.events.event_fetching import CalendarClient
from bot.events.models import Event, TimeWindow
from bot.tasks.schedules import Task
from utils.logging import logger
from utils.message_formatter import DISCORD_MESSAGE_LIMIT, format_new_events
from utils.timezone_utils import utc_now

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ MESSAGE BATCHING                                                          ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- batch_for_messages ---
# Groups events so each group's notice fits in one Discord message. Each
# group is sent and committed on its own, so a failed send never re-announces
# an earlier group.
def batch_for_messages(events: Sequence[Event], tz: ZoneInfo, limit: int = DISCORD_MESSAGE_LIMIT) -> Iterator[List[Event]]:
    batch: List[Event] = []
    for event in events:
        if batch and len(format_new_events(batch + [event], tz)) > limit:
            yield batch
            batch = []
        batch.append(event)
    if batch:
        yield batch

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ NEW EVENTS POLL                                                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class NewEventsHandler:
    # --- __init__ ---
    # Args:
    #     calendar: Source of events.
    #     notifier: Anything with `async send_message(channel_id, content)`.
    #     dedup: Seen-event filter; the task name is used as its scope.
    #     channel_id: Target channel.
    #     tz: Display timezone.
    #     lookahead_days: How far ahead of now to look for new events.
    #     silent_baseline: Record (not announce) everything on a fresh scope.
    #     clock: Returns the current aware UTC time.
    def __init__(
        self,
        calendar: CalendarClient,
        notifier,
        dedup: DedupEngine,
        channel_id: int,
        tz: ZoneInfo,
        lookahead_days: int = 28,
        silent_baseline: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._calendar = calendar
        self._notifier = notifier
        self._dedup = dedup
        self._channel_id = channel_id
        self._tz = tz
        self._lookahead = timedelta(days=lookahead_days)
        self._silent_baseline = silent_baseline
        self._clock = clock

    # --- __call__ ---
    # fetch -> (baseline) -> filter_new -> send -> commit, per message batch.
    # FetchError skips the cycle; SendError leaves the unsent batch uncommitted
    # so it is retried on the next poll.
    async def __call__(self, task: Task, fired_at: datetime) -> None:
        scope = task.name
        now = self._clock()
        events = await self._calendar.list_events(TimeWindow(now, now + self._lookahead))

        if self._silent_baseline and not await self._dedup.has_baseline(scope):
            await self._dedup.commit(events, scope)
            logger.info(f"📸 Recorded baseline of {len(events)} existing event(s) for {scope}; not announcing them")
            return

        new_events = await self._dedup.filter_new(events, scope)
        if not new_events:
            logger.debug(f"No new events for {scope} ({len(events)} fetched)")
            return

        announced = 0
        for batch in batch_for_messages(new_events, self._tz):
            await self._notifier.send_message(self._channel_id, format_new_events(batch, self._tz))
            try:
                await self._dedup.commit(batch, scope)
            except Exception:
                logger.error(f"Announced {len(batch)} event(s) but could not record them as seen; they may be announced again")
                raise
            announced += len(batch)
        logger.info(f"🆕 Announced {announced} new event(s) for {scope}")
