# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                   BOT EVENTS FETCHING MODULE                               ║
# ║    The CalendarClient contract, the ICS feed client, and the factory       ║
# ║    that picks a client from the configured calendar source.                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
event_fetching.py: Unified event fetching and source-specific logic.
"""
import asyncio
from typing import List, Optional, Protocol

import requests
from ics import Calendar as ICS_Calendar

from config.settings import CalendarSourceType, Settings
from bot.events.api_retry import retry_api_call
from bot.events.fingerprint import compute_event_fingerprint
from bot.events.models import Event, TimeWindow, event_from_ics
from utils.error_handling import FetchError
from utils.logging import logger

ICS_TIMEOUT = 10

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CLIENT CONTRACT                                                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class CalendarClient(Protocol):
    async def list_events(self, window: TimeWindow) -> List[Event]:
        """Events overlapping ``window``. Any failure raises FetchError."""
        ...

    def describe(self) -> str:
        ...

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ ICS FEED CLIENT                                                           ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class IcsCalendarClient:
    def __init__(self, url: str, tz, session: Optional[requests.Session] = None):
        self.url = url
        self._tz = tz
        self._session = session or requests.Session()

    def describe(self) -> str:
        return f"ics:{self.url}"

    # --- _download ---
    # Blocking GET of the feed body.
    def _download(self) -> str:
        response = self._session.get(self.url, timeout=ICS_TIMEOUT)
        response.raise_for_status()
        response.encoding = "utf-8"
        return response.text

    # --- parse_feed ---
    # Parses ICS text and keeps the events overlapping `window`.
    # Entries that repeat an already-kept UID or appointment are dropped.
    def parse_feed(self, text: str, window: TimeWindow) -> List[Event]:
        try:
            cal = ICS_Calendar(text)
        except Exception as e:
            raise FetchError(f"Could not parse ICS calendar {self.url}: {e}") from e

        events: List[Event] = []
        seen_ids = set()
        seen_fps = set()
        for component in cal.events:
            try:
                event = event_from_ics(component, self._tz)
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Error processing individual ICS event: {e}")
                continue
            if event is None or not window.overlaps(event.start, event.end):
                continue
            fp = compute_event_fingerprint(event)
            if event.id in seen_ids or fp in seen_fps:
                continue
            seen_ids.add(event.id)
            seen_fps.add(fp)
            events.append(event)

        events.sort(key=lambda ev: ev.sort_key)
        return events

    async def list_events(self, window: TimeWindow) -> List[Event]:
        logger.debug(f"Fetching ICS events from {self.url}")
        try:
            text = await asyncio.to_thread(retry_api_call, self._download)
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(f"Could not download ICS calendar {self.url}: {e}") from e
        events = self.parse_feed(text, window)
        logger.debug(f"Processed {len(events)} ICS events from {self.url}")
        return events

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ FACTORY                                                                   ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- create_calendar_client ---
# Builds the client matching settings.source_type.
# Raises: FetchError if Google credentials cannot be loaded.
def create_calendar_client(settings: Settings) -> CalendarClient:
    if settings.source_type is CalendarSourceType.ICS:
        return IcsCalendarClient(settings.source, settings.timezone)

    from bot.events.google_api import GoogleCalendarClient, build_calendar_service
    service, email = build_calendar_service(settings.credentials_path)
    logger.info(f"Reading calendar {settings.source} as {email}")
    return GoogleCalendarClient(settings.source, service, settings.timezone)
