# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                   BOT EVENTS GOOGLE API MODULE                             ║
# ║    Builds the Google Calendar API service from service account             ║
# ║    credentials and lists events through it.                                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
google_api.py: Google Calendar client.
"""
import asyncio
from typing import Any, Dict, List, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build

from bot.events.api_retry import retry_api_call
from bot.events.models import Event, TimeWindow, event_from_google
from utils.error_handling import FetchError
from utils.logging import logger
from utils.timezone_utils import to_utc

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CONSTANTS & INITIALIZATION                                                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

SCOPES = ["https://www.googleapis.com/auth/calendar.readonly"]
PAGE_SIZE = 250
MAX_PAGES = 20

# --- build_calendar_service ---
# Loads service account credentials and builds the Calendar v3 service.
# Args:
#     credentials_path: Path to the service account JSON file.
# Returns: (service, service_account_email)
# Raises: FetchError if the credentials cannot be loaded.
def build_calendar_service(credentials_path: str):
    try:
        credentials = service_account.Credentials.from_service_account_file(
            credentials_path, scopes=SCOPES
        )
    except (OSError, ValueError) as e:
        logger.debug("Verify GOOGLE_APPLICATION_CREDENTIALS is set correctly and the file exists.")
        raise FetchError(f"Could not load Google credentials from {credentials_path}: {e}") from e
    service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
    logger.info("Google Calendar service initialized.")
    return service, credentials.service_account_email

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ GOOGLE CALENDAR CLIENT                                                    ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class GoogleCalendarClient:
    # --- __init__ ---
    # Args:
    #     calendar_id: The calendar to read (shared with the service account).
    #     service: A built Calendar v3 service (or a test double with the same shape).
    #     tz: Timezone used for all-day events.
    def __init__(self, calendar_id: str, service: Any, tz):
        self.calendar_id = calendar_id
        self._service = service
        self._tz = tz

    def describe(self) -> str:
        return f"google:{self.calendar_id}"

    # --- _list_page ---
    def _list_page(self, window: TimeWindow, page_token: Optional[str]) -> Dict[str, Any]:
        return self._service.events().list(
            calendarId=self.calendar_id,
            timeMin=to_utc(window.start).isoformat().replace("+00:00", "Z"),
            timeMax=to_utc(window.end).isoformat().replace("+00:00", "Z"),
            singleEvents=True,
            orderBy="startTime",
            maxResults=PAGE_SIZE,
            pageToken=page_token,
        ).execute()

    # --- fetch_items ---
    # Blocking: pages through events.list with retries.
    # Returns: The raw Google event dicts.
    def fetch_items(self, window: TimeWindow) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page_token = None
        for _ in range(MAX_PAGES):
            token = page_token
            result = retry_api_call(lambda: self._list_page(window, token))
            items.extend(result.get("items", []))
            page_token = result.get("nextPageToken")
            if not page_token:
                break
        else:
            logger.warning(f"Stopped paging {self.calendar_id} after {MAX_PAGES} pages")
        return items

    # --- list_events ---
    # Fetches the events overlapping `window`, parsed and sorted.
    # Raises: FetchError on any failure.
    async def list_events(self, window: TimeWindow) -> List[Event]:
        logger.debug(f"Fetching Google events for {self.calendar_id} from {window.start} to {window.end}")
        try:
            items = await asyncio.to_thread(self.fetch_items, window)
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(f"Unexpected error fetching {self.calendar_id}: {e}") from e
        events = []
        for item in items:
            try:
                event = event_from_google(item, self._tz)
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed Google event {item.get('id', '?')}: {e}")
                continue
            if event is not None:
                events.append(event)
        events.sort(key=lambda ev: ev.sort_key)
        logger.debug(f"Fetched {len(events)} events from Google Calendar {self.calendar_id}")
        return events
