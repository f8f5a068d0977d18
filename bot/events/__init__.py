"""
events package: Calendar event model, fetching, and deduplication,
re-exporting from submodules.
"""
from .models import Event, TimeWindow, event_from_google, event_from_ics
from .fingerprint import dedup_key, compute_event_fingerprint
from .snapshot import SeenEntry, CorruptSnapshotError, load_seen_set, save_seen_set
from .dedup import DedupEngine
from .api_retry import retry_api_call
from .event_fetching import CalendarClient, IcsCalendarClient, create_calendar_client

__all__ = [
    'Event', 'TimeWindow', 'event_from_google', 'event_from_ics',
    'dedup_key', 'compute_event_fingerprint',
    'SeenEntry', 'CorruptSnapshotError', 'load_seen_set', 'save_seen_set',
    'DedupEngine',
    'retry_api_call',
    'CalendarClient', 'IcsCalendarClient', 'create_calendar_client',
]
