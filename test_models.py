"""
Tests for event conversion and the Google / ICS calendar clients.
"""
from datetime import date, timedelta
from zoneinfo import ZoneInfo

import pytest

from bot.events.event_fetching import IcsCalendarClient
from bot.events.google_api import GoogleCalendarClient
from bot.events.models import UNNAMED_EVENT, Event, TimeWindow, event_from_google
from utils.error_handling import FetchError
from test_support import utc

BERLIN = ZoneInfo("Europe/Berlin")
JANUARY = TimeWindow(utc(2024, 1, 1), utc(2024, 2, 1))


# --- value types ---

def test_time_window_is_half_open():
    window = TimeWindow(utc(2024, 1, 1), utc(2024, 1, 2))
    assert window.contains(utc(2024, 1, 1))
    assert not window.contains(utc(2024, 1, 2))
    assert window.overlaps(utc(2023, 12, 31, 23), utc(2024, 1, 1, 1))
    assert not window.overlaps(utc(2024, 1, 2), utc(2024, 1, 2, 1))


def test_time_window_validation():
    with pytest.raises(ValueError):
        TimeWindow(utc(2024, 1, 2), utc(2024, 1, 1))


def test_time_window_for_local_days_follows_dst():
    window = TimeWindow.for_local_days(date(2024, 3, 31), 1, BERLIN)
    assert window.start == utc(2024, 3, 30, 23)
    assert window.end == utc(2024, 3, 31, 22)


def test_unnamed_event_title():
    assert Event("1", utc(2024, 1, 1), None, "   ").title == UNNAMED_EVENT


# --- google ---

def test_event_from_google_timed():
    event = event_from_google({
        "id": "abc",
        "summary": " Standup ",
        "start": {"dateTime": "2024-01-08T09:00:00+01:00"},
        "end": {"dateTime": "2024-01-08T09:15:00+01:00"},
        "updated": "2024-01-01T10:00:00.000Z",
        "location": "Room 1",
    }, BERLIN)
    assert event.id == "abc"
    assert event.summary == "Standup"
    assert event.start == utc(2024, 1, 8, 8)
    assert event.end == utc(2024, 1, 8, 8, 15)
    assert event.last_modified == "2024-01-01T10:00:00.000Z"
    assert not event.all_day
    assert event.location == "Room 1"


def test_event_from_google_all_day_uses_local_midnight():
    event = event_from_google({
        "id": "holiday",
        "start": {"date": "2024-01-08"},
        "end": {"date": "2024-01-09"},
    }, BERLIN)
    assert event.all_day
    assert event.start == utc(2024, 1, 7, 23)
    assert event.end == utc(2024, 1, 8, 23)


@pytest.mark.parametrize("item", [
    {"id": "x", "status": "cancelled", "start": {"date": "2024-01-08"}},
    {"start": {"date": "2024-01-08"}},
    {"id": "x"},
    {},
])
def test_event_from_google_skips_unusable_items(item):
    assert event_from_google(item, BERLIN) is None


class FakeRequest:
    def __init__(self, result):
        self._result = result

    def execute(self):
        return self._result


class FakeEvents:
    def __init__(self, pages):
        self.pages = pages
        self.requests = []

    def list(self, **kwargs):
        self.requests.append(kwargs)
        return FakeRequest(self.pages[kwargs.get("pageToken")])


class FakeService:
    def __init__(self, pages):
        self._events = FakeEvents(pages)

    def events(self):
        return self._events


@pytest.mark.asyncio
async def test_google_client_pages_and_sorts():
    service = FakeService({
        None: {"items": [
            {"id": "b", "start": {"dateTime": "2024-01-10T10:00:00Z"}},
            {"id": "gone", "status": "cancelled"},
        ], "nextPageToken": "p2"},
        "p2": {"items": [{"id": "a", "start": {"dateTime": "2024-01-05T10:00:00Z"}}]},
    })
    client = GoogleCalendarClient("team@example.com", service, BERLIN)

    events = await client.list_events(JANUARY)

    assert [ev.id for ev in events] == ["a", "b"]
    first = service.events().requests[0]
    assert first["timeMin"] == "2024-01-01T00:00:00Z"
    assert first["timeMax"] == "2024-02-01T00:00:00Z"
    assert first["singleEvents"] is True
    assert service.events().requests[1]["pageToken"] == "p2"


@pytest.mark.asyncio
async def test_google_client_wraps_unexpected_errors():
    class Broken:
        def events(self):
            raise RuntimeError("discovery failed")

    with pytest.raises(FetchError):
        await GoogleCalendarClient("x", Broken(), BERLIN).list_events(JANUARY)


# --- ics ---

ICS_FEED = "\r\n".join([
    "BEGIN:VCALENDAR",
    "VERSION:2.0",
    "PRODID:-//test//EN",
    "BEGIN:VEVENT",
    "UID:review@example.com",
    "DTSTAMP:20240101T000000Z",
    "DTSTART:20240110T130000Z",
    "DTEND:20240110T140000Z",
    "SUMMARY:Review",
    "LOCATION:Room 2",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:standup@example.com",
    "DTSTAMP:20240101T000000Z",
    "DTSTART:20240108T080000Z",
    "DTEND:20240108T081500Z",
    "SUMMARY:Standup",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:copy@example.com",
    "DTSTAMP:20240101T000000Z",
    "DTSTART:20240108T080000Z",
    "DTEND:20240108T081500Z",
    "SUMMARY:Standup",
    "END:VEVENT",
    "BEGIN:VEVENT",
    "UID:later@example.com",
    "DTSTAMP:20240101T000000Z",
    "DTSTART:20240305T080000Z",
    "DTEND:20240305T090000Z",
    "SUMMARY:March",
    "END:VEVENT",
    "END:VCALENDAR",
    "",
])


def test_ics_feed_is_filtered_deduplicated_and_sorted():
    client = IcsCalendarClient("https://example.com/cal.ics", BERLIN)
    events = client.parse_feed(ICS_FEED, JANUARY)
    assert [ev.id for ev in events] == ["standup@example.com", "review@example.com"]
    assert events[0].start == utc(2024, 1, 8, 8)
    assert events[0].end == utc(2024, 1, 8, 8, 15)
    assert events[1].location == "Room 2"


def test_ics_garbage_raises_fetch_error():
    client = IcsCalendarClient("https://example.com/cal.ics", BERLIN)
    with pytest.raises(FetchError):
        client.parse_feed("this is not a calendar", JANUARY)


class FakeResponse:
    def __init__(self, text):
        self.text = text
        self.encoding = None

    def raise_for_status(self):
        pass


class FakeSession:
    def __init__(self, text):
        self._text = text
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append((url, timeout))
        return FakeResponse(self._text)


@pytest.mark.asyncio
async def test_ics_client_downloads_feed():
    session = FakeSession(ICS_FEED)
    client = IcsCalendarClient("https://example.com/cal.ics", BERLIN, session=session)
    events = await client.list_events(TimeWindow(utc(2024, 1, 10), utc(2024, 1, 10) + timedelta(days=1)))
    assert [ev.summary for ev in events] == ["Review"]
    assert session.urls == [("https://example.com/cal.ics", 10)]
