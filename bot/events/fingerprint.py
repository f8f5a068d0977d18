# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                  BOT EVENTS FINGERPRINTING MODULE                          ║
# ║    Builds the keys under which events are remembered as "seen", and a      ║
# ║    content fingerprint used to drop duplicate entries within one feed.     ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
fingerprint.py: Event identity utilities.
"""
import hashlib
import json

from config.settings import DedupPolicy
from bot.events.models import Event

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ DEDUP KEYS                                                                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- dedup_key ---
# The SeenSet key for an event.
# ID policy: the event id alone, so edits never re-notify.
# ID_AND_LAST_MODIFIED policy: "id@last_modified", so every edit is a new key.
# Events without a modification marker fall back to the bare id.
def dedup_key(event: Event, policy: DedupPolicy = DedupPolicy.ID) -> str:
    if policy is DedupPolicy.ID_AND_LAST_MODIFIED and event.last_modified:
        return f"{event.id}@{event.last_modified}"
    return event.id

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ EVENT FINGERPRINT COMPUTATION                                             ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- _clean ---
# Strips whitespace and collapses runs of spaces.
def _clean(text: str) -> str:
    return " ".join((text or "").strip().split())

# --- compute_event_fingerprint ---
# MD5 of the normalized visible fields (summary, start, end, location).
# Two feed entries with the same fingerprint are the same appointment even
# if the feed gave them different ids.
def compute_event_fingerprint(event: Event) -> str:
    trimmed = {
        "summary": _clean(event.summary),
        "start": event.start.isoformat(timespec="minutes"),
        "end": event.end.isoformat(timespec="minutes") if event.end else "",
        "location": _clean(event.location),
    }
    normalized_json = json.dumps(trimmed, sort_keys=True)
    return hashlib.md5(normalized_json.encode("utf-8")).hexdigest()
