# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                    BOT EVENTS SNAPSHOT MODULE                              ║
# ║    Loads and saves the per-scope set of already-announced events           ║
# ║    ("SeenSet") in the state store.                                         ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
snapshot.py: SeenSet persistence.

Stored as JSON under ``{namespace}:seen:{scope}``::

    {"<key>": {"end": "<iso>|null", "committed_at": "<iso>"}, ...}
"""
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from bot.storage import StateStore, namespaced
from utils.error_handling import StoreError
from utils.logging import logger

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ TYPES                                                                     ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class CorruptSnapshotError(StoreError):
    """The stored SeenSet exists but cannot be decoded."""


@dataclass(frozen=True)
class SeenEntry:
    end: Optional[datetime]
    committed_at: datetime

    # --- expires_at ---
    # The earliest instant at which this entry may be forgotten.
    def expires_at(self, horizon: timedelta) -> datetime:
        return (self.end or self.committed_at) + horizon

    def to_json(self) -> dict:
        return {
            "end": self.end.isoformat() if self.end else None,
            "committed_at": self.committed_at.isoformat(),
        }

    @classmethod
    def from_json(cls, data: dict) -> "SeenEntry":
        end = data.get("end")
        return cls(
            end=datetime.fromisoformat(end) if end else None,
            committed_at=datetime.fromisoformat(data["committed_at"]),
        )


SeenSet = Dict[str, SeenEntry]

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ SNAPSHOT PERSISTENCE                                                      ║
# ╚════════════════════════════════════════════════════════════════════════════╝

def seen_set_key(namespace: str, scope: str) -> str:
    return namespaced(namespace, "seen", scope)

# --- load_seen_set ---
# Reads the SeenSet for a scope.
# Returns: The decoded mapping, or None if nothing was ever written.
# Raises: StoreError if the store is unreachable, CorruptSnapshotError if the
#         payload cannot be decoded.
async def load_seen_set(store: StateStore, namespace: str, scope: str) -> Optional[SeenSet]:
    key = seen_set_key(namespace, scope)
    raw = await store.get(key)
    if raw is None:
        return None
    try:
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError(f"expected an object, got {type(payload).__name__}")
        return {str(k): SeenEntry.from_json(v) for k, v in payload.items()}
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        raise CorruptSnapshotError(f"Seen set at {key} is corrupted: {e}") from e

# --- save_seen_set ---
# Overwrites the SeenSet for a scope.
# Raises: StoreError on backend failure.
async def save_seen_set(store: StateStore, namespace: str, scope: str, seen: SeenSet) -> None:
    key = seen_set_key(namespace, scope)
    payload = {k: entry.to_json() for k, entry in sorted(seen.items())}
    await store.set(key, json.dumps(payload, ensure_ascii=False).encode("utf-8"))
    logger.debug(f"Saved {len(seen)} seen entries under {key}")
