# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                     BOT TASKS RUN MARKER MODULE                            ║
# ║    Persists, per task, the scheduled instant that last completed           ║
# ║    successfully. Written only after the handler succeeds.                  ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
Run markers.

Stored as JSON under ``{namespace}:run_marker:{task_name}``::

    {"task_name": "daily_digest", "last_fired_at": "2024-01-01T06:00:00+00:00"}
"""
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from bot.storage import StateStore, namespaced
from utils.logging import logger
from utils.timezone_utils import to_utc

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ RUN MARKER                                                                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

@dataclass(frozen=True)
class RunMarker:
    task_name: str
    last_fired_at: datetime

    def encode(self) -> bytes:
        return json.dumps({
            "task_name": self.task_name,
            "last_fired_at": to_utc(self.last_fired_at).isoformat(),
        }).encode("utf-8")

    @classmethod
    def decode(cls, raw: bytes) -> "RunMarker":
        data = json.loads(raw)
        fired = datetime.fromisoformat(data["last_fired_at"])
        if fired.tzinfo is None:
            raise ValueError("last_fired_at has no UTC offset")
        return cls(task_name=str(data["task_name"]), last_fired_at=fired)


class RunMarkerStore:
    def __init__(self, store: StateStore, namespace: str):
        self._store = store
        self._namespace = namespace

    def key_for(self, task_name: str) -> str:
        return namespaced(self._namespace, "run_marker", task_name)

    # --- load ---
    # Returns: The last successfully fired instant, or None if the task never
    #          completed (or its marker is unreadable).
    # Raises: StoreError if the store is unreachable.
    async def load(self, task_name: str) -> Optional[datetime]:
        raw = await self._store.get(self.key_for(task_name))
        if raw is None:
            return None
        try:
            return RunMarker.decode(raw).last_fired_at
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Ignoring unreadable run marker for '{task_name}': {e}")
            return None

    # --- save ---
    # Raises: StoreError on backend failure.
    async def save(self, task_name: str, fired_at: datetime) -> None:
        await self._store.set(self.key_for(task_name), RunMarker(task_name, fired_at).encode())
