# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                       BOT EVENTS DEDUP ENGINE                              ║
# ║    Decides which fetched events have not been announced yet. Nothing is    ║
# ║    remembered until the caller commits it after a successful send.         ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
dedup.py: At-most-once filter for new-event notifications.

``filter_new`` is a pure read (apart from pruning expired entries) and is
idempotent: calling it twice without a ``commit`` in between yields the same
result. ``commit`` is the only operation that adds keys. If the store cannot
be read the engine fails closed and reports nothing as new.
"""
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Union

from config.settings import DedupPolicy
from bot.events.fingerprint import dedup_key
from bot.events.models import Event
from bot.events.snapshot import (
    CorruptSnapshotError,
    SeenEntry,
    SeenSet,
    load_seen_set,
    save_seen_set,
)
from bot.storage import StateStore
from utils.error_handling import StoreError
from utils.logging import logger
from utils.timezone_utils import utc_now

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ DEDUP ENGINE                                                              ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class DedupEngine:
    # --- __init__ ---
    # Args:
    #     store: Where SeenSets are persisted.
    #     namespace: Key prefix shared with the rest of the bot's state.
    #     retention: How long past an event's end its key is kept.
    #     policy: Whether edits (new last_modified) count as new events.
    #     clock: Returns the current aware UTC time.
    def __init__(
        self,
        store: StateStore,
        namespace: str,
        retention: timedelta = timedelta(hours=72),
        policy: DedupPolicy = DedupPolicy.ID,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._namespace = namespace
        self._retention = retention
        self._policy = policy
        self._clock = clock
        # scope -> {key: end}, the view produced by the latest filter_new
        self._pending: Dict[str, Dict[str, Optional[datetime]]] = {}

    @property
    def policy(self) -> DedupPolicy:
        return self._policy

    def key_for(self, event: Event) -> str:
        return dedup_key(event, self._policy)

    # --- _prune ---
    # Drops entries whose expiry has passed. Returns the number removed.
    def _prune(self, seen: SeenSet, now: datetime) -> int:
        expired = [k for k, entry in seen.items() if now >= entry.expires_at(self._retention)]
        for k in expired:
            del seen[k]
        return len(expired)

    # --- filter_new ---
    # Returns the events whose key is not in the scope's SeenSet, sorted by
    # (start, id), with duplicate keys collapsed. Never adds to the SeenSet.
    # Args:
    #     events: The freshly fetched events.
    #     scope: SeenSet name, one per task.
    # Returns: The new events; [] when the store is unavailable.
    async def filter_new(self, events: Iterable[Event], scope: str) -> List[Event]:
        now = self._clock()
        try:
            seen = await load_seen_set(self._store, self._namespace, scope)
        except StoreError as e:
            logger.error(f"Dedup store unavailable for '{scope}', reporting no new events: {e}")
            self._pending.pop(scope, None)
            return []
        seen = seen or {}

        pruned = self._prune(seen, now)
        if pruned:
            try:
                await save_seen_set(self._store, self._namespace, scope, seen)
                logger.debug(f"Pruned {pruned} expired seen entries from '{scope}'")
            except StoreError as e:
                logger.warning(f"Could not persist pruned seen set for '{scope}': {e}")

        fresh: Dict[str, Event] = {}
        for event in sorted(events, key=lambda ev: ev.sort_key):
            key = self.key_for(event)
            if key in seen or key in fresh:
                continue
            fresh[key] = event

        self._pending[scope] = {k: (ev.end or ev.start) for k, ev in fresh.items()}
        return list(fresh.values())

    # --- commit ---
    # Records keys as announced. Accepts keys or Events; for bare keys the end
    # time is taken from the latest filter_new view of the same scope.
    # Raises: StoreError if the SeenSet cannot be written.
    async def commit(self, items: Iterable[Union[str, Event]], scope: str) -> None:
        now = self._clock()
        pending = self._pending.get(scope, {})
        additions: SeenSet = {}
        for item in items:
            if isinstance(item, Event):
                additions[self.key_for(item)] = SeenEntry(end=item.end or item.start, committed_at=now)
            else:
                additions[item] = SeenEntry(end=pending.get(item), committed_at=now)
        if not additions and await self.has_baseline(scope):
            return

        try:
            seen = await load_seen_set(self._store, self._namespace, scope) or {}
        except CorruptSnapshotError as e:
            logger.warning(f"Replacing corrupted seen set for '{scope}': {e}")
            seen = {}
        seen.update(additions)
        await save_seen_set(self._store, self._namespace, scope, seen)

        for key in additions:
            pending.pop(key, None)
        logger.debug(f"Committed {len(additions)} key(s) to '{scope}'")

    # --- has_baseline ---
    # True once a readable SeenSet has been written for the scope.
    # Raises: StoreError if the store is unreachable.
    async def has_baseline(self, scope: str) -> bool:
        try:
            return await load_seen_set(self._store, self._namespace, scope) is not None
        except CorruptSnapshotError as e:
            logger.warning(f"Seen set for '{scope}' is unreadable, treating as missing: {e}")
            return False

