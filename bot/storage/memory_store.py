# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                        BOT IN-MEMORY STATE STORE                           ║
# ║    Dict-backed StateStore for dry runs and tests. Nothing survives a       ║
# ║    restart, so never point a production bot at it.                         ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
memory_store.py: In-process StateStore.
"""
import time
from typing import Callable, Dict, Optional, Tuple


class MemoryStateStore:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._data: Dict[str, Tuple[bytes, Optional[float]]] = {}  # key -> (value, expires_at)
        self._clock = clock

    async def get(self, key: str) -> Optional[bytes]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (bytes(value), expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None

    def keys(self):
        return sorted(self._data)
