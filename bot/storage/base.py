# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                      BOT STORAGE INTERFACE MODULE                          ║
# ║    The durable key/value contract shared by the Redis and in-memory        ║
# ║    backends. Every backend failure surfaces as StoreError.                 ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
base.py: StateStore protocol and key helpers.
"""
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class StateStore(Protocol):
    """Async key/value store. Values are raw bytes; callers own the encoding."""

    async def get(self, key: str) -> Optional[bytes]:
        ...

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def ping(self) -> None:
        ...

    async def close(self) -> None:
        ...


# --- namespaced ---
# Builds "namespace:part:part". Every persisted key goes through here so one
# Redis database can host several bots.
def namespaced(namespace: str, *parts: str) -> str:
    return ":".join([namespace, *parts])
