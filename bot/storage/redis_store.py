# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                        BOT REDIS STATE STORE                               ║
# ║    Production StateStore on redis.asyncio. Connection and protocol         ║
# ║    failures are wrapped into StoreError.                                   ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
redis_store.py: Redis-backed StateStore.
"""
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from utils.error_handling import StoreError
from utils.logging import logger

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ REDIS STORE                                                               ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class RedisStateStore:
    # --- __init__ ---
    # Args:
    #     client: A redis.asyncio client (decode_responses=False).
    def __init__(self, client: Redis):
        self._redis = client

    # --- from_url ---
    # Builds the client with short socket timeouts so a dead Redis fails a
    # cycle instead of hanging it.
    @classmethod
    def from_url(cls, url: str, timeout: float = 5.0) -> "RedisStateStore":
        client = Redis.from_url(
            url,
            decode_responses=False,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client)

    async def get(self, key: str) -> Optional[bytes]:
        try:
            return await self._redis.get(key)
        except (RedisError, OSError) as e:
            raise StoreError(f"Redis GET {key} failed: {e}") from e

    async def set(self, key: str, value: bytes, ttl: Optional[int] = None) -> None:
        try:
            await self._redis.set(key, value, ex=ttl)
        except (RedisError, OSError) as e:
            raise StoreError(f"Redis SET {key} failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except (RedisError, OSError) as e:
            raise StoreError(f"Redis DEL {key} failed: {e}") from e

    async def ping(self) -> None:
        try:
            await self._redis.ping()
        except (RedisError, OSError) as e:
            raise StoreError(f"Redis is unreachable: {e}") from e

    async def close(self) -> None:
        try:
            await self._redis.aclose()
        except (RedisError, OSError) as e:
            logger.warning(f"Error closing Redis connection: {e}")
