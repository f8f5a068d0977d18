# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                         BOT STORAGE PACKAGE INIT                           ║
# ║    Durable state (run markers and seen-event sets) lives behind the        ║
# ║    StateStore protocol.                                                    ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
storage package: StateStore backends.
"""
from config.settings import MEMORY_STORE_URL
from utils.logging import logger

from .base import StateStore, namespaced
from .memory_store import MemoryStateStore
from .redis_store import RedisStateStore

# --- create_state_store ---
# Chooses the backend from a REDIS_URL value.
# Args:
#     url: A redis:// / rediss:// / unix:// URL, or "memory://".
# Returns: A StateStore (not yet connected).
def create_state_store(url: str) -> StateStore:
    if url == MEMORY_STORE_URL:
        logger.warning("⚠️ Using in-memory state store: run markers and seen events are lost on restart")
        return MemoryStateStore()
    return RedisStateStore.from_url(url)
