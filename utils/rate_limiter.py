# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                           RATE LIMITER MODULE                              ║
# ║    Token bucket that keeps calendar fetches under the provider quota       ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Standard library imports
import time
import threading
from typing import Callable

# Local application imports
from utils.logging import logger

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ TOKEN BUCKET IMPLEMENTATION                                                ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class TokenBucketRateLimiter:
    # --- TokenBucketRateLimiter ---
    # Tokens refill continuously at `token_refill_rate` per second up to
    # `max_tokens`; each request consumes one. Bursts up to the bucket size are
    # allowed while the long-term rate stays bounded.
    #
    # Fetches run in worker threads (asyncio.to_thread), so this is a
    # thread-safe, blocking limiter.

    # --- __init__ ---
    # Args:
    #     name: Name of the rate limiter for logging
    #     max_tokens: Maximum number of tokens the bucket can hold
    #     token_refill_rate: Rate at which tokens are added (tokens per second)
    #     clock/sleep: Injectable time functions for tests
    def __init__(
        self,
        name: str,
        max_tokens: float,
        token_refill_rate: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.name = name
        self.max_tokens = max_tokens
        self.token_refill_rate = token_refill_rate
        self._clock = clock
        self._sleep = sleep

        self.tokens = max_tokens  # Start with a full bucket
        self.last_refill = clock()

        self.lock = threading.Lock()
        self.request_count = 0
        self.throttled_count = 0

    # --- _refill ---
    # Adds the tokens accrued since the last refill. Caller holds the lock.
    def _refill(self):
        now = self._clock()
        elapsed = now - self.last_refill
        self.tokens = min(self.tokens + elapsed * self.token_refill_rate, self.max_tokens)
        self.last_refill = now

    # --- consume ---
    # Attempt to consume tokens from the bucket.
    # Args:
    #     tokens: Number of tokens to consume (default 1.0)
    #     wait: If True, block until tokens are available
    # Returns: True if tokens were consumed, False otherwise
    def consume(self, tokens: float = 1.0, wait: bool = False) -> bool:
        while True:
            with self.lock:
                self.request_count += 1
                self._refill()
                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return True
                if not wait:
                    self.throttled_count += 1
                    return False
                self.throttled_count += 1
                wait_time = (tokens - self.tokens) / self.token_refill_rate

            logger.debug(f"Rate limiter '{self.name}' waiting {wait_time:.2f}s")
            self._sleep(wait_time)


# Event list calls are the expensive ones: bursts of 5, then one every 2 seconds
EVENT_LIST_LIMITER = TokenBucketRateLimiter(
    "event_list",
    max_tokens=5.0,
    token_refill_rate=0.5
)
