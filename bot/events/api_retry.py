# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                     BOT EVENTS API RETRY MODULE                            ║
# ║    Wraps blocking calendar API calls with rate limiting, exponential       ║
# ║    backoff and a circuit breaker. Exhaustion surfaces as FetchError.       ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
api_retry.py: Retry policy for calendar fetches.
"""
import random
import time
from typing import Callable, Optional, TypeVar

import requests
from googleapiclient.errors import HttpError

from utils.error_handling import ErrorTracker, FetchError
from utils.logging import logger
from utils.rate_limiter import EVENT_LIST_LIMITER, TokenBucketRateLimiter

T = TypeVar("T")

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CIRCUIT BREAKER STATE                                                     ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Opens after 10 failed calls; lets a call through again after 30 minutes
CALENDAR_API_TRACKER = ErrorTracker("calendar_api", threshold=10, reset_after_seconds=1800)

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ API CALL RETRY MECHANISM                                                  ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# --- _status_of ---
def _status_of(error: HttpError) -> int:
    try:
        return int(error.resp.status)
    except (AttributeError, TypeError, ValueError):
        return 0

# --- retry_api_call ---
# Executes a blocking API call with rate limiting, exponential backoff, and retries.
# Retries Google 429 and 5xx responses and network errors
# (requests.exceptions.RequestException, OSError). Other 4xx responses fail
# immediately.
# Args:
#     func: Zero-argument callable performing the request.
#     max_retries: Maximum number of attempts (default 3).
#     tracker: Circuit breaker shared by all calls to the same API.
#     limiter: Token bucket consulted before the first attempt.
#     sleep: Injectable for tests.
# Returns: The call's result.
# Raises: FetchError when the circuit is open, on a non-retryable error, or
#         once every attempt has failed.
def retry_api_call(
    func: Callable[[], T],
    max_retries: int = 3,
    tracker: ErrorTracker = CALENDAR_API_TRACKER,
    limiter: Optional[TokenBucketRateLimiter] = EVENT_LIST_LIMITER,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    if not tracker.is_available():
        raise FetchError(f"Too many recent '{tracker.name}' errors ({tracker.error_count}), backing off")

    if limiter is not None:
        limiter.consume(tokens=1, wait=True)

    last_exception: Optional[Exception] = None
    for attempt in range(max_retries):
        try:
            result = func()
            tracker.record_success()
            return result
        except HttpError as e:
            status_code = _status_of(e)
            if status_code == 429:
                backoff = (5 ** attempt) + random.uniform(1, 3)
            elif status_code >= 500:
                backoff = (2 ** attempt) + random.uniform(0, 1)
            else:
                logger.warning(f"Non-retryable Google API error: {status_code} - {e}")
                tracker.record_error(e)
                raise FetchError(f"Google API error {status_code}: {e}") from e
            last_exception = e
            logger.warning(
                f"Retryable Google API error ({status_code}), attempt {attempt + 1}/{max_retries}, "
                f"backing off for {backoff:.2f}s"
            )
        except (requests.exceptions.RequestException, OSError) as e:
            backoff = (2 ** attempt) + random.uniform(0, 1)
            last_exception = e
            logger.warning(
                f"Network error in API call, attempt {attempt + 1}/{max_retries}, "
                f"backing off for {backoff:.2f}s: {e}"
            )
        if attempt + 1 < max_retries:
            sleep(backoff)

    tracker.record_error(last_exception)
    logger.error(f"All {max_retries} retries failed for API call: {last_exception}")
    raise FetchError(f"Calendar API call failed after {max_retries} attempts: {last_exception}") from last_exception
