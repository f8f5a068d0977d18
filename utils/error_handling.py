# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                  CALENDAR HERALD ERROR HANDLING UTILITIES                  ║
# ║ Error taxonomy shared by every component, and a circuit breaker for the    ║
# ║ calendar API.                                                              ║
# ╚════════════════════════════════════════════════════════════════════════════╝

# Standard library imports
import logging
import threading
import time
from typing import Callable, List, Optional

# Logger for this module
logger = logging.getLogger("calendarherald")


# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ ERROR TAXONOMY                                                             ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class HeraldError(Exception):
    """Base class for every error raised by the bot."""


class ConfigError(HeraldError):
    """Missing or malformed configuration. Fatal at startup."""


class FetchError(HeraldError):
    """The calendar source could not be read. The cycle is skipped."""


class StoreError(HeraldError):
    """The state store is unreachable or returned unusable data."""


class SendError(HeraldError):
    """A message could not be delivered to the chat channel."""


class ComponentInitError(HeraldError):
    """A component failed to initialize; already-started components were torn down."""

    def __init__(self, component: str, cause: BaseException):
        super().__init__(f"Component '{component}' failed to initialize: {cause}")
        self.component = component
        self.cause = cause


class ComponentShutdownError(HeraldError):
    """One or more components failed to shut down.

    ``errors`` holds ``(component_name, exception)`` pairs in shutdown order.
    """

    def __init__(self, errors: List[tuple]):
        names = ", ".join(name for name, _ in errors)
        super().__init__(f"{len(errors)} component(s) failed to shut down: {names}")
        self.errors = errors

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ CIRCUIT BREAKER PATTERN IMPLEMENTATION                                     ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class ErrorTracker:
    # --- __init__ ---
    # Initializes the ErrorTracker for circuit breaking.
    # Args:
    #     name: A unique name identifying the service or operation being tracked.
    #     threshold: The number of consecutive errors required to open the circuit.
    #     reset_after_seconds: How long the circuit stays open before the next
    #                          call is let through again.
    #     clock: Monotonic time source, injectable for tests.
    def __init__(self, name: str, threshold: int = 5, reset_after_seconds: int = 300,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.threshold = threshold
        self.reset_after_seconds = reset_after_seconds
        self.error_count = 0
        self.circuit_open = False
        self.last_error_time: Optional[float] = None
        self._clock = clock
        self._lock = threading.RLock()

    # --- record_error ---
    # Records an error occurrence and opens the circuit at the threshold.
    # Returns: True if the circuit is now open, False otherwise.
    def record_error(self, error: Exception) -> bool:
        with self._lock:
            self.error_count += 1
            self.last_error_time = self._clock()

            if self.error_count >= self.threshold and not self.circuit_open:
                logger.warning(
                    f"Circuit breaker opened for '{self.name}' after {self.error_count} errors "
                    f"(last: {error}). Will allow a retry in {self.reset_after_seconds}s."
                )
                self.circuit_open = True

            return self.circuit_open

    # --- record_success ---
    # A successful call closes the circuit and clears the error count.
    def record_success(self) -> None:
        with self._lock:
            if self.error_count:
                logger.debug(f"'{self.name}' recovered after {self.error_count} error(s)")
            self.reset()

    # --- is_available ---
    # Returns False while the circuit is open and the reset timeout has not passed.
    # Once the timeout has passed, the circuit is reset and the call is allowed.
    def is_available(self) -> bool:
        with self._lock:
            if not self.circuit_open:
                return True
            elapsed = self._clock() - (self.last_error_time or 0.0)
            if elapsed > self.reset_after_seconds:
                logger.info(f"Attempting to reset circuit breaker for '{self.name}' after {elapsed:.1f}s")
                self.reset()
                return True
            return False

    # --- reset ---
    # Resets the circuit breaker to the closed state.
    def reset(self) -> None:
        with self._lock:
            if self.circuit_open:
                logger.info(f"Circuit breaker for '{self.name}' has been reset.")
            self.circuit_open = False
            self.error_count = 0
            self.last_error_time = None
