# ╔════════════════════════════════════════════════════════════════════════════╗
# ║                      BOT TASKS HEALTH MODULE                               ║
# ║    Per-task in-flight locks and consecutive-failure tracking for the       ║
# ║    scheduler.                                                              ║
# ╚════════════════════════════════════════════════════════════════════════════╝

"""
Task health monitoring.

Handles:
- Ensuring only one run of a task is in flight
- Counting consecutive handler failures
- Counting consecutive run-marker persistence failures
"""
from datetime import datetime
from typing import Dict, Optional

from utils.logging import logger
from utils.timezone_utils import utc_now

# Consecutive handler failures before a warning is logged
_WARN_AFTER_ERRORS = 3
# Consecutive marker-save failures before the "will re-fire" warning
_WARN_AFTER_MARKER_FAILURES = 2

# ╔════════════════════════════════════════════════════════════════════════════╗
# ║ TASK HEALTH STATE                                                         ║
# ╚════════════════════════════════════════════════════════════════════════════╝

class TaskHealth:
    def __init__(self):
        self._locks: Dict[str, bool] = {}           # task -> handler in flight
        self._last_success: Dict[str, datetime] = {}
        self._error_counts: Dict[str, int] = {}
        self._marker_failures: Dict[str, int] = {}

    def is_running(self, task_name: str) -> bool:
        return self._locks.get(task_name, False)

    # --- try_lock ---
    # Marks a task as in flight. Synchronous so the check and the claim cannot
    # interleave with another tick.
    # Returns: False (and logs) if a previous run is still in flight.
    def try_lock(self, task_name: str) -> bool:
        if self._locks.get(task_name, False):
            logger.info(f"Task {task_name} still running, skipping this tick")
            return False
        self._locks[task_name] = True
        return True

    def unlock(self, task_name: str) -> None:
        self._locks[task_name] = False

    def error_count(self, task_name: str) -> int:
        return self._error_counts.get(task_name, 0)

    def marker_failures(self, task_name: str) -> int:
        return self._marker_failures.get(task_name, 0)

    def last_success(self, task_name: str) -> Optional[datetime]:
        return self._last_success.get(task_name)

    # --- update_task_health ---
    # Success resets the error count and stamps the last success time.
    # Failure increments the count and warns from the third one on.
    def update_task_health(self, task_name: str, success: bool = True) -> None:
        if success:
            self._last_success[task_name] = utc_now()
            self._error_counts[task_name] = 0
            return
        error_count = self._error_counts.get(task_name, 0) + 1
        self._error_counts[task_name] = error_count
        if error_count >= _WARN_AFTER_ERRORS:
            logger.warning(f"Task {task_name} has failed {error_count} consecutive times")

    # --- record_marker_save ---
    # Tracks run-marker persistence. A failure that recurs means the task
    # will fire again on every restart until the store recovers.
    def record_marker_save(self, task_name: str, success: bool) -> None:
        if success:
            if self._marker_failures.get(task_name):
                logger.info(f"Run marker for {task_name} is being persisted again")
            self._marker_failures[task_name] = 0
            return
        failures = self._marker_failures.get(task_name, 0) + 1
        self._marker_failures[task_name] = failures
        if failures >= _WARN_AFTER_MARKER_FAILURES:
            logger.warning(
                f"⚠️ Run marker for {task_name} failed to persist {failures} times in a row; "
                f"the task may fire again after a restart"
            )

    def summary(self) -> str:
        names = sorted(set(self._locks) | set(self._error_counts))
        parts = []
        for name in names:
            last = self.last_success(name)
            last_text = last.strftime("%Y-%m-%d %H:%M:%S") if last else "never"
            parts.append(
                f"{name}: {'RUNNING' if self.is_running(name) else 'idle'} "
                f"(errors: {self.error_count(name)}, last success: {last_text})"
            )
        return ", ".join(parts)
