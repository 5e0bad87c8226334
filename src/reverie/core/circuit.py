"""Per-tool circuit breaker.

A tool that fails ``threshold`` times in a row is refused for
``reset_after`` seconds; the next call after that window runs normally and
a success closes the circuit again.  State is kept apart from the
execution history, which is an audit log only.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

_logger = logging.getLogger(__name__)


@dataclass
class _FailureRecord:
    count: int
    last_failure: float


class ToolCircuitBreaker:
    """Failure counter keyed by tool name.

    Parameters
    ----------
    threshold:
        Consecutive failures that open the circuit (0 disables the breaker).
    reset_after:
        Seconds after the last failure before the tool is tried again.
    clock:
        Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        threshold: int = 3,
        reset_after: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._threshold = threshold
        self._reset_after = reset_after
        self._clock = clock
        self._failures: dict[str, _FailureRecord] = {}
        self._lock = threading.Lock()

    def is_open(self, tool_name: str) -> bool:
        """True while *tool_name* must not be executed."""
        if self._threshold <= 0:
            return False
        with self._lock:
            record = self._failures.get(tool_name)
            if record is None:
                return False
            if self._clock() - record.last_failure > self._reset_after:
                del self._failures[tool_name]
                return False
            return record.count >= self._threshold

    def record_success(self, tool_name: str) -> None:
        with self._lock:
            self._failures.pop(tool_name, None)

    def record_failure(self, tool_name: str) -> None:
        now = self._clock()
        with self._lock:
            record = self._failures.get(tool_name)
            if record is None or now - record.last_failure > self._reset_after:
                record = _FailureRecord(count=0, last_failure=now)
                self._failures[tool_name] = record
            record.count += 1
            record.last_failure = now
            if record.count == self._threshold:
                _logger.warning(
                    "Tool %s failed %d times in a row; disabled for %.0fs",
                    tool_name, record.count, self._reset_after,
                )

    def failure_count(self, tool_name: str) -> int:
        with self._lock:
            record = self._failures.get(tool_name)
            return record.count if record else 0

    @property
    def threshold(self) -> int:
        return self._threshold

    @property
    def reset_after(self) -> float:
        return self._reset_after
