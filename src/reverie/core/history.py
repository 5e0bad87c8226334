"""Append-only audit log of tool executions."""

from __future__ import annotations

import logging
import threading
from collections import deque

from reverie.types import ExecutionHistoryEntry

_logger = logging.getLogger(__name__)


class ExecutionHistoryStore:
    """Thread-safe append-only log shared by every invocation.

    Parameters
    ----------
    capacity:
        Maximum entries kept in memory; the oldest are evicted first.
        ``None`` or ``0`` keeps everything.

    Readers get a snapshot tuple, so a concurrent append never shows up as a
    torn entry: every snapshot is a prefix of the append order (after
    eviction of the oldest entries).
    """

    def __init__(self, capacity: int | None = None) -> None:
        self._capacity = capacity or None
        self._entries: deque[ExecutionHistoryEntry] = deque(maxlen=self._capacity)
        self._lock = threading.Lock()
        self._total = 0

    def append(self, entry: ExecutionHistoryEntry) -> ExecutionHistoryEntry:
        """Append *entry*, stamping it with the next sequence number."""
        with self._lock:
            self._total += 1
            stamped = ExecutionHistoryEntry(
                tool_name=entry.tool_name,
                arguments=entry.arguments,
                result=entry.result,
                started_at=entry.started_at,
                finished_at=entry.finished_at,
                call_id=entry.call_id,
                sequence=self._total,
            )
            if self._capacity is not None and len(self._entries) == self._capacity:
                _logger.debug("History full (%d), evicting oldest entry", self._capacity)
            self._entries.append(stamped)
        return stamped

    def snapshot(self) -> tuple[ExecutionHistoryEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    @property
    def total_appended(self) -> int:
        """Entries ever appended, including evicted ones."""
        return self._total

    @property
    def capacity(self) -> int | None:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)
