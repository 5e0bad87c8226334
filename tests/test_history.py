"""Tests for ExecutionHistoryStore."""

import threading

from reverie.core.history import ExecutionHistoryStore
from reverie.types import ExecutionHistoryEntry, ToolResult


def _entry(name: str = "echo", success: bool = True) -> ExecutionHistoryEntry:
    return ExecutionHistoryEntry(
        tool_name=name,
        arguments={},
        result=ToolResult(success=success),
        started_at=1.0,
        finished_at=1.5,
    )


class TestAppend:
    def test_sequence_stamped(self):
        store = ExecutionHistoryStore()
        first = store.append(_entry("a"))
        second = store.append(_entry("b"))

        assert (first.sequence, second.sequence) == (1, 2)
        assert [e.tool_name for e in store.snapshot()] == ["a", "b"]

    def test_snapshot_is_immutable_copy(self):
        store = ExecutionHistoryStore()
        store.append(_entry())
        snap = store.snapshot()
        store.append(_entry())

        assert isinstance(snap, tuple)
        assert len(snap) == 1
        assert len(store) == 2

    def test_duration(self):
        assert _entry().duration_ms == 500

    def test_monotonic_length(self):
        store = ExecutionHistoryStore()
        lengths = []
        for i in range(10):
            store.append(_entry(success=i % 2 == 0))
            lengths.append(len(store.snapshot()))
        assert lengths == sorted(lengths)
        assert lengths[-1] == 10


class TestCapacity:
    def test_oldest_evicted(self):
        store = ExecutionHistoryStore(capacity=3)
        for name in "abcde":
            store.append(_entry(name))

        assert [e.tool_name for e in store.snapshot()] == ["c", "d", "e"]
        assert store.total_appended == 5
        assert store.capacity == 3

    def test_zero_means_unbounded(self):
        store = ExecutionHistoryStore(capacity=0)
        for _ in range(50):
            store.append(_entry())

        assert len(store) == 50
        assert store.capacity is None


class TestConcurrency:
    def test_parallel_appends(self):
        store = ExecutionHistoryStore()

        def worker():
            for _ in range(200):
                store.append(_entry())

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snap = store.snapshot()
        assert len(snap) == 800
        assert [e.sequence for e in snap] == list(range(1, 801))
