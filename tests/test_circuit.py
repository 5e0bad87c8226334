"""Tests for the per-tool circuit breaker."""

from reverie.core.circuit import ToolCircuitBreaker


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestToolCircuitBreaker:
    def test_closed_until_threshold(self):
        breaker = ToolCircuitBreaker(threshold=3, clock=FakeClock())

        breaker.record_failure("search")
        breaker.record_failure("search")
        assert breaker.is_open("search") is False

        breaker.record_failure("search")
        assert breaker.is_open("search") is True
        assert breaker.failure_count("search") == 3

    def test_success_resets(self):
        breaker = ToolCircuitBreaker(threshold=2, clock=FakeClock())
        breaker.record_failure("search")
        breaker.record_success("search")
        breaker.record_failure("search")

        assert breaker.is_open("search") is False
        assert breaker.failure_count("search") == 1

    def test_tools_tracked_separately(self):
        breaker = ToolCircuitBreaker(threshold=1, clock=FakeClock())
        breaker.record_failure("search")

        assert breaker.is_open("search") is True
        assert breaker.is_open("calculate_sum") is False

    def test_half_open_after_window(self):
        clock = FakeClock()
        breaker = ToolCircuitBreaker(threshold=1, reset_after=60, clock=clock)
        breaker.record_failure("search")

        clock.now += 59
        assert breaker.is_open("search") is True
        clock.now += 2
        assert breaker.is_open("search") is False
        assert breaker.failure_count("search") == 0

    def test_stale_failures_do_not_accumulate(self):
        clock = FakeClock()
        breaker = ToolCircuitBreaker(threshold=2, reset_after=10, clock=clock)
        breaker.record_failure("search")
        clock.now += 11
        breaker.record_failure("search")

        assert breaker.failure_count("search") == 1
        assert breaker.is_open("search") is False

    def test_zero_threshold_disables(self):
        breaker = ToolCircuitBreaker(threshold=0, clock=FakeClock())
        for _ in range(10):
            breaker.record_failure("search")

        assert breaker.is_open("search") is False

    def test_open_logs_warning(self, caplog):
        breaker = ToolCircuitBreaker(threshold=1, reset_after=60, clock=FakeClock())
        breaker.record_failure("search")

        assert "search failed 1 times in a row" in caplog.text
