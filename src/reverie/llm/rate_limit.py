"""Client-side rate limiting for provider adapters.

Two token buckets (request count and tokens) refill continuously at their
per-minute rates.  A request may start only when both have capacity; a
server ``Retry-After`` blocks every caller until it passes.  Limits follow
the ``x-ratelimit-*`` headers the provider returns.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import deque
from typing import Awaitable, Callable, Mapping

_logger = logging.getLogger(__name__)

# Shortest wait between capacity checks, to avoid a busy loop
_MIN_WAIT = 0.05


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text) / 4)


def _header_int(headers: Mapping[str, str], name: str) -> int | None:
    value = headers.get(name)
    if value is None:
        return None
    try:
        number = int(float(value))
    except ValueError:
        return None
    return number if number > 0 else None


class RateLimiter:
    """Request and token buckets for one provider.

    Parameters
    ----------
    requests_per_minute:
        Request budget per rolling minute (0 = unlimited).
    tokens_per_minute:
        Token budget per rolling minute (0 = unlimited).
    burst_tokens:
        Token bucket size; defaults to ``tokens_per_minute``.
    clock:
        Monotonic time source, replaceable in tests.
    """

    def __init__(
        self,
        requests_per_minute: int = 0,
        tokens_per_minute: int = 0,
        burst_tokens: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rpm = requests_per_minute
        self._tpm = tokens_per_minute
        self._burst = burst_tokens or tokens_per_minute
        self._clock = clock
        self._requests = float(self._rpm)
        self._tokens = float(self._burst)
        self._last_refill = clock()
        self._blocked_until = 0.0
        self._reservations: deque[int] = deque(maxlen=64)
        self._lock = asyncio.Lock()

    @property
    def requests_per_minute(self) -> int:
        return self._rpm

    @property
    def tokens_per_minute(self) -> int:
        return self._tpm

    @property
    def burst_tokens(self) -> int:
        return self._burst

    def try_reserve(self, estimated_tokens: int) -> float:
        """Reserve capacity now, or return the seconds to wait first.

        Returns ``0.0`` when the request slot and tokens were reserved.
        """
        now = self._clock()
        if now < self._blocked_until:
            return self._blocked_until - now
        self._refill(now)

        # A request larger than the bucket could never pass; clamp it
        tokens = min(estimated_tokens, self._burst) if self._tpm else 0
        has_request = not self._rpm or self._requests >= 1
        has_tokens = not self._tpm or self._tokens >= tokens
        if has_request and has_tokens:
            if self._rpm:
                self._requests -= 1
            if self._tpm:
                self._tokens -= tokens
                self._reservations.append(tokens)
            return 0.0

        waits = [_MIN_WAIT]
        if not has_request:
            waits.append((1 - self._requests) * 60.0 / self._rpm)
        if not has_tokens:
            waits.append((tokens - self._tokens) * 60.0 / self._tpm)
        return max(waits)

    async def acquire(
        self,
        estimated_tokens: int = 0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> float:
        """Wait until capacity is reserved; return the total time waited."""
        waited = 0.0
        while True:
            async with self._lock:
                delay = self.try_reserve(estimated_tokens)
            if delay <= 0:
                if waited:
                    _logger.info("Rate limiter released request after %.2fs", waited)
                return waited
            _logger.debug("Rate limiter waiting %.2fs for capacity", delay)
            await sleep(delay)
            waited += delay

    def record_usage(self, actual_tokens: int) -> None:
        """Reconcile the most recent reservation with the reported usage."""
        if not self._tpm or not self._reservations or actual_tokens <= 0:
            return
        reserved = self._reservations.pop()
        delta = actual_tokens - reserved
        self._tokens = max(0.0, min(float(self._burst), self._tokens - delta))

    def penalize(self, seconds: float) -> None:
        """Block all callers for *seconds*.  A longer existing block is kept."""
        self._blocked_until = max(self._blocked_until, self._clock() + seconds)

    def update_limits(
        self,
        requests_per_minute: int | None = None,
        tokens_per_minute: int | None = None,
        burst_tokens: int | None = None,
    ) -> None:
        """Adopt new limits; unset or non-positive values are ignored."""
        if requests_per_minute and requests_per_minute > 0:
            if not self._rpm:
                self._requests = float(requests_per_minute)
            self._rpm = requests_per_minute
            self._requests = min(self._requests, float(self._rpm))
        if tokens_per_minute and tokens_per_minute > 0:
            if not self._tpm:
                self._tokens = float(burst_tokens or tokens_per_minute)
            self._tpm = tokens_per_minute
            if not burst_tokens and self._burst < self._tpm:
                self._burst = self._tpm
        if burst_tokens and burst_tokens > 0:
            self._burst = burst_tokens
        self._tokens = min(self._tokens, float(self._burst))

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        """Apply ``x-ratelimit-limit-*`` and ``x-ratelimit-burst-tokens``."""
        rpm = _header_int(headers, "x-ratelimit-limit-requests")
        tpm = _header_int(headers, "x-ratelimit-limit-tokens")
        burst = _header_int(headers, "x-ratelimit-burst-tokens")
        if rpm or tpm or burst:
            self.update_limits(rpm, tpm, burst)

    def _refill(self, now: float) -> None:
        elapsed = now - self._last_refill
        if elapsed <= 0:
            return
        minutes = elapsed / 60.0
        if self._rpm:
            self._requests = min(float(self._rpm), self._requests + minutes * self._rpm)
        if self._tpm:
            self._tokens = min(float(self._burst), self._tokens + minutes * self._tpm)
        self._last_refill = now
