"""Cooperative cancellation for generation invocations."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from reverie.llm.errors import GenerationCancelled

T = TypeVar("T")


class CancellationToken:
    """Caller-owned signal observed by every long-running step.

    Provider calls, chunk waits and tool executions run through
    :meth:`race`, so a cancel abandons them immediately instead of waiting
    for them to finish.  Backoff waits go through :meth:`sleep`.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation.  Idempotent."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationCancelled()

    async def sleep(self, delay: float) -> None:
        """Wait *delay* seconds, raising early if cancelled meanwhile."""
        if delay > 0:
            try:
                await asyncio.wait_for(self._event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
        else:
            # Yield to event loop so cancellation can be detected
            await asyncio.sleep(0)
        self.raise_if_cancelled()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless the token fires first.

        On cancel the pending work is cancelled (and awaited, so async
        generators and HTTP streams unwind cleanly) and
        :class:`GenerationCancelled` is raised.  A cancel that arrives
        together with the result still wins.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise GenerationCancelled()

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = [f for f in (work, waiter) if not f.done()]
            for fut in pending:
                fut.cancel()
            if pending:
                await asyncio.wait(pending)

        if self._event.is_set():
            if not work.cancelled():
                # Mark the outcome as retrieved; it is discarded
                work.exception()
            raise GenerationCancelled()
        return work.result()
