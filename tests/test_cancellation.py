"""Tests for CancellationToken."""

import asyncio
import time

import pytest

from reverie.core.cancellation import CancellationToken
from reverie.llm.errors import GenerationCancelled


class TestCancellationToken:
    def test_initial_state(self):
        token = CancellationToken()
        assert token.cancelled is False
        token.raise_if_cancelled()

    def test_cancel_idempotent(self):
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.cancelled is True
        with pytest.raises(GenerationCancelled):
            token.raise_if_cancelled()

    async def test_sleep_completes(self):
        token = CancellationToken()
        await token.sleep(0.01)
        await token.sleep(0)

    async def test_sleep_wakes_on_cancel(self):
        token = CancellationToken()

        async def cancel_soon():
            await asyncio.sleep(0.01)
            token.cancel()

        task = asyncio.ensure_future(cancel_soon())
        start = time.monotonic()
        with pytest.raises(GenerationCancelled):
            await token.sleep(10)
        await task

        assert time.monotonic() - start < 5

    async def test_zero_sleep_still_checks(self):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(GenerationCancelled):
            await token.sleep(0)


class TestRace:
    async def test_returns_result(self):
        token = CancellationToken()

        async def work():
            await asyncio.sleep(0.01)
            return 42

        assert await token.race(work()) == 42

    async def test_propagates_work_error(self):
        token = CancellationToken()

        async def work():
            raise ValueError("bad input")

        with pytest.raises(ValueError, match="bad input"):
            await token.race(work())

    async def test_cancel_abandons_in_flight_work(self):
        token = CancellationToken()
        finished = []

        async def work():
            try:
                await asyncio.sleep(2)
                finished.append("done")
            except asyncio.CancelledError:
                finished.append("interrupted")
                raise

        asyncio.get_running_loop().call_later(0.1, token.cancel)
        start = time.monotonic()
        with pytest.raises(GenerationCancelled):
            await token.race(work())

        assert time.monotonic() - start < 1
        assert finished == ["interrupted"]

    async def test_already_cancelled_never_starts(self):
        token = CancellationToken()
        token.cancel()
        started = []

        async def work():
            started.append(True)

        with pytest.raises(GenerationCancelled):
            await token.race(work())

        assert started == []

    async def test_cancel_beats_simultaneous_result(self):
        token = CancellationToken()

        async def work():
            token.cancel()
            return "too late"

        with pytest.raises(GenerationCancelled):
            await token.race(work())
