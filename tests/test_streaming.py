"""Tests for StreamingSession and callback dispatch."""

from __future__ import annotations

import asyncio
import time

import pytest

from reverie.config import ProviderSpec
from reverie.core.cancellation import CancellationToken
from reverie.core.streaming import StreamingSession, dispatch_stream
from reverie.core.tool_loop import BOUND_EXHAUSTED_TEXT, LoopPhase, ToolCallLoop
from reverie.llm.adapters import ProviderAdapter
from reverie.llm.errors import GenerationCancelled, ProviderError
from reverie.types import (
    ErrorKind,
    GenerationRequest,
    ParadigmContext,
    StreamChunk,
    StreamEventType,
    ToolCall,
)


@pytest.fixture
def session() -> StreamingSession:
    return StreamingSession()


async def _collect(stream) -> list:
    return [event async for event in stream]


class TestStreamingSession:
    async def test_chunk_order_and_concatenation(self, session, make_adapter):
        adapter = make_adapter("a", stream_script=[["Quan", "tum ", "computing"]])

        events = await _collect(session.stream(adapter, GenerationRequest(prompt="q")))

        chunks = [e for e in events if e.type is StreamEventType.CHUNK]
        assert [c.chunk_index for c in chunks] == [0, 1, 2]
        assert events[-1].type is StreamEventType.COMPLETE
        assert events[-1].text == "".join(c.text for c in chunks) == "Quantum computing"
        assert events[-1].metadata["chunks"] == 3

    async def test_empty_stream_completes(self, session, make_adapter):
        adapter = make_adapter("a", stream_script=[[]])

        events = await _collect(session.stream(adapter, GenerationRequest(prompt="q")))

        assert len(events) == 1
        assert events[0].type is StreamEventType.COMPLETE
        assert events[0].text == ""

    async def test_empty_text_chunks_not_forwarded(self, session, make_adapter):
        adapter = make_adapter("a", stream_script=[["a", StreamChunk(text=""), "b"]])

        events = await _collect(session.stream(adapter, GenerationRequest(prompt="q")))

        assert [e.text for e in events if e.type is StreamEventType.CHUNK] == ["a", "b"]

    async def test_paradigm_in_chunk_metadata(self, session, make_adapter):
        adapter = make_adapter("a", stream_script=[["x"]])
        request = GenerationRequest(prompt="q", paradigm=ParadigmContext("teddy"))

        events = await _collect(session.stream(adapter, request))

        assert events[0].metadata == {"paradigm": "teddy"}
        assert events[-1].result.paradigm == request.paradigm

    async def test_adapter_paradigm_tag_kept(self, session, make_adapter):
        adapter = make_adapter("a", stream_script=[[
            StreamChunk(text="x", metadata={"paradigm": "bernard", "stage": "draft"}),
            "y",
        ]])
        request = GenerationRequest(prompt="q", paradigm=ParadigmContext("teddy"))

        events = await _collect(session.stream(adapter, request))

        assert events[0].metadata == {"paradigm": "bernard", "stage": "draft"}
        assert events[1].metadata == {"paradigm": "teddy"}

    async def test_failure_becomes_single_error(self, session, make_adapter):
        adapter = make_adapter(
            "a", stream_script=[["partial", ProviderError("quota exceeded", status_code=402)]],
        )

        events = await _collect(session.stream(adapter, GenerationRequest(prompt="q")))

        assert [e.type for e in events] == [StreamEventType.CHUNK, StreamEventType.ERROR]
        assert events[-1].error.kind is ErrorKind.QUOTA_EXCEEDED
        assert events[-1].metadata["chunks_delivered"] == 1

    async def test_chunk_timeout(self):
        class SlowAdapter(ProviderAdapter):
            async def generate_once(self, request):
                raise NotImplementedError

            async def generate_streaming(self, request):
                yield StreamChunk(text="first")
                await asyncio.sleep(10)
                yield StreamChunk(text="never")

        adapter = SlowAdapter(ProviderSpec(name="slow", url="http://test.invalid"))
        session = StreamingSession(chunk_timeout=0.05)
        events = await _collect(session.stream(adapter, GenerationRequest(prompt="q")))

        assert events[-1].type is StreamEventType.ERROR
        assert events[-1].error.kind is ErrorKind.TIMEOUT
        assert "".join(e.text for e in events[:-1]) == "first"

    async def test_cancel_before_first_chunk(self, session, make_adapter):
        adapter = make_adapter("a", stream_script=[["x", "y"]])
        cancel = CancellationToken()
        cancel.cancel()

        events = await _collect(session.stream(adapter, GenerationRequest(prompt="q"), cancel))

        assert len(events) == 1
        assert isinstance(events[0].error, GenerationCancelled)

    async def test_cancel_interrupts_pending_chunk(self, session):
        class StallingAdapter(ProviderAdapter):
            closed = False

            async def generate_once(self, request):
                raise NotImplementedError

            async def generate_streaming(self, request):
                try:
                    yield StreamChunk(text="first")
                    await asyncio.sleep(2)
                    yield StreamChunk(text="never")
                finally:
                    StallingAdapter.closed = True

        adapter = StallingAdapter(ProviderSpec(name="stall", url="http://test.invalid"))
        cancel = CancellationToken()
        asyncio.get_running_loop().call_later(0.1, cancel.cancel)

        start = time.monotonic()
        events = await _collect(session.stream(adapter, GenerationRequest(prompt="q"), cancel))

        assert time.monotonic() - start < 1
        assert [e.text for e in events[:-1]] == ["first"]
        assert isinstance(events[-1].error, GenerationCancelled)
        assert events[-1].metadata["chunks_delivered"] == 1
        assert StallingAdapter.closed is True


class TestDispatch:
    async def test_callbacks_on_success(self, session, make_adapter):
        adapter = make_adapter("a", stream_script=[["Hel", "lo"]])
        chunks: list[str] = []
        completed = []
        errors = []

        await session.relay(
            adapter,
            GenerationRequest(prompt="q"),
            on_chunk=lambda text, meta: chunks.append(text),
            on_complete=completed.append,
            on_error=errors.append,
        )

        assert chunks == ["Hel", "lo"]
        assert len(completed) == 1
        assert completed[0].text == "Hello"
        assert errors == []

    async def test_callbacks_on_error(self, session, make_adapter):
        adapter = make_adapter("a", stream_script=[[ProviderError("rate limited", status_code=429)]])
        completed = []
        errors = []

        await session.relay(
            adapter,
            GenerationRequest(prompt="q"),
            on_complete=completed.append,
            on_error=errors.append,
        )

        assert completed == []
        assert len(errors) == 1
        assert errors[0].kind is ErrorKind.RATE_LIMIT

    async def test_async_callbacks(self, session, make_adapter):
        adapter = make_adapter("a", stream_script=[["x"]])
        seen: list[str] = []

        async def on_chunk(text, meta):
            seen.append(text)

        async def on_complete(result):
            seen.append(f"done:{result.text}")

        await dispatch_stream(
            session.stream(adapter, GenerationRequest(prompt="q")),
            on_chunk=on_chunk,
            on_complete=on_complete,
        )

        assert seen == ["x", "done:x"]


class TestAgenticStream:
    async def test_text_from_every_round(self, session, make_adapter, executor, echo_tool):
        adapter = make_adapter("a", stream_script=[
            ["Checking. ", StreamChunk(text="", tool_calls=[
                ToolCall(name="echo", arguments={"text": "ping"}, id="c1"),
            ])],
            ["Got ", "ping."],
        ])
        loop = ToolCallLoop(executor)

        events = await _collect(
            session.stream_agentic(adapter, GenerationRequest(prompt="q"), loop),
        )

        chunks = [e for e in events if e.type is StreamEventType.CHUNK]
        assert [c.chunk_index for c in chunks] == [0, 1, 2]
        result = events[-1].result
        assert result.text == "".join(c.text for c in chunks) == "Checking. Got ping."
        assert result.iteration_count == 2
        assert [tc.id for tc in result.tool_calls] == ["c1"]
        assert echo_tool.calls == ["ping"]
        tool_message = adapter.calls[1].messages[-1]
        assert tool_message == {
            "role": "tool", "tool_call_id": "c1", "name": "echo", "content": "Echo: ping",
        }

    async def test_bound_notice_streamed(self, session, make_adapter, executor):
        call = StreamChunk(text="", tool_calls=[ToolCall(name="echo", arguments={"text": "x"})])
        adapter = make_adapter("a", stream_script=[[call]], repeat=True)
        loop = ToolCallLoop(executor)

        events = await _collect(session.stream_agentic(
            adapter, GenerationRequest(prompt="q", max_iterations=2), loop,
        ))

        assert [e.text for e in events] == [BOUND_EXHAUSTED_TEXT, BOUND_EXHAUSTED_TEXT]
        assert events[-1].result.bound_exhausted is True
        assert events[-1].result.iteration_count == 2

    async def test_failure_keeps_state_resumable(self, session, make_adapter, executor, echo_tool):
        call = StreamChunk(text="", tool_calls=[ToolCall(name="echo", arguments={"text": "once"})])
        adapter = make_adapter("a", stream_script=[
            [call], [ProviderError("upstream down", status_code=503)],
        ])
        loop = ToolCallLoop(executor)
        request = GenerationRequest(prompt="q")
        state = loop.new_state(request)

        events = await _collect(session.stream_agentic(adapter, request, loop, state))

        assert [e.type for e in events] == [StreamEventType.ERROR]
        assert events[0].error.kind is ErrorKind.SERVER_ERROR
        assert state.phase is LoopPhase.AWAITING_MODEL
        assert len(state.executed) == 1
        assert echo_tool.calls == ["once"]
