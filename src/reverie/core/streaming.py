"""StreamingSession: relays provider chunks as an ordered event sequence.

A session yields zero or more ``CHUNK`` events in emission order followed by
exactly one terminal ``COMPLETE`` or ``ERROR`` event.  The concatenation of
the chunk texts equals the ``COMPLETE`` text.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import inspect
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from reverie.core.cancellation import CancellationToken
from reverie.core.progress import ProgressReporter
from reverie.core.tool_loop import BOUND_EXHAUSTED_TEXT, LoopPhase, ToolCallLoop, ToolLoopState
from reverie.llm.adapters import ProviderAdapter
from reverie.llm.errors import ErrorClassifier, GenerationCancelled, GenerationError
from reverie.llm.request import build_llm_request
from reverie.types import (
    Citation,
    GenerationRequest,
    GenerationResult,
    LLMRequest,
    LLMResponse,
    StreamChunk,
    StreamEvent,
    StreamEventType,
    ToolCall,
)

_logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str, dict[str, Any]], Any]
CompleteCallback = Callable[[GenerationResult], Any]
ErrorCallback = Callable[[GenerationError], Any]


def error_event(error: GenerationError, chunks_delivered: int = 0, **metadata: Any) -> StreamEvent:
    return StreamEvent(
        type=StreamEventType.ERROR,
        error=error,
        metadata={"chunks_delivered": chunks_delivered, **metadata},
    )


async def _invoke(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


async def dispatch_stream(
    events: AsyncIterator[StreamEvent],
    on_chunk: ChunkCallback | None = None,
    on_complete: CompleteCallback | None = None,
    on_error: ErrorCallback | None = None,
) -> None:
    """Drive *events* into callbacks (sync or async).

    ``on_complete`` and ``on_error`` are mutually exclusive and each fires at
    most once.
    """
    async for event in events:
        if event.type is StreamEventType.CHUNK:
            await _invoke(on_chunk, event.text, event.metadata)
        elif event.type is StreamEventType.COMPLETE:
            await _invoke(on_complete, event.result)
            return
        else:
            await _invoke(on_error, event.error)
            return


class StreamingSession:
    """Consumes one adapter's streaming output.

    Parameters
    ----------
    classifier:
        Used to classify failures raised by the adapter stream.
    chunk_timeout:
        Seconds to wait for each next chunk (``None`` = no limit).

    The session holds no per-stream state, so one instance can serve any
    number of concurrent streams.
    """

    def __init__(
        self,
        classifier: ErrorClassifier | None = None,
        chunk_timeout: float | None = None,
    ) -> None:
        self._classifier = classifier or ErrorClassifier()
        self._chunk_timeout = chunk_timeout

    async def chunks(
        self,
        adapter: ProviderAdapter,
        llm_request: LLMRequest,
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Yield the raw chunks of one adapter stream.

        Every wait for the next chunk is bounded by ``chunk_timeout`` and
        abandoned as soon as *cancel* fires.  The adapter stream is always
        closed on exit.
        """
        iterator = adapter.generate_streaming(llm_request).__aiter__()
        try:
            while True:
                try:
                    chunk = await self._next(iterator, cancel)
                except StopAsyncIteration:
                    return
                yield chunk
        finally:
            aclose = getattr(iterator, "aclose", None)
            if aclose is not None:
                await aclose()

    async def stream(
        self,
        adapter: ProviderAdapter,
        request: GenerationRequest,
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield chunk events then exactly one terminal event."""
        model = adapter.model_for(request.model)
        llm_request = build_llm_request(request, model)

        parts: list[str] = []
        sources: list[Citation] = []
        usage: dict[str, int] = {}
        try:
            async with contextlib.aclosing(self.chunks(adapter, llm_request, cancel)) as chunks:
                async for chunk in chunks:
                    extra = self._absorb(chunk, sources, usage)
                    if not chunk.text:
                        continue
                    parts.append(chunk.text)
                    yield self._chunk_event(request, chunk.text, extra, len(parts) - 1)
        except Exception as e:
            yield self._failed(adapter, e, len(parts))
            return

        text = "".join(parts)
        result = GenerationResult(
            text=text,
            sources=tuple(sources),
            paradigm=request.paradigm,
            provider=adapter.name,
            model=model,
            usage=usage,
        )
        yield self._complete_event(request, result, len(parts))

    async def stream_agentic(
        self,
        adapter: ProviderAdapter,
        request: GenerationRequest,
        loop: ToolCallLoop,
        state: ToolLoopState | None = None,
        cancel: CancellationToken | None = None,
        progress: ProgressReporter | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream the tool loop: text of every model round as chunk events,
        tools executed between rounds, then exactly one terminal event.

        The ``COMPLETE`` text is the concatenation of every chunk, so text
        the model wrote before calling a tool is part of the answer.  When
        the iteration bound is hit before any text was streamed, the
        bound-exhausted notice is sent as the only chunk.

        *state* is updated in place.  After a failure before the first
        chunk it still holds the executed tools and can be handed to
        another adapter.
        """
        state = state if state is not None else loop.new_state(request)
        setup = loop.prepare(adapter, request)
        parts: list[str] = []
        try:
            while state.phase is not LoopPhase.DONE:
                llm_request = loop.next_request(request, setup, state)
                round_parts: list[str] = []
                calls: list[ToolCall] = []
                sources: list[Citation] = []
                usage: dict[str, int] = {}
                async with contextlib.aclosing(
                    self.chunks(adapter, llm_request, cancel),
                ) as chunks:
                    async for chunk in chunks:
                        calls.extend(chunk.tool_calls)
                        extra = self._absorb(chunk, sources, usage)
                        if not chunk.text:
                            continue
                        round_parts.append(chunk.text)
                        parts.append(chunk.text)
                        yield self._chunk_event(request, chunk.text, extra, len(parts) - 1)

                response = LLMResponse(
                    content="".join(round_parts),
                    tool_calls=calls,
                    usage=usage,
                    model=setup.model,
                    sources=sources,
                )
                await loop.complete_round(adapter, response, state, setup, cancel, progress)

            if state.bound_exhausted and not parts:
                parts.append(BOUND_EXHAUSTED_TEXT)
                yield self._chunk_event(request, BOUND_EXHAUSTED_TEXT, {}, 0)
        except Exception as e:
            yield self._failed(adapter, e, len(parts))
            return

        result = dataclasses.replace(
            loop.result(adapter, request, state, setup), text="".join(parts),
        )
        yield self._complete_event(request, result, len(parts))

    async def relay(
        self,
        adapter: ProviderAdapter,
        request: GenerationRequest,
        on_chunk: ChunkCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> None:
        """Callback form of :meth:`stream`."""
        await dispatch_stream(
            self.stream(adapter, request, cancel), on_chunk, on_complete, on_error,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _next(
        self,
        iterator: AsyncIterator[StreamChunk],
        cancel: CancellationToken | None,
    ) -> StreamChunk:
        step: Awaitable[StreamChunk] = iterator.__anext__()
        if self._chunk_timeout:
            step = asyncio.wait_for(step, timeout=self._chunk_timeout)
        if cancel is not None:
            return await cancel.race(step)
        return await step

    @staticmethod
    def _chunk_event(
        request: GenerationRequest, text: str, extra: dict[str, Any], index: int,
    ) -> StreamEvent:
        metadata = dict(extra)
        if request.paradigm is not None:
            # An adapter's own tag wins over the request's paradigm
            metadata.setdefault("paradigm", request.paradigm.paradigm)
        return StreamEvent(
            type=StreamEventType.CHUNK, text=text, metadata=metadata, chunk_index=index,
        )

    @staticmethod
    def _complete_event(
        request: GenerationRequest, result: GenerationResult, chunks: int,
    ) -> StreamEvent:
        return StreamEvent(
            type=StreamEventType.COMPLETE,
            text=result.text,
            metadata={
                **request.paradigm_metadata,
                "provider": result.provider,
                "model": result.model,
                "chunks": chunks,
            },
            result=result,
            chunk_index=chunks,
        )

    def _failed(self, adapter: ProviderAdapter, error: Exception, delivered: int) -> StreamEvent:
        if isinstance(error, GenerationCancelled):
            return error_event(GenerationCancelled(), delivered, provider=adapter.name)
        classification = self._classifier.classify(error)
        _logger.warning(
            "Stream from %s failed after %d chunk(s): %s",
            adapter.name, delivered, classification.message,
        )
        return error_event(GenerationError(classification), delivered, provider=adapter.name)

    @staticmethod
    def _absorb(
        chunk: StreamChunk,
        sources: list[Citation],
        usage: dict[str, int],
    ) -> dict[str, Any]:
        """Collect sources/usage from chunk metadata; return the rest."""
        if not chunk.metadata:
            return {}
        extra = dict(chunk.metadata)
        for source in extra.pop("sources", None) or []:
            if source not in sources:
                sources.append(source)
        usage.update(extra.pop("usage", None) or {})
        return extra
