"""GenerationOrchestrator: provider fallback chain around every generation.

    request -> provider attempt -> classify failure -> retry | next provider
            -> single-shot result | ToolCallLoop | StreamingSession

Providers are tried strictly in declared order.  Retryable failures
(rate limits, timeouts, server errors) are retried on the same provider up
to its retry budget with exponential backoff; any other non-terminal
failure moves straight to the next provider.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence

from reverie.config import OrchestratorConfig
from reverie.core.cancellation import CancellationToken
from reverie.core.executor import FunctionExecutionService
from reverie.core.progress import ProgressCallback, ProgressReporter
from reverie.core.streaming import StreamingSession, error_event
from reverie.core.tool_loop import ToolCallLoop, ToolLoopInterrupted
from reverie.events.bus import EventBus
from reverie.llm.adapters import ProviderAdapter
from reverie.llm.errors import (
    ErrorClassifier,
    GenerationCancelled,
    GenerationError,
    max_fallbacks_exceeded,
    no_available_models,
)
from reverie.llm.request import build_llm_request
from reverie.types import (
    ErrorClassification,
    ErrorKind,
    EventType,
    GenerationMode,
    GenerationRequest,
    GenerationResult,
    ProviderAttempt,
    StreamEvent,
    StreamEventType,
)

_logger = logging.getLogger(__name__)


@dataclass
class OrchestratorSettings:
    """Retry, timeout and loop bounds for the orchestrator."""

    max_retries: int = 2
    max_backoff: float = 30.0
    backoff_jitter: float = 0.5
    attempt_timeout: float | None = 120.0
    max_iterations: int = 5

    @classmethod
    def from_config(cls, config: OrchestratorConfig) -> OrchestratorSettings:
        return cls(
            max_retries=config.max_retries,
            max_backoff=config.max_backoff,
            backoff_jitter=config.backoff_jitter,
            attempt_timeout=config.attempt_timeout or None,
            max_iterations=config.max_iterations,
        )


@dataclass
class _Invocation:
    """Per-call state; never shared between concurrent invocations."""

    cancel: CancellationToken
    progress: ProgressReporter
    ledger: list[ProviderAttempt] = field(default_factory=list)

    def record(self, provider: str, attempt: int, started: float, outcome: str) -> None:
        self.ledger.append(
            ProviderAttempt(
                provider=provider,
                attempt=attempt,
                started_at=started,
                outcome=outcome,
                latency_ms=(time.time() - started) * 1000,
            )
        )


class GenerationOrchestrator:
    """Runs generation requests against an ordered list of providers.

    Parameters
    ----------
    adapters:
        Provider adapters, primary first.  Disabled adapters are skipped.
    executor:
        Tool execution service used by the agentic tool loop.
    classifier:
        Error classifier (a default one is created when omitted).
    settings:
        Retry budget, backoff cap and jitter, per-attempt timeout, loop bound.
    event_bus:
        Receives progress and lifecycle events (optional).
    """

    def __init__(
        self,
        adapters: Sequence[ProviderAdapter],
        executor: FunctionExecutionService,
        classifier: ErrorClassifier | None = None,
        settings: OrchestratorSettings | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._adapters = list(adapters)
        self._executor = executor
        self._classifier = classifier or ErrorClassifier()
        self._settings = settings or OrchestratorSettings()
        self._event_bus = event_bus
        self._tool_loop = ToolCallLoop(
            executor,
            default_max_iterations=self._settings.max_iterations,
            attempt_timeout=self._settings.attempt_timeout,
        )
        self._streaming = StreamingSession(
            self._classifier, chunk_timeout=self._settings.attempt_timeout,
        )

    @property
    def adapters(self) -> list[ProviderAdapter]:
        return list(self._adapters)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        request: GenerationRequest,
        mode: GenerationMode = GenerationMode.SINGLE_SHOT,
        cancel: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> GenerationResult:
        """Run *request* in *mode* and return exactly one result.

        Raises
        ------
        GenerationError
            ``NO_AVAILABLE_MODELS``, ``MAX_FALLBACKS_EXCEEDED`` or
            ``CANCELLED`` (as :class:`GenerationCancelled`).
        """
        if mode is GenerationMode.STREAMING:
            async for event in self.stream(request, cancel, on_progress):
                if event.type is StreamEventType.COMPLETE:
                    return event.result
                if event.type is StreamEventType.ERROR:
                    raise event.error
            raise RuntimeError("stream ended without a terminal event")

        inv = self._invocation(cancel, on_progress)
        chain = self._chain(mode)
        await inv.progress.emit(
            EventType.GENERATION_STARTED, mode=mode.value, providers=[a.name for a in chain],
        )

        if mode is GenerationMode.TOOL_AGENTIC:
            state = self._tool_loop.new_state(request)

            async def attempt(adapter: ProviderAdapter) -> GenerationResult:
                return await self._tool_loop.run_agentic(
                    adapter, request, inv.cancel, state, inv.progress,
                )
        else:
            async def attempt(adapter: ProviderAdapter) -> GenerationResult:
                return await self._single_shot(adapter, request, inv.cancel)

        try:
            result = await self._with_fallback(chain, inv, attempt)
        except GenerationCancelled:
            _logger.info("Generation cancelled after %d attempt(s)", len(inv.ledger))
            await inv.progress.emit(
                EventType.GENERATION_ERROR,
                kind=ErrorKind.CANCELLED.value,
                message="Generation cancelled",
            )
            raise GenerationCancelled(inv.ledger) from None
        except GenerationError as e:
            await inv.progress.emit(
                EventType.GENERATION_ERROR, kind=e.kind.value, message=e.message,
            )
            raise
        await inv.progress.emit(
            EventType.GENERATION_DONE,
            provider=result.provider,
            iteration_count=result.iteration_count,
            bound_exhausted=result.bound_exhausted,
        )
        return result

    async def stream(
        self,
        request: GenerationRequest,
        cancel: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
        with_tools: bool = False,
    ) -> AsyncIterator[StreamEvent]:
        """Stream *request*: chunk events, then exactly one terminal event.

        Retry and fallback happen only while no chunk has been delivered;
        after the first chunk a failure is terminal.

        With *with_tools* the agentic tool loop runs underneath: the text of
        every model round is streamed and tools execute between rounds.
        Only tool-capable providers are tried, and tools that already ran
        are not repeated when a later provider takes over.
        """
        inv = self._invocation(cancel, on_progress)
        try:
            chain = self._chain(
                GenerationMode.TOOL_AGENTIC if with_tools else GenerationMode.STREAMING,
            )
        except GenerationError as e:
            yield error_event(e)
            return
        await inv.progress.emit(
            EventType.GENERATION_STARTED,
            mode=GenerationMode.STREAMING.value,
            providers=[a.name for a in chain],
            tools=with_tools,
        )
        state = self._tool_loop.new_state(request) if with_tools else None

        last: ErrorClassification | None = None
        for index, adapter in enumerate(chain):
            budget = self._retry_budget(adapter)
            retry = 0
            while True:
                if inv.cancel.cancelled:
                    yield error_event(GenerationCancelled(inv.ledger))
                    return
                started = await self._begin_attempt(inv, adapter, retry, budget)
                delivered = 0
                terminal: StreamEvent | None = None
                if state is not None:
                    events = self._streaming.stream_agentic(
                        adapter, request, self._tool_loop, state, inv.cancel, inv.progress,
                    )
                else:
                    events = self._streaming.stream(adapter, request, inv.cancel)
                async with contextlib.aclosing(events):
                    async for event in events:
                        if event.type is StreamEventType.CHUNK:
                            delivered += 1
                            await inv.progress.emit(
                                EventType.STREAM_CHUNK,
                                provider=adapter.name,
                                index=event.chunk_index,
                            )
                            yield event
                        else:
                            terminal = event

                if terminal is None or terminal.type is StreamEventType.COMPLETE:
                    inv.record(adapter.name, retry + 1, started, "success")
                    await inv.progress.emit(EventType.GENERATION_DONE, provider=adapter.name)
                    if terminal is not None:
                        yield terminal
                    return

                classification = terminal.error.classification
                inv.record(adapter.name, retry + 1, started, classification.kind.value)
                if delivered or not classification.should_fallback:
                    if classification.kind is ErrorKind.CANCELLED:
                        error: GenerationError = GenerationCancelled(inv.ledger)
                    else:
                        error = GenerationError(classification, attempts=inv.ledger)
                    await inv.progress.emit(
                        EventType.GENERATION_ERROR,
                        kind=classification.kind.value,
                        message=classification.message,
                    )
                    yield error_event(error, delivered, provider=adapter.name)
                    return

                last = classification
                if classification.retryable and retry < budget:
                    try:
                        await self._back_off(inv, adapter, classification, retry, budget)
                    except GenerationCancelled as e:
                        yield error_event(GenerationCancelled(inv.ledger or e.attempts))
                        return
                    retry += 1
                    continue
                break
            await self._announce_fallback(inv, chain, index, last)

        error = max_fallbacks_exceeded(last, inv.ledger)
        await inv.progress.emit(
            EventType.GENERATION_ERROR, kind=error.kind.value, message=error.message,
        )
        yield error_event(error)

    # ------------------------------------------------------------------
    # Fallback driver
    # ------------------------------------------------------------------

    async def _with_fallback(
        self,
        chain: list[ProviderAdapter],
        inv: _Invocation,
        attempt: Callable[[ProviderAdapter], Awaitable[GenerationResult]],
    ) -> GenerationResult:
        last: ErrorClassification | None = None
        for index, adapter in enumerate(chain):
            budget = self._retry_budget(adapter)
            retry = 0
            while True:
                inv.cancel.raise_if_cancelled()
                started = await self._begin_attempt(inv, adapter, retry, budget)
                try:
                    result = await attempt(adapter)
                    # A cancel that lands as the attempt finishes still wins
                    inv.cancel.raise_if_cancelled()
                except GenerationCancelled:
                    inv.record(adapter.name, retry + 1, started, ErrorKind.CANCELLED.value)
                    raise
                except Exception as e:
                    cause = e.cause if isinstance(e, ToolLoopInterrupted) else e
                    classification = self._classifier.classify(cause)
                    inv.record(adapter.name, retry + 1, started, classification.kind.value)
                    if not classification.should_fallback:
                        raise GenerationError(classification, attempts=inv.ledger) from cause
                    last = classification
                    if classification.retryable and retry < budget:
                        await self._back_off(inv, adapter, classification, retry, budget)
                        retry += 1
                        continue
                    break
                inv.record(adapter.name, retry + 1, started, "success")
                return result
            await self._announce_fallback(inv, chain, index, last)

        raise max_fallbacks_exceeded(last, inv.ledger)

    async def _single_shot(
        self,
        adapter: ProviderAdapter,
        request: GenerationRequest,
        cancel: CancellationToken,
    ) -> GenerationResult:
        model = adapter.model_for(request.model)
        call = adapter.generate_once(build_llm_request(request, model))
        if self._settings.attempt_timeout:
            call = asyncio.wait_for(call, timeout=self._settings.attempt_timeout)
        response = await cancel.race(call)
        return GenerationResult(
            text=response.content,
            sources=tuple(response.sources),
            reasoning=response.thinking,
            paradigm=request.paradigm,
            provider=adapter.name,
            model=response.model or model,
            usage=dict(response.usage),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _invocation(
        self,
        cancel: CancellationToken | None,
        on_progress: ProgressCallback | None,
    ) -> _Invocation:
        return _Invocation(
            cancel=cancel or CancellationToken(),
            progress=ProgressReporter(self._event_bus, on_progress),
        )

    def _chain(self, mode: GenerationMode) -> list[ProviderAdapter]:
        chain = [a for a in self._adapters if a.enabled]
        if not chain:
            raise no_available_models()
        if mode is GenerationMode.TOOL_AGENTIC:
            capable = [a for a in chain if a.supports_tools]
            for adapter in chain:
                if adapter not in capable:
                    _logger.info("Skipping %s: no tool calling support", adapter.name)
            if not capable:
                raise no_available_models("No enabled provider supports tool calling")
            chain = capable
        return chain

    def _retry_budget(self, adapter: ProviderAdapter) -> int:
        override = adapter.max_retries
        return self._settings.max_retries if override is None else max(0, override)

    async def _begin_attempt(
        self, inv: _Invocation, adapter: ProviderAdapter, retry: int, budget: int,
    ) -> float:
        await inv.progress.report(
            f"Trying {adapter.name} (attempt {retry + 1}/{budget + 1})",
            EventType.PROVIDER_ATTEMPT,
            provider=adapter.name,
            attempt=retry + 1,
        )
        return time.time()

    async def _back_off(
        self,
        inv: _Invocation,
        adapter: ProviderAdapter,
        classification: ErrorClassification,
        retry: int,
        budget: int,
    ) -> None:
        delay = classification.backoff_seconds * (2 ** retry)
        if self._settings.backoff_jitter > 0:
            delay += random.uniform(0, self._settings.backoff_jitter)
        delay = min(self._settings.max_backoff, delay)
        _logger.warning(
            "%s failed with %s (attempt %d/%d), retrying in %.1fs",
            adapter.name, classification.kind.value, retry + 1, budget + 1, delay,
        )
        await inv.progress.report(
            f"{adapter.name}: {classification.message}; retrying in {delay:.1f}s",
            EventType.PROVIDER_RETRY,
            provider=adapter.name,
            kind=classification.kind.value,
            delay=delay,
        )
        await inv.cancel.sleep(delay)

    async def _announce_fallback(
        self,
        inv: _Invocation,
        chain: list[ProviderAdapter],
        index: int,
        last: ErrorClassification | None,
    ) -> None:
        current = chain[index].name
        reason = last.kind.value if last else "unknown"
        if index + 1 < len(chain):
            nxt = chain[index + 1].name
            _logger.info("Falling back from %s to %s (%s)", current, nxt, reason)
            message = f"{current} unavailable ({reason}); falling back to {nxt}"
            data: dict[str, Any] = {"from": current, "to": nxt, "kind": reason}
        else:
            _logger.warning("Last provider %s failed (%s)", current, reason)
            message = f"{current} unavailable ({reason}); no providers left"
            data = {"from": current, "to": None, "kind": reason}
        await inv.progress.report(message, EventType.PROVIDER_FALLBACK, **data)
