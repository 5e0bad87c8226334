"""ResearchModelService: the public entry points callers use.

Wires configuration, provider adapters, the tool catalog, the execution
history and the orchestrator together and exposes them as plain async
methods.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Mapping, Sequence

from reverie.config import OrchestratorConfig, load_config
from reverie.core.cancellation import CancellationToken
from reverie.core.circuit import ToolCircuitBreaker
from reverie.core.executor import FunctionExecutionService
from reverie.core.history import ExecutionHistoryStore
from reverie.core.orchestrator import GenerationOrchestrator, OrchestratorSettings
from reverie.core.progress import ProgressCallback
from reverie.core.streaming import (
    ChunkCallback,
    CompleteCallback,
    ErrorCallback,
    dispatch_stream,
)
from reverie.events.bus import EventBus
from reverie.llm.adapters import ProviderAdapter, create_adapter
from reverie.llm.errors import ErrorClassifier
from reverie.tools.base import Tool
from reverie.tools.builtin import register_builtins
from reverie.tools.registry import ToolRegistry
from reverie.types import (
    EffortLevel,
    ExecutionHistoryEntry,
    GenerationMode,
    GenerationRequest,
    GenerationResult,
    ParadigmContext,
    StreamEvent,
)

_logger = logging.getLogger(__name__)


def _paradigm(
    paradigm: str | ParadigmContext | None,
    probabilities: Mapping[str, float] | None,
) -> ParadigmContext | None:
    if paradigm is None or isinstance(paradigm, ParadigmContext):
        return paradigm
    return ParadigmContext(paradigm=paradigm, probabilities=dict(probabilities or {}))


class ResearchModelService:
    """Facade over :class:`GenerationOrchestrator`.

    Usage::

        service = ResearchModelService.from_config(load_config())
        result = await service.generate_text("What is quantum computing?")
        print(result.text)
        await service.close()
    """

    def __init__(
        self,
        orchestrator: GenerationOrchestrator,
        executor: FunctionExecutionService,
        event_bus: EventBus | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._executor = executor
        self.event_bus = event_bus or EventBus()

    @classmethod
    def from_config(
        cls,
        config: OrchestratorConfig | None = None,
        registry: ToolRegistry | None = None,
        adapters: Sequence[ProviderAdapter] | None = None,
    ) -> ResearchModelService:
        """Build a fully wired service.

        *registry* defaults to the built-in research tools plus any
        ``reverie.tools`` entry-point plugins; *adapters* defaults to one
        adapter per configured provider.
        """
        config = config or load_config()
        if registry is None:
            registry = ToolRegistry()
            register_builtins(registry)
            registry.discover()
        if adapters is None:
            adapters = [
                create_adapter(spec, timeout=config.attempt_timeout or 120)
                for spec in config.providers
            ]
        _logger.info(
            "Provider chain: %s",
            ", ".join(f"{a.name}{'' if a.enabled else ' (disabled)'}" for a in adapters) or "(empty)",
        )
        event_bus = EventBus()
        classifier = ErrorClassifier()
        history = ExecutionHistoryStore(capacity=config.history_capacity)
        executor = FunctionExecutionService(
            registry,
            history,
            event_bus,
            tool_timeout=config.tool_timeout or None,
            circuit_breaker=ToolCircuitBreaker(
                config.tool_failure_threshold, config.tool_reset_after,
            ),
            classifier=classifier,
        )
        orchestrator = GenerationOrchestrator(
            adapters,
            executor,
            classifier=classifier,
            settings=OrchestratorSettings.from_config(config),
            event_bus=event_bus,
        )
        return cls(orchestrator, executor, event_bus)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_text(
        self,
        prompt: str,
        model: str | None = None,
        effort: EffortLevel | str = EffortLevel.MEDIUM,
        on_progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> GenerationResult:
        """Single-shot generation; returns text, sources and iteration count."""
        request = GenerationRequest(
            prompt=prompt, model=model, effort=EffortLevel.parse(effort),
        )
        return await self._orchestrator.run(
            request, GenerationMode.SINGLE_SHOT, cancel, on_progress,
        )

    async def generate_response_with_tools(
        self,
        prompt: str,
        tools: Sequence[Tool] | None = None,
        effort: EffortLevel | str = EffortLevel.MEDIUM,
        paradigm: str | ParadigmContext | None = None,
        paradigm_probabilities: Mapping[str, float] | None = None,
        max_iterations: int | None = None,
        model: str | None = None,
        on_progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> GenerationResult:
        """Agentic generation with the tool-call loop."""
        request = GenerationRequest(
            prompt=prompt,
            model=model,
            effort=EffortLevel.parse(effort),
            tools=tuple(tools) if tools is not None else None,
            paradigm=_paradigm(paradigm, paradigm_probabilities),
            max_iterations=max_iterations,
        )
        return await self._orchestrator.run(
            request, GenerationMode.TOOL_AGENTIC, cancel, on_progress,
        )

    def stream(
        self,
        prompt: str,
        effort: EffortLevel | str = EffortLevel.MEDIUM,
        paradigm: str | ParadigmContext | None = None,
        paradigm_probabilities: Mapping[str, float] | None = None,
        model: str | None = None,
        cancel: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Streaming generation as an ordered async sequence of events."""
        request = GenerationRequest(
            prompt=prompt,
            model=model,
            effort=EffortLevel.parse(effort),
            paradigm=_paradigm(paradigm, paradigm_probabilities),
        )
        return self._orchestrator.stream(request, cancel, on_progress)

    def stream_with_tools(
        self,
        prompt: str,
        tools: Sequence[Tool] | None = None,
        effort: EffortLevel | str = EffortLevel.MEDIUM,
        paradigm: str | ParadigmContext | None = None,
        paradigm_probabilities: Mapping[str, float] | None = None,
        max_iterations: int | None = None,
        model: str | None = None,
        cancel: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Streaming generation with the tool-call loop running underneath.

        The model's text from every round is streamed as it arrives; tool
        executions happen between rounds and are reported via *on_progress*.
        """
        request = GenerationRequest(
            prompt=prompt,
            model=model,
            effort=EffortLevel.parse(effort),
            tools=tuple(tools) if tools is not None else None,
            paradigm=_paradigm(paradigm, paradigm_probabilities),
            max_iterations=max_iterations,
        )
        return self._orchestrator.stream(request, cancel, on_progress, with_tools=True)

    async def stream_response(
        self,
        prompt: str,
        effort: EffortLevel | str = EffortLevel.MEDIUM,
        on_chunk: ChunkCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
        paradigm: str | ParadigmContext | None = None,
        paradigm_probabilities: Mapping[str, float] | None = None,
        cancel: CancellationToken | None = None,
    ) -> None:
        """Callback form of :meth:`stream`.

        ``on_chunk(text, metadata)`` fires per chunk, then exactly one of
        ``on_complete(result)`` or ``on_error(error)``.
        """
        await dispatch_stream(
            self.stream(prompt, effort, paradigm, paradigm_probabilities, cancel=cancel),
            on_chunk,
            on_complete,
            on_error,
        )

    async def stream_response_with_tools(
        self,
        prompt: str,
        tools: Sequence[Tool] | None = None,
        effort: EffortLevel | str = EffortLevel.MEDIUM,
        on_chunk: ChunkCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
        max_iterations: int | None = None,
        cancel: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Callback form of :meth:`stream_with_tools`."""
        await dispatch_stream(
            self.stream_with_tools(
                prompt, tools, effort,
                max_iterations=max_iterations, cancel=cancel, on_progress=on_progress,
            ),
            on_chunk,
            on_complete,
            on_error,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_execution_history(self) -> tuple[ExecutionHistoryEntry, ...]:
        return self._executor.history()

    @property
    def registry(self) -> ToolRegistry:
        return self._executor.registry

    async def close(self) -> None:
        """Close every provider adapter."""
        for adapter in self._orchestrator.adapters:
            await adapter.close()
