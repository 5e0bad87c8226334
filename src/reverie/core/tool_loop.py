"""ToolCallLoop: bounded model / tool-execution cycle.

    AWAITING_MODEL -> EXECUTING_TOOLS -> AWAITING_MODEL -> ... -> DONE

The loop state lives in a :class:`ToolLoopState` object owned by the caller,
so a model-call failure can be retried (or handed to another provider)
without re-running tools that already executed.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from reverie.core.cancellation import CancellationToken
from reverie.core.executor import FunctionExecutionService
from reverie.core.progress import ProgressReporter
from reverie.llm.adapters import ProviderAdapter
from reverie.llm.errors import GenerationError
from reverie.llm.request import build_llm_request, initial_messages
from reverie.tools.base import Tool
from reverie.types import (
    Citation,
    GenerationRequest,
    GenerationResult,
    LLMRequest,
    LLMResponse,
    ToolCall,
    ToolResult,
)

_logger = logging.getLogger(__name__)

BOUND_EXHAUSTED_TEXT = "Maximum iterations reached without completion."


class LoopPhase(enum.Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


@dataclass
class ToolLoopState:
    """Everything one agentic invocation has accumulated so far."""

    messages: list[dict[str, Any]]
    max_iterations: int
    iteration: int = 0
    phase: LoopPhase = LoopPhase.AWAITING_MODEL
    transitions: list[LoopPhase] = field(
        default_factory=lambda: [LoopPhase.AWAITING_MODEL],
    )
    executed: list[tuple[ToolCall, ToolResult]] = field(default_factory=list)
    best_text: str = ""
    final_text: str = ""
    reasoning: list[str] = field(default_factory=list)
    sources: list[Citation] = field(default_factory=list)
    usage: dict[str, int] = field(default_factory=dict)
    bound_exhausted: bool = False

    def advance(self, phase: LoopPhase) -> None:
        self.phase = phase
        self.transitions.append(phase)

    def absorb(self, response: LLMResponse) -> None:
        """Fold a model reply's text, reasoning, sources and usage in."""
        if response.content:
            self.best_text = response.content
        if response.thinking:
            self.reasoning.append(response.thinking)
        seen = {s.url for s in self.sources}
        for source in response.sources:
            if source.url not in seen:
                self.sources.append(source)
                seen.add(source.url)
        for key, value in response.usage.items():
            if isinstance(value, int):
                self.usage[key] = self.usage.get(key, 0) + value


class ToolLoopInterrupted(Exception):
    """A model call inside the loop failed; *state* can be resumed."""

    def __init__(self, cause: BaseException, state: ToolLoopState) -> None:
        super().__init__(str(cause))
        self.cause = cause
        self.state = state


@dataclass(frozen=True)
class LoopSetup:
    """Per-adapter inputs of one loop run: tool catalog, schemas, model."""

    catalog: dict[str, Tool]
    schemas: list[dict[str, Any]]
    model: str


class ToolCallLoop:
    """Runs the agentic tool-call cycle against one provider adapter.

    Parameters
    ----------
    executor:
        Executes requested tools and records them in the history store.
    default_max_iterations:
        Bound used when the request does not set ``max_iterations``.
    attempt_timeout:
        Seconds allowed for each model call (``None`` = no limit).
    """

    def __init__(
        self,
        executor: FunctionExecutionService,
        default_max_iterations: int = 5,
        attempt_timeout: float | None = None,
    ) -> None:
        if default_max_iterations < 1:
            raise ValueError("default_max_iterations must be >= 1")
        self._executor = executor
        self._default_max_iterations = default_max_iterations
        self._attempt_timeout = attempt_timeout

    def new_state(self, request: GenerationRequest) -> ToolLoopState:
        return ToolLoopState(
            messages=initial_messages(request),
            max_iterations=request.max_iterations or self._default_max_iterations,
        )

    def prepare(self, adapter: ProviderAdapter, request: GenerationRequest) -> LoopSetup:
        """Resolve the tool catalog and model for *request* on *adapter*."""
        registry = self._executor.registry
        tools = list(request.tools) if request.tools is not None else registry.list_tools()
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug(
                "Tools offered to %s:\n%s",
                adapter.name, "\n".join(t.to_compact_description() for t in tools),
            )
        return LoopSetup(
            catalog={t.name: t for t in tools},
            schemas=registry.get_openai_schemas(tools),
            model=adapter.model_for(request.model),
        )

    def next_request(
        self, request: GenerationRequest, setup: LoopSetup, state: ToolLoopState,
    ) -> LLMRequest:
        return build_llm_request(request, setup.model, state.messages, setup.schemas)

    async def run_agentic(
        self,
        adapter: ProviderAdapter,
        request: GenerationRequest,
        cancel: CancellationToken | None = None,
        state: ToolLoopState | None = None,
        progress: ProgressReporter | None = None,
    ) -> GenerationResult:
        """Drive the loop to DONE and return the final result.

        Raises
        ------
        ToolLoopInterrupted
            When a model call fails.  ``state`` is left in AWAITING_MODEL.
        GenerationCancelled
            When *cancel* fires during a model call or a tool execution.
        """
        state = state if state is not None else self.new_state(request)
        setup = self.prepare(adapter, request)

        while state.phase is not LoopPhase.DONE:
            if cancel is not None:
                cancel.raise_if_cancelled()

            llm_request = self.next_request(request, setup, state)
            try:
                response = await self._call_model(adapter, llm_request, cancel)
            except GenerationError:
                raise
            except Exception as e:
                raise ToolLoopInterrupted(e, state) from e

            await self.complete_round(adapter, response, state, setup, cancel, progress)

        return self.result(adapter, request, state, setup)

    async def complete_round(
        self,
        adapter: ProviderAdapter,
        response: LLMResponse,
        state: ToolLoopState,
        setup: LoopSetup,
        cancel: CancellationToken | None = None,
        progress: ProgressReporter | None = None,
    ) -> None:
        """Fold one model reply into *state* and run the tools it requested.

        Leaves ``state`` in DONE when the reply has no tool calls or the
        iteration bound is reached, otherwise back in AWAITING_MODEL.
        """
        state.iteration += 1
        state.absorb(response)
        _logger.info(
            "Tool loop round %d/%d on %s: %d tool call(s)",
            state.iteration, state.max_iterations, adapter.name,
            len(response.tool_calls),
        )

        if not response.has_tool_calls:
            state.final_text = response.content
            state.advance(LoopPhase.DONE)
            return

        calls = [self._with_id(tc) for tc in response.tool_calls]
        state.messages.append(self._assistant_message(response.content, calls))
        state.advance(LoopPhase.EXECUTING_TOOLS)

        results = await self._executor.execute_calls(
            calls, cancel=cancel, tools=setup.catalog, progress=progress,
        )
        for tc, result in results:
            state.messages.append({
                "role": "tool",
                "tool_call_id": tc.id,
                "name": tc.name,
                "content": result.to_message(),
            })
        state.executed.extend(results)

        if state.iteration >= state.max_iterations:
            _logger.warning(
                "Tool loop hit the iteration bound (%d) without a final answer",
                state.max_iterations,
            )
            state.bound_exhausted = True
            state.final_text = state.best_text or BOUND_EXHAUSTED_TEXT
            state.advance(LoopPhase.DONE)
        else:
            state.advance(LoopPhase.AWAITING_MODEL)

    @staticmethod
    def result(
        adapter: ProviderAdapter,
        request: GenerationRequest,
        state: ToolLoopState,
        setup: LoopSetup,
    ) -> GenerationResult:
        return GenerationResult(
            text=state.final_text,
            sources=tuple(state.sources),
            iteration_count=state.iteration,
            reasoning="\n\n".join(state.reasoning),
            paradigm=request.paradigm,
            tool_calls=tuple(tc for tc, _ in state.executed),
            tool_results=tuple(r for _, r in state.executed),
            bound_exhausted=state.bound_exhausted,
            provider=adapter.name,
            model=setup.model,
            usage=dict(state.usage),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _call_model(
        self,
        adapter: ProviderAdapter,
        llm_request: LLMRequest,
        cancel: CancellationToken | None,
    ) -> LLMResponse:
        call = adapter.generate_once(llm_request)
        if self._attempt_timeout:
            call = asyncio.wait_for(call, timeout=self._attempt_timeout)
        return await (cancel.race(call) if cancel is not None else call)

    @staticmethod
    def _with_id(tc: ToolCall) -> ToolCall:
        if tc.id:
            return tc
        return ToolCall(
            name=tc.name,
            arguments=tc.arguments,
            id=f"call_{uuid.uuid4().hex[:12]}",
            raw=tc.raw,
        )

    @staticmethod
    def _assistant_message(content: str, calls: list[ToolCall]) -> dict[str, Any]:
        return {
            "role": "assistant",
            "content": content or None,
            "tool_calls": [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {
                        "name": tc.name,
                        "arguments": json.dumps(tc.arguments),
                    },
                }
                for tc in calls
            ],
        }
