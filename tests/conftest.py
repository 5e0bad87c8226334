"""Shared fixtures: scripted provider adapters and a small tool catalog."""

from __future__ import annotations

from typing import Any, AsyncIterator, Callable

import pytest

from reverie.config import ProviderSpec
from reverie.core.executor import FunctionExecutionService
from reverie.core.history import ExecutionHistoryStore
from reverie.core.orchestrator import GenerationOrchestrator, OrchestratorSettings
from reverie.events.bus import EventBus
from reverie.llm.adapters import ProviderAdapter
from reverie.tools.base import Tool
from reverie.tools.registry import ToolRegistry
from reverie.types import LLMRequest, LLMResponse, StreamChunk, ToolParameter


# ---------------------------------------------------------------------------
# Scripted adapter
# ---------------------------------------------------------------------------

class ScriptedAdapter(ProviderAdapter):
    """Replays queued outcomes instead of talking HTTP.

    ``script`` items are :class:`LLMResponse` objects (returned) or
    exceptions (raised).  ``stream_script`` items are lists whose entries are
    chunk strings, :class:`StreamChunk` objects or exceptions.  With
    ``repeat=True`` the last script item is replayed forever.
    """

    def __init__(
        self,
        name: str,
        script: list[Any] | None = None,
        stream_script: list[list[Any]] | None = None,
        *,
        enabled: bool = True,
        tools: bool = True,
        max_retries: int | None = None,
        models: list[str] | None = None,
        repeat: bool = False,
    ) -> None:
        super().__init__(
            ProviderSpec(
                name=name,
                url="http://test.invalid",
                models=models or [f"{name}-model"],
                enabled=enabled,
                supports_tools=tools,
                max_retries=max_retries,
            )
        )
        self.script = list(script or [])
        self.stream_script = list(stream_script or [])
        self.repeat = repeat
        self.calls: list[LLMRequest] = []

    def _next_outcome(self, queue: list[Any]) -> Any:
        if not queue:
            raise AssertionError(f"{self.name}: unexpected call")
        if self.repeat and len(queue) == 1:
            return queue[0]
        return queue.pop(0)

    async def generate_once(self, request: LLMRequest) -> LLMResponse:
        self.calls.append(request)
        outcome = self._next_outcome(self.script)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def generate_streaming(self, request: LLMRequest) -> AsyncIterator[StreamChunk]:
        self.calls.append(request)
        for piece in self._next_outcome(self.stream_script):
            if isinstance(piece, BaseException):
                raise piece
            yield piece if isinstance(piece, StreamChunk) else StreamChunk(text=piece)


# ---------------------------------------------------------------------------
# Test tools
# ---------------------------------------------------------------------------

class EchoTool(Tool):
    name = "echo"
    description = "Echo input"
    parameters = [ToolParameter(name="text", type="string", description="Text to echo")]

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def execute(self, **kwargs: Any) -> str:
        text = kwargs.get("text", "")
        self.calls.append(text)
        return f"Echo: {text}"


class BrokenTool(Tool):
    name = "broken"
    description = "Always raises"
    parameters: list[ToolParameter] = []

    async def execute(self, **kwargs: Any) -> Any:
        raise RuntimeError("disk on fire")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_adapter() -> Callable[..., ScriptedAdapter]:
    return ScriptedAdapter


@pytest.fixture
def echo_tool() -> EchoTool:
    return EchoTool()


@pytest.fixture
def registry(echo_tool: EchoTool) -> ToolRegistry:
    return ToolRegistry([echo_tool, BrokenTool()])


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def history() -> ExecutionHistoryStore:
    return ExecutionHistoryStore()


@pytest.fixture
def executor(registry, history, event_bus) -> FunctionExecutionService:
    return FunctionExecutionService(registry, history, event_bus)


@pytest.fixture
def settings() -> OrchestratorSettings:
    # No real sleeping between retries
    return OrchestratorSettings(max_retries=2, max_backoff=0, attempt_timeout=None, max_iterations=5)


@pytest.fixture
def make_orchestrator(executor, settings, event_bus) -> Callable[..., GenerationOrchestrator]:
    def _make(*adapters: ProviderAdapter, **overrides: Any) -> GenerationOrchestrator:
        merged = OrchestratorSettings(**{**settings.__dict__, **overrides})
        return GenerationOrchestrator(
            list(adapters), executor, settings=merged, event_bus=event_bus,
        )

    return _make
