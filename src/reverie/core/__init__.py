"""Orchestration core for Reverie."""

from reverie.core.cancellation import CancellationToken
from reverie.core.circuit import ToolCircuitBreaker
from reverie.core.executor import FunctionExecutionService
from reverie.core.history import ExecutionHistoryStore
from reverie.core.orchestrator import GenerationOrchestrator, OrchestratorSettings
from reverie.core.streaming import StreamingSession
from reverie.core.tool_loop import LoopPhase, ToolCallLoop, ToolLoopState

__all__ = [
    "CancellationToken",
    "ExecutionHistoryStore",
    "FunctionExecutionService",
    "GenerationOrchestrator",
    "LoopPhase",
    "OrchestratorSettings",
    "StreamingSession",
    "ToolCallLoop",
    "ToolCircuitBreaker",
    "ToolLoopState",
]
