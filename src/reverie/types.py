"""Shared data types for Reverie."""

from __future__ import annotations

import enum
import json
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    from reverie.llm.errors import GenerationError
    from reverie.tools.base import Tool


# ---------------------------------------------------------------------------
# Request types
# ---------------------------------------------------------------------------

class EffortLevel(enum.Enum):
    """How much effort the model should spend on an answer."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: EffortLevel | str) -> EffortLevel:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(
                f"Unknown effort level: {value!r} (expected low, medium or high)"
            ) from None


class GenerationMode(enum.Enum):
    """Shape of a generation invocation."""

    SINGLE_SHOT = "single_shot"
    STREAMING = "streaming"
    TOOL_AGENTIC = "tool_agentic"


@dataclass(frozen=True)
class ParadigmContext:
    """Classification supplied by the caller and echoed back untouched."""

    paradigm: str
    probabilities: Mapping[str, float] = field(default_factory=dict)

    def as_metadata(self) -> dict[str, Any]:
        return {
            "paradigm": self.paradigm,
            "probabilities": dict(self.probabilities),
        }


@dataclass(frozen=True)
class GenerationRequest:
    """Immutable description of one generation invocation.

    Parameters
    ----------
    prompt:
        User prompt text.  Must be non-empty.
    model:
        Preferred model identifier.  Providers that list it in their
        ``models`` use it; the others use their own default model.
    effort:
        Effort level, mapped to sampling parameters by the request builder.
    tools:
        Tools the model may call in tool-agentic mode.  ``None`` means every
        tool in the registry.
    paradigm:
        Opaque classification echoed into results and chunk metadata.
    max_iterations:
        Upper bound on tool-loop rounds.  ``None`` uses the configured default.
    system_prompt:
        Optional system message prepended to the conversation.
    """

    prompt: str
    model: str | None = None
    effort: EffortLevel = EffortLevel.MEDIUM
    tools: tuple[Tool, ...] | None = None
    paradigm: ParadigmContext | None = None
    max_iterations: int | None = None
    system_prompt: str | None = None

    def __post_init__(self) -> None:
        if not self.prompt or not self.prompt.strip():
            raise ValueError("prompt must be a non-empty string")
        if self.max_iterations is not None and self.max_iterations < 1:
            raise ValueError(
                f"max_iterations must be >= 1, got {self.max_iterations}"
            )
        if self.tools is not None and not isinstance(self.tools, tuple):
            object.__setattr__(self, "tools", tuple(self.tools))
        if not isinstance(self.effort, EffortLevel):
            object.__setattr__(self, "effort", EffortLevel.parse(self.effort))

    @property
    def paradigm_metadata(self) -> dict[str, Any]:
        return self.paradigm.as_metadata() if self.paradigm else {}


@dataclass
class LLMRequest:
    """Provider-neutral payload handed to a provider adapter.

    ``messages`` uses the OpenAI chat layout (``role`` / ``content`` /
    ``tool_calls`` / ``tool_call_id``); adapters translate it to their wire
    format.
    """

    messages: list[dict[str, Any]]
    model: str = ""
    max_tokens: int = 4096
    temperature: float = 0.7
    reasoning_effort: str = "medium"
    tools: list[dict[str, Any]] | None = None
    tool_choice: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Tool types
# ---------------------------------------------------------------------------

@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    type: str  # string, integer, number, boolean, array, object
    description: str
    required: bool = True
    default: Any = None
    enum: list[str] | None = None


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    name: str
    arguments: dict[str, Any]
    id: str = ""
    raw: str = ""


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool execution.  Immutable once produced."""

    success: bool
    output: Any = None
    error: str = ""
    call_id: str = ""
    name: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> str:
        """Render the result as the text the model sees."""
        if self.success:
            if isinstance(self.output, str):
                return self.output
            return json.dumps(self.output, default=str, ensure_ascii=False)
        return json.dumps({"error": self.error, "success": False}, ensure_ascii=False)


@dataclass(frozen=True)
class ExecutionHistoryEntry:
    """Audit record of one tool invocation."""

    tool_name: str
    arguments: Mapping[str, Any]
    result: ToolResult
    started_at: float
    finished_at: float
    call_id: str = ""
    sequence: int = 0

    @property
    def success(self) -> bool:
        return self.result.success

    @property
    def duration_ms(self) -> float:
        return (self.finished_at - self.started_at) * 1000


# ---------------------------------------------------------------------------
# LLM types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Citation:
    """A source the model grounded its answer on."""

    url: str
    title: str = ""
    snippet: str = ""


@dataclass
class LLMResponse:
    """Unified response from a provider adapter."""

    content: str = ""
    thinking: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str = ""
    usage: dict[str, int] = field(default_factory=dict)
    model: str = ""
    sources: list[Citation] = field(default_factory=list)
    raw_response: dict[str, Any] = field(default_factory=dict)
    latency_ms: float = 0

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@dataclass
class StreamChunk:
    """One incremental piece of text from a streaming adapter.

    Tool calls requested by the model are delivered on a chunk with empty
    ``text`` once their arguments are complete.
    """

    text: str
    metadata: dict[str, Any] | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass(frozen=True)
class GenerationResult:
    """Completed generation returned to the caller."""

    text: str
    sources: tuple[Citation, ...] = ()
    iteration_count: int = 0
    reasoning: str = ""
    paradigm: ParadigmContext | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_results: tuple[ToolResult, ...] = ()
    bound_exhausted: bool = False
    provider: str = ""
    model: str = ""
    usage: Mapping[str, int] = field(default_factory=dict)

    @property
    def paradigm_metadata(self) -> dict[str, Any]:
        if self.paradigm is None:
            return {}
        return {
            "paradigm": self.paradigm.paradigm,
            "probabilities": dict(self.paradigm.probabilities),
            "tools_used": [tc.name for tc in self.tool_calls],
        }


@dataclass(frozen=True)
class ProviderAttempt:
    """Ledger entry for one try against one provider."""

    provider: str
    attempt: int
    started_at: float
    outcome: str
    latency_ms: float = 0


class StreamEventType(enum.Enum):
    CHUNK = "chunk"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class StreamEvent:
    """Item of the ordered sequence produced by a streaming generation.

    Zero or more ``CHUNK`` events are followed by exactly one ``COMPLETE``
    or ``ERROR`` event.
    """

    type: StreamEventType
    text: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    result: GenerationResult | None = None
    error: GenerationError | None = None
    chunk_index: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.type is not StreamEventType.CHUNK


# ---------------------------------------------------------------------------
# Error types
# ---------------------------------------------------------------------------

class ErrorKind(enum.Enum):
    """Closed taxonomy of failures the orchestration core distinguishes."""

    RATE_LIMIT = "rate_limit"
    QUOTA_EXCEEDED = "quota_exceeded"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    AUTHENTICATION = "authentication"
    NO_AVAILABLE_MODELS = "no_available_models"
    MAX_FALLBACKS_EXCEEDED = "max_fallbacks_exceeded"
    TOOL_EXECUTION_ERROR = "tool_execution_error"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


_TERMINAL_KINDS = frozenset({
    ErrorKind.NO_AVAILABLE_MODELS,
    ErrorKind.MAX_FALLBACKS_EXCEEDED,
    ErrorKind.CANCELLED,
})


@dataclass(frozen=True)
class ErrorClassification:
    """Kind of a failure plus the recovery policy attached to it."""

    kind: ErrorKind
    retryable: bool = False
    backoff_seconds: float = 0.0
    message: str = ""
    remediation: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.kind in _TERMINAL_KINDS

    @property
    def should_fallback(self) -> bool:
        """Whether the orchestrator may move on to the next provider."""
        return not self.is_terminal and self.kind is not ErrorKind.TOOL_EXECUTION_ERROR


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

class EventType(enum.Enum):
    """Event types emitted on the event bus."""

    # Generation lifecycle
    GENERATION_STARTED = "generation.started"
    GENERATION_DONE = "generation.done"
    GENERATION_ERROR = "generation.error"

    # Provider events
    PROVIDER_ATTEMPT = "provider.attempt"
    PROVIDER_RETRY = "provider.retry"
    PROVIDER_FALLBACK = "provider.fallback"

    # Tool events
    TOOL_EXECUTING = "tool.executing"
    TOOL_EXECUTED = "tool.executed"
    TOOL_ERROR = "tool.error"

    # Streaming
    STREAM_CHUNK = "stream.chunk"

    # Human-readable status line
    PROGRESS = "progress"


@dataclass
class AgentEvent:
    """Event emitted via the EventBus."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
