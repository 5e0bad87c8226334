"""FunctionExecutionService: runs tool calls and records them.

Tool calls are executed strictly sequentially in the order the model
produced them.  Every invocation, successful or not, is appended to the
:class:`ExecutionHistoryStore`.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Any, Mapping, Sequence

from reverie.core.cancellation import CancellationToken
from reverie.core.circuit import ToolCircuitBreaker
from reverie.core.history import ExecutionHistoryStore
from reverie.core.progress import ProgressReporter
from reverie.events.bus import EventBus
from reverie.llm.errors import ErrorClassifier, GenerationCancelled, ToolExecutionError
from reverie.tools.base import Tool
from reverie.tools.registry import ToolRegistry
from reverie.types import (
    EventType,
    ExecutionHistoryEntry,
    ToolCall,
    ToolResult,
)

_logger = logging.getLogger(__name__)


def _smart_truncate(text: str, max_length: int) -> str:
    """Keep head and tail with a marker for the omitted middle.

    Keeps the first 25% and last 75%, where errors and totals usually are.
    """
    if len(text) <= max_length:
        return text
    head_size = max_length // 4
    tail_size = max_length - head_size
    omitted = len(text) - max_length
    return (
        text[:head_size]
        + f"\n\n... [{omitted} chars truncated] ...\n\n"
        + text[-tail_size:]
    )


class FunctionExecutionService:
    """Executes tools from a catalog and keeps the audit log.

    Parameters
    ----------
    registry:
        Default tool catalog.
    history:
        Shared execution history.  A private unbounded store is created when
        omitted.
    event_bus:
        Receives ``tool.*`` events (optional).
    tool_timeout:
        Seconds before a single tool execution is abandoned (``None`` = none).
    circuit_breaker:
        Refuses tools that keep raising or timing out.  A default breaker
        (3 failures, 60s) is created when omitted.
    classifier:
        Turns tool failures into the text and kind fed back to the model.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        history: ExecutionHistoryStore | None = None,
        event_bus: EventBus | None = None,
        tool_timeout: float | None = None,
        circuit_breaker: ToolCircuitBreaker | None = None,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        self._registry = registry
        self._history = history if history is not None else ExecutionHistoryStore()
        self._event_bus = event_bus
        self._tool_timeout = tool_timeout
        self._breaker = circuit_breaker if circuit_breaker is not None else ToolCircuitBreaker()
        self._classifier = classifier or ErrorClassifier()

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def circuit_breaker(self) -> ToolCircuitBreaker:
        return self._breaker

    async def execute(
        self,
        tool_name: str,
        arguments: Mapping[str, Any],
        call_id: str = "",
        tools: Mapping[str, Tool] | None = None,
        progress: ProgressReporter | None = None,
        cancel: CancellationToken | None = None,
    ) -> ToolResult:
        """Execute one tool and record it.

        *tools* restricts lookup to a per-request catalog; a name outside it
        is reported as unknown even when the registry knows it.

        Raises
        ------
        GenerationCancelled
            When *cancel* fires while the tool runs.  The interrupted call is
            still recorded in the history.
        """
        reporter = progress or ProgressReporter(self._event_bus)
        args = dict(arguments or {})
        catalog = tools if tools is not None else {t.name: t for t in self._registry.list_tools()}
        started = time.time()

        await reporter.report(
            f"Executing tool {tool_name}",
            EventType.TOOL_EXECUTING,
            tool=tool_name,
            arguments=args,
            call_id=call_id,
        )

        tool = catalog.get(tool_name)
        try:
            if tool is None:
                raise ToolExecutionError(
                    tool_name,
                    f"Unknown tool: {tool_name}. Available: {', '.join(catalog)}",
                )
            result = await self._run(tool, args, call_id, cancel)
        except ToolExecutionError as e:
            result = self._failure(call_id, tool_name, e)
        except GenerationCancelled:
            self._record(
                tool_name, args, call_id, started,
                self._failure(
                    call_id, tool_name,
                    ToolExecutionError(tool_name, f"Tool '{tool_name}' cancelled"),
                ),
            )
            raise

        finished = self._record(tool_name, args, call_id, started, result)

        if result.success:
            await reporter.emit(
                EventType.TOOL_EXECUTED,
                tool=tool_name,
                call_id=call_id,
                duration_ms=(finished - started) * 1000,
            )
        else:
            _logger.warning("Tool %s failed: %s", tool_name, result.error)
            await reporter.report(
                f"Tool {tool_name} failed: {result.error}",
                EventType.TOOL_ERROR,
                tool=tool_name,
                call_id=call_id,
                error=result.error,
            )
        return result

    async def execute_calls(
        self,
        tool_calls: Sequence[ToolCall],
        cancel: CancellationToken | None = None,
        tools: Mapping[str, Tool] | None = None,
        progress: ProgressReporter | None = None,
    ) -> list[tuple[ToolCall, ToolResult]]:
        """Execute *tool_calls* in order, checking *cancel* before each."""
        results: list[tuple[ToolCall, ToolResult]] = []
        for tc in tool_calls:
            if cancel is not None:
                cancel.raise_if_cancelled()
            result = await self.execute(tc.name, tc.arguments, tc.id, tools, progress, cancel)
            results.append((tc, result))
        return results

    def history(self) -> tuple[ExecutionHistoryEntry, ...]:
        """Read-only snapshot of every recorded execution."""
        return self._history.snapshot()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(
        self,
        tool: Tool,
        args: dict[str, Any],
        call_id: str,
        cancel: CancellationToken | None,
    ) -> ToolResult:
        missing = [
            p.name for p in tool.parameters if p.required and p.name not in args
        ]
        if missing:
            raise ToolExecutionError(
                tool.name,
                f"Missing required argument(s) for {tool.name}: {', '.join(missing)}",
            )
        if self._breaker.is_open(tool.name):
            raise ToolExecutionError(
                tool.name,
                f"Tool '{tool.name}' is temporarily disabled after "
                f"{self._breaker.failure_count(tool.name)} consecutive failures",
            )

        try:
            call = tool.execute(**args)
            if self._tool_timeout:
                call = asyncio.wait_for(call, timeout=self._tool_timeout)
            output = await (cancel.race(call) if cancel is not None else call)
        except GenerationCancelled:
            raise
        except asyncio.TimeoutError:
            self._breaker.record_failure(tool.name)
            raise ToolExecutionError(tool.name, f"Tool '{tool.name}' timed out") from None
        except ToolExecutionError:
            self._breaker.record_failure(tool.name)
            raise
        except Exception as e:
            self._breaker.record_failure(tool.name)
            raise ToolExecutionError(
                tool.name,
                f"Tool '{tool.name}' execution failed: {type(e).__name__}: {e}",
            ) from e
        self._breaker.record_success(tool.name)

        if isinstance(output, ToolResult):
            result = dataclasses.replace(output, call_id=call_id, name=tool.name)
        else:
            result = ToolResult(success=True, output=output, call_id=call_id, name=tool.name)

        max_out = getattr(tool, "max_output", 5000)
        if result.success and max_out > 0:
            text = result.to_message()
            if len(text) > max_out:
                result = ToolResult(
                    success=True,
                    output=_smart_truncate(text, max_out),
                    call_id=call_id,
                    name=tool.name,
                    metadata={**result.metadata, "truncated": True},
                )
        return result

    def _failure(self, call_id: str, name: str, error: ToolExecutionError) -> ToolResult:
        classification = self._classifier.classify(error)
        return ToolResult(
            success=False,
            error=classification.message,
            call_id=call_id,
            name=name,
            metadata={
                "kind": classification.kind.value,
                "remediation": classification.remediation,
            },
        )

    def _record(
        self,
        tool_name: str,
        args: dict[str, Any],
        call_id: str,
        started: float,
        result: ToolResult,
    ) -> float:
        finished = time.time()
        self._history.append(
            ExecutionHistoryEntry(
                tool_name=tool_name,
                arguments=args,
                result=result,
                started_at=started,
                finished_at=finished,
                call_id=call_id,
            )
        )
        return finished
