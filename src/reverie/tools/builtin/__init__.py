"""Built-in tools for Reverie."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reverie.tools.registry import ToolRegistry


def register_builtins(registry: ToolRegistry) -> None:
    """Register all built-in tools with the given registry."""
    from reverie.tools.builtin.research import (
        AnalyzeQueryIntentTool,
        CalculateSumTool,
        CurrentTimeTool,
        EvaluateSourceQualityTool,
        ExtractKeyEntitiesTool,
        GenerateSearchStrategyTool,
    )

    for tool_cls in [
        AnalyzeQueryIntentTool,
        ExtractKeyEntitiesTool,
        GenerateSearchStrategyTool,
        EvaluateSourceQualityTool,
        CurrentTimeTool,
        CalculateSumTool,
    ]:
        registry.register(tool_cls())
