"""Tool abstract base class and the function-backed tool."""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable

from reverie.types import ToolParameter


class Tool(ABC):
    """Base class for all tools.

    Subclasses must set ``name``, ``description``, ``parameters`` as class
    attributes and implement ``execute()``.  ``execute()`` returns the raw
    payload (any JSON-serialisable value) and raises on failure.
    """

    name: str
    description: str
    parameters: list[ToolParameter]
    max_output: int = 5000  # Per-tool output limit (chars). Override in subclasses.

    @abstractmethod
    async def execute(self, **kwargs: Any) -> Any:
        """Execute the tool asynchronously."""

    def to_openai_schema(self) -> dict[str, Any]:
        """Convert to OpenAI function calling format."""
        properties: dict[str, Any] = {}
        required: list[str] = []
        for p in self.parameters:
            prop: dict[str, Any] = {
                "type": p.type,
                "description": p.description,
            }
            if p.enum:
                prop["enum"] = p.enum
            if p.default is not None:
                prop["default"] = p.default
            properties[p.name] = prop
            if p.required:
                required.append(p.name)

        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": required,
                },
            },
        }

    def to_compact_description(self) -> str:
        """One-line compact description for logs and the CLI."""
        params = ", ".join(
            f"{p.name}: {p.type}" + ("?" if not p.required else "")
            for p in self.parameters
        )
        return f"{self.name}({params}) - {self.description}"


class FunctionTool(Tool):
    """Tool backed by a plain (sync or async) callable.

    Usage::

        def add(a: int, b: int) -> int:
            return a + b

        tool = FunctionTool(
            "calculate_sum", "Add two numbers", add,
            [ToolParameter("a", "number", "first"), ToolParameter("b", "number", "second")],
        )
    """

    def __init__(
        self,
        name: str,
        description: str,
        func: Callable[..., Any],
        parameters: list[ToolParameter] | None = None,
        max_output: int = 5000,
    ) -> None:
        self.name = name
        self.description = description
        self.parameters = list(parameters or [])
        self.max_output = max_output
        self._func = func

    async def execute(self, **kwargs: Any) -> Any:
        result = self._func(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"FunctionTool({self.name!r})"
