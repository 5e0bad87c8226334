"""Tool registry with plugin discovery."""

from __future__ import annotations

import logging
from importlib.metadata import entry_points
from typing import Any, Iterable

from reverie.tools.base import Tool

_logger = logging.getLogger(__name__)

_ENTRY_POINT_GROUP = "reverie.tools"


class ToolRegistry:
    """Catalog of available tools keyed by name."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Register a tool instance, replacing any tool with the same name."""
        if tool.name in self._tools:
            _logger.info("Replacing registered tool: %s", tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        """Look up a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[Tool]:
        """Return all registered tools."""
        return list(self._tools.values())

    def tool_names(self) -> list[str]:
        """Return list of registered tool names."""
        return list(self._tools.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def discover(self) -> None:
        """Load tools from entry_points group ``reverie.tools``.

        Each entry point should be a callable that returns a Tool instance
        or a Tool subclass (which will be instantiated).
        """
        for ep in entry_points(group=_ENTRY_POINT_GROUP):
            try:
                obj = ep.load()
                # If it's a class, instantiate it
                if isinstance(obj, type) and issubclass(obj, Tool):
                    tool = obj()
                elif isinstance(obj, Tool):
                    tool = obj
                elif callable(obj):
                    tool = obj()
                else:
                    _logger.warning(
                        "Entry point %s did not return a Tool: %s", ep.name, type(obj)
                    )
                    continue
                self.register(tool)
                _logger.info("Discovered plugin tool: %s", tool.name)
            except Exception:
                _logger.exception("Failed to load tool plugin: %s", ep.name)

    def get_openai_schemas(
        self, tools: Iterable[Tool] | None = None,
    ) -> list[dict[str, Any]]:
        """Return OpenAI function-calling schemas.

        Covers *tools* when given, otherwise every registered tool.
        """
        selected = self._tools.values() if tools is None else tools
        return [t.to_openai_schema() for t in selected]
