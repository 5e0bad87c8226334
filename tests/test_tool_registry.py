"""Tests for the tool registry and base Tool classes."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock, patch

from reverie.tools.base import FunctionTool, Tool
from reverie.tools.builtin import register_builtins
from reverie.tools.registry import ToolRegistry
from reverie.types import ToolParameter


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class LookupTool(Tool):
    """Tool with one required and one optional parameter."""

    name = "lookup"
    description = "Look something up."
    parameters = [
        ToolParameter(name="query", type="string", description="What to look up"),
        ToolParameter(
            name="mode", type="string", description="Lookup mode",
            required=False, default="fast", enum=["fast", "thorough"],
        ),
    ]

    async def execute(self, **kwargs: Any) -> str:
        return f"found {kwargs['query']}"


def _entry_point(name: str, obj: Any) -> MagicMock:
    ep = MagicMock()
    ep.name = name
    ep.load.return_value = obj
    return ep


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestSchema:
    def test_openai_schema(self):
        schema = LookupTool().to_openai_schema()
        assert schema["type"] == "function"
        fn = schema["function"]
        assert fn["name"] == "lookup"
        assert fn["parameters"]["required"] == ["query"]
        mode = fn["parameters"]["properties"]["mode"]
        assert mode["enum"] == ["fast", "thorough"]
        assert mode["default"] == "fast"

    def test_compact_description(self):
        desc = LookupTool().to_compact_description()
        assert desc == "lookup(query: string, mode: string?) - Look something up."


class TestRegistry:
    def test_register_and_get(self):
        registry = ToolRegistry()
        tool = LookupTool()
        registry.register(tool)

        assert registry.get("lookup") is tool
        assert registry.get("missing") is None
        assert "lookup" in registry
        assert len(registry) == 1
        assert registry.tool_names() == ["lookup"]

    def test_register_replaces(self):
        registry = ToolRegistry([LookupTool()])
        replacement = LookupTool()
        registry.register(replacement)

        assert len(registry) == 1
        assert registry.get("lookup") is replacement

    def test_schemas_for_subset(self):
        extra = FunctionTool("noop", "Does nothing", lambda: None)
        registry = ToolRegistry([LookupTool(), extra])

        assert len(registry.get_openai_schemas()) == 2
        names = [s["function"]["name"] for s in registry.get_openai_schemas([extra])]
        assert names == ["noop"]

    def test_builtins(self):
        registry = ToolRegistry()
        register_builtins(registry)

        assert set(registry.tool_names()) == {
            "analyze_query_intent",
            "extract_key_entities",
            "generate_search_strategy",
            "evaluate_source_quality",
            "get_current_time",
            "calculate_sum",
        }


class TestDiscover:
    def test_class_instance_and_factory(self):
        instance = FunctionTool("instance_tool", "x", lambda: 1)
        factory = lambda: FunctionTool("factory_tool", "y", lambda: 2)  # noqa: E731
        eps = [
            _entry_point("cls", LookupTool),
            _entry_point("inst", instance),
            _entry_point("factory", factory),
        ]
        registry = ToolRegistry()
        with patch("reverie.tools.registry.entry_points", return_value=eps):
            registry.discover()

        assert set(registry.tool_names()) == {"lookup", "instance_tool", "factory_tool"}

    def test_broken_plugin_skipped(self):
        broken = MagicMock()
        broken.name = "broken"
        broken.load.side_effect = ImportError("missing dependency")
        registry = ToolRegistry()
        with patch("reverie.tools.registry.entry_points", return_value=[broken]):
            registry.discover()

        assert len(registry) == 0


class TestFunctionTool:
    async def test_sync_function(self):
        tool = FunctionTool("add", "Add", lambda a, b: a + b)
        assert await tool.execute(a=1, b=2) == 3

    async def test_async_function(self):
        async def fetch(url: str) -> str:
            return f"<html>{url}</html>"

        tool = FunctionTool("fetch", "Fetch", fetch)
        assert await tool.execute(url="x") == "<html>x</html>"
