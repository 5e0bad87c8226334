"""Tool system for Reverie."""

from reverie.tools.base import FunctionTool, Tool
from reverie.tools.registry import ToolRegistry

__all__ = ["FunctionTool", "Tool", "ToolRegistry"]
