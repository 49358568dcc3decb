"""
Tool Integration Layer.

Tool layers the LLM can call, and the registry that validates and runs
them. MCP servers are bridged in yugent.tools.mcp_bridge.
"""

from yugent.tools.function import FunctionTool, function_tool
from yugent.tools.registry import ToolRegistry

__all__ = ["FunctionTool", "function_tool", "ToolRegistry"]
