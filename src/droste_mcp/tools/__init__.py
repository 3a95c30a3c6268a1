"""
MCP tool handlers for Droste CV backend operations.

Each tool forwards to the backend gateway. The dispatcher handles
parameter validation, routing and result serialization.
"""

from .definitions import TOOL_CATALOG, TOOL_SPECS, ToolSpec
from .dispatch import ToolDispatcher, validate_arguments
from .result import ToolCall, ToolCallState, ToolResult

__all__ = [
    "TOOL_CATALOG",
    "TOOL_SPECS",
    "ToolCall",
    "ToolCallState",
    "ToolDispatcher",
    "ToolResult",
    "ToolSpec",
    "validate_arguments",
]
