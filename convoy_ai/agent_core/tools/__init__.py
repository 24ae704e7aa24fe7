"""Tool registry, sequential cancellable execution and built-in workspace tools."""

from .base import CancellationToken, ToolCall, ToolContext, ToolDefinition, ToolExecutionResult, ToolSpec
from .dispatcher import CANCELLED_ERROR, ToolDispatcher
from .workspace import WORKSPACE_TOOL_NAMES, create_workspace_tools

__all__ = [
    "CancellationToken",
    "ToolCall",
    "ToolContext",
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolSpec",
    "ToolDispatcher",
    "CANCELLED_ERROR",
    "WORKSPACE_TOOL_NAMES",
    "create_workspace_tools",
]
