"""Tool registry, dispatcher and built-in tools."""

from vibe_runtime.tools.builtin import builtin_tools, default_registry
from vibe_runtime.tools.context import ToolContext
from vibe_runtime.tools.dispatcher import (
    DENIED_MESSAGE,
    SANDBOX_DENIED_MESSAGE,
    ToolCallRecord,
    ToolDispatcher,
)
from vibe_runtime.tools.registry import (
    DuplicateToolError,
    ToolDefinition,
    ToolError,
    ToolHandler,
    ToolRegistry,
    ToolSchema,
    ToolValidationError,
    UnknownToolError,
)

__all__ = [
    "DENIED_MESSAGE",
    "SANDBOX_DENIED_MESSAGE",
    "DuplicateToolError",
    "ToolCallRecord",
    "ToolContext",
    "ToolDefinition",
    "ToolDispatcher",
    "ToolError",
    "ToolHandler",
    "ToolRegistry",
    "ToolSchema",
    "ToolValidationError",
    "UnknownToolError",
    "builtin_tools",
    "default_registry",
]
