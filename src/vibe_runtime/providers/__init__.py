"""
vibe-runtime: LLM provider capability

File: src/vibe_runtime/providers/__init__.py

Purpose
- Re-export the chat provider protocol and its request/response models.
"""

from vibe_runtime.providers.base import (
    ChatMessage,
    ChatOptions,
    ChatProvider,
    ChatResponse,
    ChatUsage,
    MessageRole,
    ProviderError,
    ToolCall,
    ToolSpec,
    parse_tool_arguments,
)

__all__ = [
    "ChatMessage",
    "ChatOptions",
    "ChatProvider",
    "ChatResponse",
    "ChatUsage",
    "MessageRole",
    "ProviderError",
    "ToolCall",
    "ToolSpec",
    "parse_tool_arguments",
]
