"""
vibe-runtime: chat provider contract

File: src/vibe_runtime/providers/base.py

Purpose
- Provider-agnostic request/response models for LLM chat calls.
- The ``ChatProvider`` protocol that agent runners drive.

Functional requirements
- Tool calls returned by providers are normalized to ``ToolCall`` with a JSON
  object as arguments.
- Provider failures are raised as ``ProviderError`` and surface upstream as
  failed agent results.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol, runtime_checkable

from vibe_runtime.domain.models import JSONValue


def _validate_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} cannot be empty")
    return normalized


def _coerce_json_value(value: object, *, path: str) -> JSONValue:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Mapping):
        return _coerce_json_mapping(value, path=path)
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [_coerce_json_value(item, path=f"{path}[]") for item in value]
    raise TypeError(f"{path} must be JSON-serializable")


def _coerce_json_mapping(mapping: Mapping[object, object], *, path: str) -> dict[str, JSONValue]:
    out: dict[str, JSONValue] = {}
    for key, value in mapping.items():
        if not isinstance(key, str):
            raise TypeError(f"{path} keys must be strings")
        out[key] = _coerce_json_value(value, path=f"{path}.{key}")
    return out


class MessageRole(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True, slots=True)
class ToolCall:
    """Normalized tool call emitted by providers."""

    call_id: str
    name: str
    arguments: Mapping[str, JSONValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "call_id", _validate_non_empty_str(self.call_id, "ToolCall.call_id")
        )
        object.__setattr__(self, "name", _validate_non_empty_str(self.name, "ToolCall.name"))
        object.__setattr__(
            self,
            "arguments",
            _coerce_json_mapping(dict(self.arguments), path="ToolCall.arguments"),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "call_id": self.call_id,
            "name": self.name,
            "arguments": dict(self.arguments),
        }


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One conversation turn.

    ``tool_call_id`` links a ``tool`` message to the call it answers;
    ``tool_calls`` carries the calls an ``assistant`` turn requested.
    """

    role: MessageRole
    content: str
    tool_call_id: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", MessageRole(self.role))
        if not isinstance(self.content, str):
            raise TypeError("ChatMessage.content must be a string")
        if self.role is MessageRole.TOOL and not self.tool_call_id:
            raise ValueError("ChatMessage.tool_call_id is required for tool messages")
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def tool(cls, call_id: str, content: str) -> ChatMessage:
        return cls(role=MessageRole.TOOL, content=content, tool_call_id=call_id)

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"role": self.role.value, "content": self.content}
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            payload["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        return payload


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Tool contract advertised to providers that support tool calling."""

    name: str
    description: str
    json_schema: Mapping[str, JSONValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", _validate_non_empty_str(self.name, "ToolSpec.name"))
        object.__setattr__(
            self,
            "json_schema",
            _coerce_json_mapping(dict(self.json_schema), path="ToolSpec.json_schema"),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.name,
            "description": self.description,
            "json_schema": dict(self.json_schema),
        }


@dataclass(frozen=True, slots=True)
class ChatOptions:
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    tools: tuple[ToolSpec, ...] = ()

    def __post_init__(self) -> None:
        if self.temperature is not None and not (0.0 <= self.temperature <= 2.0):
            raise ValueError("ChatOptions.temperature must be between 0.0 and 2.0")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ValueError("ChatOptions.max_tokens must be > 0")
        object.__setattr__(self, "tools", tuple(self.tools))


@dataclass(frozen=True, slots=True)
class ChatUsage:
    """Token accounting for a provider response."""

    input_tokens: int = 0
    output_tokens: int = 0

    def __post_init__(self) -> None:
        if self.input_tokens < 0:
            raise ValueError("input_tokens must be >= 0")
        if self.output_tokens < 0:
            raise ValueError("output_tokens must be >= 0")

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True, slots=True)
class ChatResponse:
    content: str
    model: str
    provider: str
    usage: ChatUsage = field(default_factory=ChatUsage)
    latency_ms: int = 0
    tool_calls: tuple[ToolCall, ...] = ()

    def __post_init__(self) -> None:
        if self.latency_ms < 0:
            raise ValueError("ChatResponse.latency_ms must be >= 0")
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "content": self.content,
            "model": self.model,
            "provider": self.provider,
            "usage": self.usage.to_dict(),
            "latency_ms": self.latency_ms,
            "tool_calls": [call.to_dict() for call in self.tool_calls],
        }


@runtime_checkable
class ChatProvider(Protocol):
    """Protocol implemented by concrete provider adapters."""

    async def chat(self, messages: Sequence[ChatMessage], options: ChatOptions) -> ChatResponse:
        """Send one chat request and return the normalized response."""


class ProviderError(RuntimeError):
    """Normalized provider failure with machine-readable fields."""

    def __init__(
        self, detail: str, *, provider: str = "provider", retryable: bool = False
    ) -> None:
        self.provider = _validate_non_empty_str(provider, "provider")
        self.detail = " ".join(str(detail).split()) or "unknown error"
        self.retryable = bool(retryable)
        super().__init__(
            f"provider={self.provider} retryable={str(self.retryable).lower()} "
            f"detail={self.detail}"
        )


def parse_tool_arguments(
    arguments: object,
    *,
    provider: str,
    tool_name: str,
) -> dict[str, JSONValue]:
    """Normalize a provider tool-argument payload to a JSON object."""

    if arguments is None:
        return {}
    if isinstance(arguments, Mapping):
        return _coerce_json_mapping(arguments, path="arguments")
    if isinstance(arguments, str):
        candidate = arguments.strip()
        if not candidate:
            return {}
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as exc:
            raise ProviderError(
                f"invalid tool arguments for {tool_name}: non-JSON string", provider=provider
            ) from exc
        if not isinstance(parsed, dict):
            raise ProviderError(
                f"invalid tool arguments for {tool_name}: expected JSON object",
                provider=provider,
            )
        return _coerce_json_mapping(parsed, path="arguments")

    raise ProviderError(
        f"invalid tool arguments for {tool_name}: unsupported type {type(arguments).__name__}",
        provider=provider,
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
