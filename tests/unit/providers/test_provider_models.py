"""Provider-neutral chat models and tool-argument normalization."""

from __future__ import annotations

import pytest

from vibe_runtime.providers import (
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatUsage,
    MessageRole,
    ProviderError,
    ToolCall,
    ToolSpec,
    parse_tool_arguments,
)


def test_tool_call_normalizes_and_serializes() -> None:
    call = ToolCall(call_id=" c1 ", name=" file_read ", arguments={"path": "a", "n": [1, 2]})
    assert call.call_id == "c1"
    assert call.name == "file_read"
    assert call.to_dict() == {
        "call_id": "c1",
        "name": "file_read",
        "arguments": {"path": "a", "n": [1, 2]},
    }


@pytest.mark.parametrize(
    ("kwargs", "error"),
    [
        ({"call_id": "", "name": "x"}, ValueError),
        ({"call_id": "c", "name": "x", "arguments": {"f": object()}}, TypeError),
        ({"call_id": "c", "name": "x", "arguments": {1: "v"}}, TypeError),
    ],
)
def test_tool_call_rejects_bad_fields(kwargs: dict[str, object], error: type[Exception]) -> None:
    with pytest.raises(error):
        ToolCall(**kwargs)  # type: ignore[arg-type]


def test_chat_message_helpers() -> None:
    assert ChatMessage.system("s").role is MessageRole.SYSTEM
    assert ChatMessage.user("u").to_dict() == {"role": "user", "content": "u"}
    reply = ChatMessage.tool("c1", "ok")
    assert reply.to_dict() == {"role": "tool", "content": "ok", "tool_call_id": "c1"}
    with pytest.raises(ValueError):
        ChatMessage(role=MessageRole.TOOL, content="missing id")

    assistant = ChatMessage(
        role="assistant",  # type: ignore[arg-type]
        content="",
        tool_calls=[ToolCall("c1", "file_tree")],  # type: ignore[arg-type]
    )
    assert assistant.role is MessageRole.ASSISTANT
    assert assistant.to_dict()["tool_calls"] == [
        {"call_id": "c1", "name": "file_tree", "arguments": {}}
    ]


def test_options_usage_and_response_validation() -> None:
    with pytest.raises(ValueError):
        ChatOptions(temperature=2.5)
    with pytest.raises(ValueError):
        ChatOptions(max_tokens=0)
    with pytest.raises(ValueError):
        ChatUsage(input_tokens=-1)
    with pytest.raises(ValueError):
        ChatResponse(content="", model="m", provider="p", latency_ms=-1)

    response = ChatResponse(
        content="hi",
        model="m",
        provider="p",
        usage=ChatUsage(input_tokens=3, output_tokens=4),
    )
    assert response.usage.total_tokens == 7
    assert response.to_dict()["usage"] == {
        "input_tokens": 3,
        "output_tokens": 4,
        "total_tokens": 7,
    }


def test_tool_spec_to_dict() -> None:
    spec = ToolSpec(name="file_read", description="Read", json_schema={"type": "object"})
    assert spec.to_dict() == {
        "name": "file_read",
        "description": "Read",
        "json_schema": {"type": "object"},
    }


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, {}),
        ("", {}),
        ('{"path": "a.txt"}', {"path": "a.txt"}),
        ({"depth": 2}, {"depth": 2}),
    ],
)
def test_parse_tool_arguments(raw: object, expected: dict[str, object]) -> None:
    assert parse_tool_arguments(raw, provider="test", tool_name="t") == expected


@pytest.mark.parametrize(
    ("raw", "detail"),
    [
        ("{not json", "non-JSON string"),
        ("[1, 2]", "expected JSON object"),
        (42, "unsupported type int"),
    ],
)
def test_parse_tool_arguments_errors(raw: object, detail: str) -> None:
    with pytest.raises(ProviderError) as excinfo:
        parse_tool_arguments(raw, provider="test", tool_name="t")
    assert excinfo.value.provider == "test"
    assert excinfo.value.retryable is False
    assert detail in excinfo.value.detail


def test_provider_error_message_is_normalized() -> None:
    error = ProviderError("rate\n  limited", provider="remote", retryable=True)
    assert str(error) == "provider=remote retryable=true detail=rate limited"
