"""Tool definitions, schema validation and registry lookups."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from vibe_runtime.domain.models import RiskLevel, ToolCategory, ToolResult
from vibe_runtime.tools import (
    DuplicateToolError,
    ToolContext,
    ToolDefinition,
    ToolRegistry,
    ToolSchema,
    ToolValidationError,
    UnknownToolError,
    default_registry,
)


async def _noop(args: Mapping[str, Any], ctx: ToolContext) -> ToolResult:
    return ToolResult(success=True)


def _tool(
    name: str, *, category: ToolCategory = ToolCategory.CODE, approval: bool = False
) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=f"{name} tool",
        category=category,
        schema=ToolSchema(),
        risk_level=RiskLevel.LOW,
        requires_approval=approval,
        handler=_noop,
    )


def test_schema_reports_every_problem() -> None:
    schema = ToolSchema(
        properties={"path": "string", "count": "integer", "flag": "boolean"},
        required=("path",),
    )
    schema.validate({"path": "a.txt", "count": 2, "flag": None})

    with pytest.raises(ToolValidationError) as excinfo:
        schema.validate({"count": True, "extra": 1})

    message = str(excinfo.value)
    assert "missing required argument 'path'" in message
    assert "argument 'count' must be integer" in message
    assert "unexpected argument 'extra'" in message


def test_schema_rejects_bad_declarations() -> None:
    with pytest.raises(ValueError, match="unsupported type"):
        ToolSchema(properties={"x": "date"})
    with pytest.raises(ValueError, match="undeclared"):
        ToolSchema(properties={}, required=("x",))


def test_schema_renders_json_schema() -> None:
    schema = ToolSchema(
        properties={"pattern": "string"},
        required=("pattern",),
        descriptions={"pattern": "Glob pattern"},
    )
    assert schema.to_json_schema() == {
        "type": "object",
        "properties": {"pattern": {"type": "string", "description": "Glob pattern"}},
        "required": ["pattern"],
    }


def test_definition_normalizes_and_validates() -> None:
    tool = ToolDefinition(
        name="lint",
        description="",
        category="code",  # type: ignore[arg-type]
        schema=ToolSchema(),
        risk_level="HIGH",  # type: ignore[arg-type]
        requires_approval=True,
        handler=_noop,
    )
    assert tool.category is ToolCategory.CODE
    assert tool.risk_level is RiskLevel.HIGH
    with pytest.raises(ValueError, match="invalid tool name"):
        _tool("two words")


def test_registry_lookup_and_filters() -> None:
    registry = ToolRegistry([_tool("a"), _tool("b", category=ToolCategory.GIT, approval=True)])

    assert registry.names() == ("a", "b")
    assert "a" in registry
    assert len(registry) == 2
    assert [tool.name for tool in registry.list_by_category("git")] == ["b"]
    assert [tool.name for tool in registry.get_approval_required()] == ["b"]

    with pytest.raises(DuplicateToolError):
        registry.register(_tool("a"))
    assert registry.get("zzz") is None
    assert registry.require("a").name == "a"
    with pytest.raises(UnknownToolError, match="unknown tool: zzz"):
        registry.require("zzz")

    assert registry.unregister("a") is True
    assert registry.unregister("a") is False
    assert [tool.name for tool in registry.list()] == ["b"]


def test_default_registry_contents() -> None:
    registry = default_registry(timeout_ms=5_000)

    assert registry.names() == (
        "file_read",
        "file_write",
        "file_edit",
        "file_glob",
        "file_tree",
        "file_search",
        "shell_exec",
        "git_status",
        "git_diff",
        "git_commit",
        "git_branch",
    )
    assert {tool.timeout_ms for tool in registry.list()} == {5_000}
    sandboxed = {tool.name for tool in registry.list() if tool.allowed_in_sandbox}
    assert sandboxed == {"file_read", "file_glob", "file_tree", "file_search"}
    assert registry.require("shell_exec").risk_level is RiskLevel.HIGH
