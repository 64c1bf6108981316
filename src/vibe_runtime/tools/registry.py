"""Tool definitions, argument schemas and the name-keyed registry."""

from __future__ import annotations

import builtins
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from vibe_runtime.constants import DEFAULT_TOOL_TIMEOUT_MS
from vibe_runtime.domain.models import RiskLevel, ToolCategory, ToolResult

if TYPE_CHECKING:
    from vibe_runtime.tools.context import ToolContext

ToolHandler = Callable[[Mapping[str, Any], "ToolContext"], Awaitable[ToolResult]]

_JSON_TYPES: Final[dict[str, tuple[type, ...]]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "object": (dict,),
    "array": (list, tuple),
}


class ToolError(RuntimeError):
    """Base error for tool registration and dispatch."""


class ToolValidationError(ToolError, ValueError):
    """Raised when tool arguments do not match the declared schema."""


class UnknownToolError(ToolError, KeyError):
    """Raised when a tool name is not registered."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "unknown tool"


class DuplicateToolError(ToolError):
    """Raised when registering a name twice."""


@dataclass(frozen=True, slots=True)
class ToolSchema:
    """Flat JSON-typed argument schema."""

    properties: Mapping[str, str] = field(default_factory=dict)
    required: tuple[str, ...] = ()
    descriptions: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name, json_type in self.properties.items():
            if json_type not in _JSON_TYPES:
                raise ValueError(f"ToolSchema.properties.{name}: unsupported type {json_type!r}")
        missing = [name for name in self.required if name not in self.properties]
        if missing:
            raise ValueError(f"ToolSchema.required: undeclared properties {missing}")

    def validate(self, args: Mapping[str, object]) -> None:
        if not isinstance(args, Mapping):
            raise ToolValidationError("arguments must be an object")
        problems: list[str] = []
        for name in self.required:
            if name not in args or args[name] is None:
                problems.append(f"missing required argument '{name}'")
        for name, value in args.items():
            json_type = self.properties.get(name)
            if json_type is None:
                problems.append(f"unexpected argument '{name}'")
                continue
            if value is None:
                continue
            if not _matches(value, json_type):
                problems.append(f"argument '{name}' must be {json_type}")
        if problems:
            raise ToolValidationError("; ".join(problems))

    def to_json_schema(self) -> dict[str, Any]:
        properties: dict[str, Any] = {}
        for name, json_type in self.properties.items():
            entry: dict[str, Any] = {"type": json_type}
            if name in self.descriptions:
                entry["description"] = self.descriptions[name]
            properties[name] = entry
        return {"type": "object", "properties": properties, "required": list(self.required)}


def _matches(value: object, json_type: str) -> bool:
    if json_type in {"integer", "number"} and isinstance(value, bool):
        return False
    return isinstance(value, _JSON_TYPES[json_type])


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    name: str
    description: str
    category: ToolCategory
    schema: ToolSchema
    risk_level: RiskLevel
    requires_approval: bool
    handler: ToolHandler
    allowed_in_sandbox: bool = False
    timeout_ms: int = DEFAULT_TOOL_TIMEOUT_MS

    def __post_init__(self) -> None:
        if not self.name or any(char.isspace() for char in self.name):
            raise ValueError(f"ToolDefinition.name: invalid tool name {self.name!r}")
        object.__setattr__(self, "category", ToolCategory(self.category))
        object.__setattr__(self, "risk_level", RiskLevel.coerce(self.risk_level))
        if self.timeout_ms <= 0:
            raise ValueError("ToolDefinition.timeout_ms: must be > 0")


class ToolRegistry:
    """Name-keyed tool catalogue; iteration order is registration order."""

    def __init__(self, tools: Iterable[ToolDefinition] = ()) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        if tool.name in self._tools:
            raise DuplicateToolError(f"tool already registered: {tool.name}")
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def require(self, name: str) -> ToolDefinition:
        """Like :meth:`get`, but raise :class:`UnknownToolError` for unknown names."""

        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(f"unknown tool: {name}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list(self) -> builtins.list[ToolDefinition]:
        return [*self._tools.values()]

    def names(self) -> tuple[str, ...]:
        return tuple(self._tools)

    def list_by_category(self, category: ToolCategory | str) -> builtins.list[ToolDefinition]:
        wanted = ToolCategory(category)
        return [tool for tool in self._tools.values() if tool.category is wanted]

    def get_approval_required(self) -> builtins.list[ToolDefinition]:
        return [tool for tool in self._tools.values() if tool.requires_approval]


__all__ = [
    "DuplicateToolError",
    "ToolDefinition",
    "ToolError",
    "ToolHandler",
    "ToolRegistry",
    "ToolSchema",
    "ToolValidationError",
    "UnknownToolError",
]
