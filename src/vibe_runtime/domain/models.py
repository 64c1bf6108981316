"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import NoReturn, TypeVar

from vibe_runtime.constants import CHECKPOINT_SCHEMA_VERSION, RISK_TIER_WEIGHT

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TEnum = TypeVar("TEnum", bound=StrEnum)


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def coerce(cls, value: object) -> RiskLevel:
        """Map arbitrary input onto a risk level; unknown values become ``MEDIUM``."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                return cls.MEDIUM
        return cls.MEDIUM

    @property
    def weight(self) -> int:
        return RISK_TIER_WEIGHT[self.value]


class AgentRole(StrEnum):
    ARCHITECT = "architect"
    DEVELOPER = "developer"
    VALIDATOR = "validator"
    DEBUGGER = "debugger"
    REVIEWER = "reviewer"


class ToolCategory(StrEnum):
    FILESYSTEM = "filesystem"
    SHELL = "shell"
    GIT = "git"
    SEARCH = "search"
    WEB = "web"
    CODE = "code"


class FileChangeType(StrEnum):
    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


class EditType(StrEnum):
    REPLACE = "replace"
    INSERT = "insert"
    DELETE = "delete"
    APPEND = "append"
    PATCH = "patch"


# ---------------------------------------------------------------------------
# Roles and agents
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RoleDefinition:
    role: AgentRole
    system_prompt: str
    allowed_tools: frozenset[str]
    timeout_ms: int
    priority: int
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", _as_enum(AgentRole, self.role, "RoleDefinition.role"))
        object.__setattr__(self, "allowed_tools", frozenset(self.allowed_tools))
        _as_int(self.timeout_ms, "RoleDefinition.timeout_ms", minimum=1)
        _as_int(self.priority, "RoleDefinition.priority", minimum=1)


@dataclass(frozen=True, slots=True)
class TaskAnalysis:
    primary_role: AgentRole
    supporting_roles: tuple[AgentRole, ...]
    confidence: float
    reasoning: str


@dataclass(frozen=True, slots=True)
class RoleValidation:
    valid: bool
    issues: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ProjectContext:
    working_dir: str
    files: tuple[str, ...] = ()
    dependencies: Mapping[str, str] = field(default_factory=dict)
    framework: str | None = None
    language: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "working_dir": self.working_dir,
            "files": list(self.files),
            "dependencies": dict(self.dependencies),
            "framework": self.framework,
            "language": self.language,
        }


@dataclass(frozen=True, slots=True)
class Agent:
    role: AgentRole
    task: str
    context: ProjectContext
    id: str | None = None
    sandbox_path: str | None = None
    timeout_ms: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", _as_enum(AgentRole, self.role, "Agent.role"))
        if self.timeout_ms is not None:
            _as_int(self.timeout_ms, "Agent.timeout_ms", minimum=1)


@dataclass(frozen=True, slots=True)
class AgentResult:
    agent_id: str
    role: AgentRole
    success: bool
    output: str
    execution_time_ms: int
    error: str | None = None
    artifacts: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "agent_id": self.agent_id,
            "role": self.role.value,
            "success": self.success,
            "output": self.output,
            "execution_time_ms": self.execution_time_ms,
            "error": self.error,
            "artifacts": list(self.artifacts),
        }


@dataclass(frozen=True, slots=True)
class ScoredResult:
    agent_id: str
    role: AgentRole
    success: bool
    output: str
    execution_time_ms: int
    score: float
    confidence: float
    reasoning: str
    error: str | None = None
    artifacts: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _as_unit_interval(self.score, "ScoredResult.score")
        _as_unit_interval(self.confidence, "ScoredResult.confidence")

    @classmethod
    def from_result(
        cls, result: AgentResult, *, score: float, confidence: float, reasoning: str
    ) -> ScoredResult:
        return cls(
            agent_id=result.agent_id,
            role=result.role,
            success=result.success,
            output=result.output,
            execution_time_ms=result.execution_time_ms,
            score=score,
            confidence=confidence,
            reasoning=reasoning,
            error=result.error,
            artifacts=result.artifacts,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "agent_id": self.agent_id,
            "role": self.role.value,
            "success": self.success,
            "output": self.output,
            "execution_time_ms": self.execution_time_ms,
            "score": self.score,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "error": self.error,
            "artifacts": list(self.artifacts),
        }


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ToolResult:
    success: bool
    output: str = ""
    error: str | None = None
    files_changed: tuple[str, ...] = ()
    duration_ms: int = 0
    data: Mapping[str, JSONValue] | None = None
    exit_code: int | None = None
    checkpoint_id: str | None = None

    @classmethod
    def failure(cls, error: str, *, duration_ms: int = 0) -> ToolResult:
        return cls(success=False, output="", error=error, duration_ms=duration_ms)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "files_changed": list(self.files_changed),
            "duration_ms": self.duration_ms,
            "data": dict(self.data) if self.data is not None else None,
            "exit_code": self.exit_code,
            "checkpoint_id": self.checkpoint_id,
        }


# ---------------------------------------------------------------------------
# Checkpoints
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileDiff:
    path: str
    type: FileChangeType
    original_content: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", _as_enum(FileChangeType, self.type, "FileDiff.type"))
        _as_str(self.path, "FileDiff.path")
        if self.type is FileChangeType.CREATED:
            if self.original_content is not None:
                _fail("FileDiff.original_content", "created entries carry no content")
        elif self.original_content is None:
            _fail("FileDiff.original_content", f"{self.type.value} entries require content")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "path": self.path,
            "type": self.type.value,
            "original_content": self.original_content,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> FileDiff:
        parsed = _expect_object(
            data, "FileDiff", required={"path", "type"}, optional={"original_content"}
        )
        content = parsed.get("original_content")
        if content is not None and not isinstance(content, str):
            _fail("FileDiff.original_content", "expected string")
        return cls(
            path=_as_str(parsed["path"], "FileDiff.path"),
            type=_as_enum(FileChangeType, parsed["type"], "FileDiff.type"),
            original_content=content,
        )


@dataclass(frozen=True, slots=True)
class CheckpointInfo:
    id: str
    description: str
    created_at: datetime
    file_count: int


@dataclass(slots=True)
class Checkpoint:
    id: str
    session_id: str
    description: str
    created_at: datetime
    root: str
    file_diffs: list[FileDiff] = field(default_factory=list)
    baseline_paths: frozenset[str] = frozenset()
    dirty_paths: frozenset[str] = frozenset()
    is_git: bool = False
    schema_version: int = CHECKPOINT_SCHEMA_VERSION

    def __post_init__(self) -> None:
        self.id = _as_str(self.id, "Checkpoint.id")
        self.created_at = _as_datetime(self.created_at, "Checkpoint.created_at")
        self.baseline_paths = frozenset(self.baseline_paths)
        self.dirty_paths = frozenset(self.dirty_paths)

    def info(self) -> CheckpointInfo:
        return CheckpointInfo(
            id=self.id,
            description=self.description,
            created_at=self.created_at,
            file_count=len(self.file_diffs),
        )

    def tracked_paths(self) -> frozenset[str]:
        return frozenset(diff.path for diff in self.file_diffs)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "schema_version": self.schema_version,
            "id": self.id,
            "session_id": self.session_id,
            "description": self.description,
            "created_at": self.created_at.isoformat().replace("+00:00", "Z"),
            "root": self.root,
            "is_git": self.is_git,
            "file_diffs": [diff.to_dict() for diff in self.file_diffs],
            "baseline_paths": sorted(self.baseline_paths),
            "dirty_paths": sorted(self.dirty_paths),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False, indent=2)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Checkpoint:
        parsed = _expect_object(
            data,
            "Checkpoint",
            required={"id", "session_id", "description", "created_at", "root", "file_diffs"},
            optional={"schema_version", "is_git", "baseline_paths", "dirty_paths"},
        )
        raw_diffs = parsed["file_diffs"]
        if not isinstance(raw_diffs, list):
            _fail("Checkpoint.file_diffs", "expected array")
        raw_baseline = parsed.get("baseline_paths", [])
        if not isinstance(raw_baseline, list):
            _fail("Checkpoint.baseline_paths", "expected array")
        raw_dirty = parsed.get("dirty_paths", [])
        if not isinstance(raw_dirty, list):
            _fail("Checkpoint.dirty_paths", "expected array")
        return cls(
            id=_as_str(parsed["id"], "Checkpoint.id"),
            session_id=_as_str(parsed["session_id"], "Checkpoint.session_id"),
            description=_as_str(parsed["description"], "Checkpoint.description", min_len=0),
            created_at=_as_datetime(parsed["created_at"], "Checkpoint.created_at"),
            root=_as_str(parsed["root"], "Checkpoint.root"),
            file_diffs=[FileDiff.from_dict(item) for item in raw_diffs],
            baseline_paths=frozenset(
                _as_str(item, "Checkpoint.baseline_paths[]") for item in raw_baseline
            ),
            dirty_paths=frozenset(_as_str(item, "Checkpoint.dirty_paths[]") for item in raw_dirty),
            is_git=bool(parsed.get("is_git", False)),
            schema_version=_as_int(
                parsed.get("schema_version", CHECKPOINT_SCHEMA_VERSION),
                "Checkpoint.schema_version",
                minimum=1,
            ),
        )

    @classmethod
    def from_json(cls, raw: str) -> Checkpoint:
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail("Checkpoint", f"invalid JSON: {exc}")
        return cls.from_dict(parsed)


# ---------------------------------------------------------------------------
# Edits
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EditOperation:
    """One requested file edit.

    ``type`` is normally an :class:`EditType`; unrecognised strings are kept
    verbatim so the editor can report them instead of failing construction.
    """

    type: EditType | str
    file: str
    search_pattern: str | None = None
    replacement: str | None = None
    line_number: int | None = None
    end_line_number: int | None = None

    def __post_init__(self) -> None:
        if isinstance(self.type, str) and not isinstance(self.type, EditType):
            with suppress(ValueError):
                object.__setattr__(self, "type", EditType(self.type))
        _as_str(self.file, "EditOperation.file")
        if self.line_number is not None:
            _as_int(self.line_number, "EditOperation.line_number", minimum=1)
        if self.end_line_number is not None:
            _as_int(self.end_line_number, "EditOperation.end_line_number", minimum=1)
            if self.line_number is not None and self.end_line_number < self.line_number:
                _fail("EditOperation.end_line_number", "must be >= line_number")

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> EditOperation:
        parsed = _expect_object(
            data,
            "EditOperation",
            required={"type", "file"},
            optional={"search_pattern", "replacement", "line_number", "end_line_number"},
        )
        return cls(
            type=_as_str(parsed["type"], "EditOperation.type"),
            file=_as_str(parsed["file"], "EditOperation.file"),
            search_pattern=_as_optional_text(parsed.get("search_pattern"), "search_pattern"),
            replacement=_as_optional_text(parsed.get("replacement"), "replacement"),
            line_number=_as_optional_int(parsed.get("line_number"), "line_number"),
            end_line_number=_as_optional_int(parsed.get("end_line_number"), "end_line_number"),
        )


@dataclass(frozen=True, slots=True)
class EditChange:
    type: str
    line_start: int | None = None
    line_end: int | None = None
    content: str | None = None


@dataclass(frozen=True, slots=True)
class EditResult:
    success: bool
    file: str
    changes: tuple[EditChange, ...] = ()
    error: str | None = None
    diff: str | None = None


@dataclass(frozen=True, slots=True)
class MultiEditResult:
    success: bool
    total_files: int
    successful_files: int
    failed_files: int
    results: tuple[EditResult, ...]
    checkpoint_id: str | None = None
    rolled_back: bool = False
    error: str | None = None


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {str(key): item for key, item in value.items()}
    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")
    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")
    return parsed


def _as_str(value: object, path: str, *, min_len: int = 1) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    if len(value.strip()) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    return value


def _as_optional_text(value: object, name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        _fail(f"EditOperation.{name}", f"expected string, got {type(value).__name__}")
    return value


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_optional_int(value: object, name: str) -> int | None:
    if value is None:
        return None
    return _as_int(value, f"EditOperation.{name}", minimum=1)


def _as_unit_interval(value: object, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(path, f"expected number, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed) or not 0.0 <= parsed <= 1.0:
        _fail(path, "must be within [0, 1]")
    return parsed


def _as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


__all__ = [
    "Agent",
    "AgentResult",
    "AgentRole",
    "Checkpoint",
    "CheckpointInfo",
    "EditChange",
    "EditOperation",
    "EditResult",
    "EditType",
    "FileChangeType",
    "FileDiff",
    "JSONScalar",
    "JSONValue",
    "MultiEditResult",
    "ProjectContext",
    "RiskLevel",
    "RoleDefinition",
    "RoleValidation",
    "ScoredResult",
    "TaskAnalysis",
    "ToolCategory",
    "ToolResult",
]
