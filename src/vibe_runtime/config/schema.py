"""
vibe-runtime: configuration schema and validation.

File: src/vibe_runtime/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

Functional requirements
- Validate config payloads and report every issue (field path + message).
- Deterministic deep-merge helpers used by the loader's precedence chain.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from vibe_runtime.constants import (
    CHECKPOINTS_DIR,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_AGENT_TIMEOUT_MS,
    DEFAULT_MAX_CHECKPOINT_FILE_BYTES,
    DEFAULT_MAX_PARALLEL,
    DEFAULT_TOOL_TIMEOUT_MS,
    DIFF_CONTEXT_LINES,
    DIFF_LOOKAHEAD_WINDOW,
    DIFF_MAX_HUNK_LINES,
    LOG_DIR,
)

ISOLATION_STRATEGIES: Final[tuple[str, ...]] = ("temp-directory", "git-worktree", "shared")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
ROLE_NAMES: Final[tuple[str, ...]] = ("architect", "developer", "validator", "debugger", "reviewer")

# Config paths normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("checkpoints", "state_dir"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class SchedulerConfig(TypedDict):
    max_parallel: int
    default_timeout_ms: int
    isolation: Literal["temp-directory", "git-worktree", "shared"]
    require_consensus: bool


class ToolsConfig(TypedDict):
    default_timeout_ms: int
    dry_run: bool
    sandbox: bool


class ApprovalsConfig(TypedDict):
    auto_approve_low_risk: bool
    auto_approve_medium_risk: bool


class CheckpointsConfig(TypedDict):
    persist: bool
    state_dir: str
    max_file_bytes: int


class DiffConfig(TypedDict):
    lookahead_window: int
    max_hunk_lines: int
    context_lines: int


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stdout: bool
    redact_secrets: bool


class RoleOverride(TypedDict, total=False):
    timeout_ms: int
    priority: int
    extra_tools: list[str]


class RuntimeConfig(TypedDict):
    meta: MetaConfig
    scheduler: SchedulerConfig
    tools: ToolsConfig
    approvals: ApprovalsConfig
    checkpoints: CheckpointsConfig
    diff: DiffConfig
    observability: ObservabilityConfig
    roles: dict[str, RoleOverride]


DEFAULT_CONFIG: Final[RuntimeConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "scheduler": {
        "max_parallel": DEFAULT_MAX_PARALLEL,
        "default_timeout_ms": DEFAULT_AGENT_TIMEOUT_MS,
        "isolation": "temp-directory",
        "require_consensus": False,
    },
    "tools": {
        "default_timeout_ms": DEFAULT_TOOL_TIMEOUT_MS,
        "dry_run": False,
        "sandbox": False,
    },
    "approvals": {
        "auto_approve_low_risk": True,
        "auto_approve_medium_risk": False,
    },
    "checkpoints": {
        "persist": True,
        "state_dir": CHECKPOINTS_DIR.as_posix(),
        "max_file_bytes": DEFAULT_MAX_CHECKPOINT_FILE_BYTES,
    },
    "diff": {
        "lookahead_window": DIFF_LOOKAHEAD_WINDOW,
        "max_hunk_lines": DIFF_MAX_HUNK_LINES,
        "context_lines": DIFF_CONTEXT_LINES,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": LOG_DIR.as_posix(),
        "log_to_stdout": False,
        "redact_secrets": True,
    },
    "roles": {},
}

# field -> (kind, minimum or allowed values)
_FieldRule = tuple[Literal["int", "bool", "str", "enum"], object]

_SECTION_RULES: Final[dict[str, dict[str, _FieldRule]]] = {
    "meta": {"schema_version": ("int", 1)},
    "scheduler": {
        "max_parallel": ("int", 1),
        "default_timeout_ms": ("int", 1),
        "isolation": ("enum", ISOLATION_STRATEGIES),
        "require_consensus": ("bool", None),
    },
    "tools": {
        "default_timeout_ms": ("int", 1),
        "dry_run": ("bool", None),
        "sandbox": ("bool", None),
    },
    "approvals": {
        "auto_approve_low_risk": ("bool", None),
        "auto_approve_medium_risk": ("bool", None),
    },
    "checkpoints": {
        "persist": ("bool", None),
        "state_dir": ("str", None),
        "max_file_bytes": ("int", 1),
    },
    "diff": {
        "lookahead_window": ("int", 1),
        "max_hunk_lines": ("int", 1),
        "context_lines": ("int", 0),
    },
    "observability": {
        "log_level": ("enum", LOG_LEVELS),
        "log_dir": ("str", None),
        "log_to_stdout": ("bool", None),
        "redact_secrets": ("bool", None),
    },
}

_ROLE_OVERRIDE_RULES: Final[dict[str, _FieldRule]] = {
    "timeout_ms": ("int", 1),
    "priority": ("int", 1),
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Validation result with normalized config when no issues were found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> RuntimeConfig:
    """Return a deep copy of deterministic built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def settable_fields() -> list[tuple[str, str, str]]:
    """(section, field, kind) for every scalar setting outside ``meta``."""

    return [
        (section, name, kind)
        for section, rules in _SECTION_RULES.items()
        if section != "meta"
        for name, (kind, _) in rules.items()
    ]


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate config and return every issue with a dotted field path."""

    issues = _IssueCollector()
    if not isinstance(config, Mapping):
        issues.add("<root>", f"expected object, got {type(config).__name__}")
        return ConfigValidationResult(config=None, issues=issues.items())

    known = set(_SECTION_RULES) | {"roles"}
    for key in sorted(str(item) for item in config):
        if key not in known:
            issues.add(key, "unknown section")

    out: dict[str, Any] = {}
    for section, rules in _SECTION_RULES.items():
        raw = config.get(section)
        if raw is None:
            issues.add(section, "missing required section")
            continue
        if not isinstance(raw, Mapping):
            issues.add(section, f"expected object, got {type(raw).__name__}")
            continue
        out[section] = _validate_fields(raw, rules, section, issues, partial=False)

    meta = out.get("meta", {})
    version = meta.get("schema_version")
    if isinstance(version, int) and version != CONFIG_SCHEMA_VERSION:
        issues.add(
            "meta.schema_version",
            f"schema version {version} is not supported (expected {CONFIG_SCHEMA_VERSION})",
        )

    out["roles"] = _validate_roles(config.get("roles", {}), issues)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=out, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_roles(raw: object, issues: _IssueCollector) -> dict[str, Any]:
    if not isinstance(raw, Mapping):
        issues.add("roles", f"expected object, got {type(raw).__name__}")
        return {}

    out: dict[str, Any] = {}
    for role_name in sorted(str(key) for key in raw):
        path = f"roles.{role_name}"
        if role_name not in ROLE_NAMES:
            issues.add(path, f"unknown role; expected one of: {', '.join(ROLE_NAMES)}")
            continue
        override = raw[role_name]
        if not isinstance(override, Mapping):
            issues.add(path, f"expected object, got {type(override).__name__}")
            continue
        parsed = _validate_fields(
            {key: value for key, value in override.items() if key != "extra_tools"},
            _ROLE_OVERRIDE_RULES,
            path,
            issues,
            partial=True,
        )
        if "extra_tools" in override:
            tools = override["extra_tools"]
            if not isinstance(tools, list) or not all(
                isinstance(item, str) and item.strip() for item in tools
            ):
                issues.add(f"{path}.extra_tools", "expected array of non-empty strings")
            else:
                parsed["extra_tools"] = [item.strip() for item in tools]
        out[role_name] = parsed
    return out


def _validate_fields(
    payload: Mapping[str, object],
    rules: Mapping[str, _FieldRule],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    for key in sorted(str(item) for item in payload):
        if key not in rules:
            issues.add(f"{path}.{key}", "unknown field")

    out: dict[str, Any] = {}
    for key, (kind, constraint) in rules.items():
        field_path = f"{path}.{key}"
        if key not in payload:
            if not partial:
                issues.add(field_path, "missing required field")
            continue
        value = payload[key]
        if kind == "bool":
            if not isinstance(value, bool):
                issues.add(field_path, f"expected boolean, got {type(value).__name__}")
                continue
        elif kind == "int":
            if isinstance(value, bool) or not isinstance(value, int):
                issues.add(field_path, f"expected integer, got {type(value).__name__}")
                continue
            if isinstance(constraint, int) and value < constraint:
                issues.add(field_path, f"must be >= {constraint}")
                continue
        else:
            if not isinstance(value, str) or not value.strip():
                issues.add(field_path, "expected non-empty string")
                continue
            value = value.strip()
            if kind == "enum" and isinstance(constraint, tuple) and value not in constraint:
                expected = ", ".join(sorted(constraint))
                issues.add(field_path, f"invalid value {value!r}; expected one of: {expected}")
                continue
        out[key] = value
    return out


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        existing = target.get(key)
        if isinstance(value, Mapping) and isinstance(existing, dict):
            _merge_into(existing, value)
        elif isinstance(value, Mapping):
            target[key] = copy.deepcopy(dict(value))
        else:
            target[key] = copy.deepcopy(value)


__all__ = [
    "ApprovalsConfig",
    "CheckpointsConfig",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DiffConfig",
    "ISOLATION_STRATEGIES",
    "ObservabilityConfig",
    "PATH_FIELDS",
    "RoleOverride",
    "RuntimeConfig",
    "SchedulerConfig",
    "ToolsConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "settable_fields",
    "validate_config",
]
