"""Stable constants shared across runtime components."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema version for persisted checkpoints and config files.
CONFIG_SCHEMA_VERSION: Final[int] = 1
CHECKPOINT_SCHEMA_VERSION: Final[int] = 1

# Default runtime paths (relative to the project root unless overridden by config).
STATE_DIR: Final[PurePosixPath] = PurePosixPath(".vibe")
CHECKPOINTS_DIR: Final[PurePosixPath] = STATE_DIR / "checkpoints"
LOG_DIR: Final[PurePosixPath] = PurePosixPath("logs")
CONFIG_FILE_NAME: Final[str] = "vibe.toml"

# Risk weights for deterministic sorting/escalation.
RISK_TIER_WEIGHT: Final[dict[str, int]] = {
    "low": 1,
    "medium": 2,
    "high": 3,
    "critical": 4,
}

# Scheduling.
MAX_AGENTS: Final[int] = 5
DEFAULT_MAX_PARALLEL: Final[int] = 5
DEFAULT_AGENT_TIMEOUT_MS: Final[int] = 120_000
DEFAULT_RECOMMENDED_AGENTS: Final[int] = 3

# Tool dispatch.
DEFAULT_TOOL_TIMEOUT_MS: Final[int] = 60_000
MAX_TOOL_OUTPUT_CHARS: Final[int] = 100_000

# Checkpoints.
DEFAULT_MAX_CHECKPOINT_FILE_BYTES: Final[int] = 5_000_000

# Diff engine.
DIFF_LOOKAHEAD_WINDOW: Final[int] = 10
DIFF_MAX_HUNK_LINES: Final[int] = 50
DIFF_CONTEXT_LINES: Final[int] = 3

# Directory names never copied into sandboxes nor captured by checkpoints.
IGNORED_DIR_NAMES: Final[frozenset[str]] = frozenset(
    {
        ".git",
        STATE_DIR.name,
        "node_modules",
        "dist",
        "build",
        "coverage",
        "__pycache__",
        ".venv",
        ".mypy_cache",
        ".pytest_cache",
    }
)
IGNORED_FILE_NAMES: Final[frozenset[str]] = frozenset({".DS_Store"})
IGNORED_FILE_SUFFIXES: Final[frozenset[str]] = frozenset({".log", ".pyc"})

__all__ = [
    "CHECKPOINTS_DIR",
    "CHECKPOINT_SCHEMA_VERSION",
    "CONFIG_FILE_NAME",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_AGENT_TIMEOUT_MS",
    "DEFAULT_MAX_CHECKPOINT_FILE_BYTES",
    "DEFAULT_MAX_PARALLEL",
    "DEFAULT_RECOMMENDED_AGENTS",
    "DEFAULT_TOOL_TIMEOUT_MS",
    "DIFF_CONTEXT_LINES",
    "DIFF_LOOKAHEAD_WINDOW",
    "DIFF_MAX_HUNK_LINES",
    "IGNORED_DIR_NAMES",
    "IGNORED_FILE_NAMES",
    "IGNORED_FILE_SUFFIXES",
    "LOG_DIR",
    "MAX_AGENTS",
    "MAX_TOOL_OUTPUT_CHARS",
    "RISK_TIER_WEIGHT",
    "STATE_DIR",
]
