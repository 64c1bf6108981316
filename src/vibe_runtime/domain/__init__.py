"""
vibe-runtime: domain layer

File: src/vibe_runtime/domain/__init__.py

Purpose
- Domain types shared across components: roles, agents, results, tool
  results, checkpoints, edits and runtime events.
- Keep the domain layer free of IO side effects.
"""

from vibe_runtime.domain.events import EventType, RuntimeEvent
from vibe_runtime.domain.models import (
    Agent,
    AgentResult,
    AgentRole,
    Checkpoint,
    CheckpointInfo,
    EditChange,
    EditOperation,
    EditResult,
    EditType,
    FileChangeType,
    FileDiff,
    MultiEditResult,
    ProjectContext,
    RiskLevel,
    RoleDefinition,
    RoleValidation,
    ScoredResult,
    TaskAnalysis,
    ToolCategory,
    ToolResult,
)

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
    "EventType",
    "FileChangeType",
    "FileDiff",
    "MultiEditResult",
    "ProjectContext",
    "RiskLevel",
    "RoleDefinition",
    "RoleValidation",
    "RuntimeEvent",
    "ScoredResult",
    "TaskAnalysis",
    "ToolCategory",
    "ToolResult",
]
