"""Agent working directories, command policy and contained command execution."""

from vibe_runtime.sandbox.conflicts import ConflictDetector, ConflictReport
from vibe_runtime.sandbox.isolation import ARTIFACT_SUFFIXES, AgentSandbox, IsolationStrategy
from vibe_runtime.sandbox.manager import (
    SandboxCommandResult,
    SandboxManager,
    terminate_process_tree,
)
from vibe_runtime.sandbox.policy import (
    DEFAULT_BLOCKED_COMMANDS,
    DEFAULT_BLOCKED_PATHS,
    SandboxError,
    SandboxPolicy,
    SandboxPolicyError,
)

__all__ = [
    "ARTIFACT_SUFFIXES",
    "DEFAULT_BLOCKED_COMMANDS",
    "DEFAULT_BLOCKED_PATHS",
    "AgentSandbox",
    "ConflictDetector",
    "ConflictReport",
    "IsolationStrategy",
    "SandboxCommandResult",
    "SandboxError",
    "SandboxManager",
    "SandboxPolicy",
    "SandboxPolicyError",
    "terminate_process_tree",
]
