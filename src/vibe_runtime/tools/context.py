"""Per-call execution context handed to tool handlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from vibe_runtime.domain import ids
from vibe_runtime.utils.concurrency import CancellationToken

if TYPE_CHECKING:
    from vibe_runtime.approvals.gate import ApprovalGate
    from vibe_runtime.sandbox.policy import SandboxPolicy


@dataclass(frozen=True, slots=True)
class ToolContext:
    """
    Where and how a tool call runs.

    ``pre_approved`` skips the approval gate. ``sandbox`` restricts dispatch to
    tools flagged ``allowed_in_sandbox`` and enables ``sandbox_policy`` for
    shell commands. ``dry_run`` describes the call without performing it.
    """

    working_dir: Path
    session_id: str = field(default_factory=ids.generate_session_id)
    approval_gate: ApprovalGate | None = None
    dry_run: bool = False
    sandbox: bool = False
    pre_approved: bool = False
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    sandbox_policy: SandboxPolicy | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "working_dir", Path(self.working_dir).resolve())


__all__ = ["ToolContext"]
