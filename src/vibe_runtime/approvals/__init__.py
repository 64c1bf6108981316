"""Approval gates consulted before risky tool calls."""

from vibe_runtime.approvals.gate import (
    ApprovalGate,
    ApprovalPrompt,
    ApprovalRecord,
    PolicyApprovalGate,
    Preference,
    StaticApprovalGate,
)

__all__ = [
    "ApprovalGate",
    "ApprovalPrompt",
    "ApprovalRecord",
    "PolicyApprovalGate",
    "Preference",
    "StaticApprovalGate",
]
