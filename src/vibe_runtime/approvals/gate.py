"""Risk-based approval gating for tool calls."""

from __future__ import annotations

from collections import deque
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Final, Literal, Protocol

import structlog

from vibe_runtime.domain.models import RiskLevel

logger = structlog.get_logger(__name__)

Preference = Literal["always", "never"]
ApprovalPrompt = Callable[[str, Sequence[str], RiskLevel], Awaitable[bool]]

_PREFERENCES: Final[frozenset[str]] = frozenset({"always", "never"})
_AUDIT_LIMIT: Final[int] = 1024


class ApprovalGate(Protocol):
    """Decides whether a described operation may proceed."""

    async def request(
        self, description: str, operations: Sequence[str], risk: RiskLevel
    ) -> bool: ...


@dataclass(frozen=True, slots=True)
class ApprovalRecord:
    """One audited approval decision."""

    description: str
    operations: tuple[str, ...]
    risk: RiskLevel
    approved: bool
    source: str
    decided_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


class PolicyApprovalGate:
    """
    Approval gate driven by risk tier policy.

    Decision order:
    1. a remembered per-risk preference (``always``/``never``),
    2. auto-approval for low risk, and for medium risk when enabled,
    3. the injected ``prompt``; without one the request is denied.
    """

    def __init__(
        self,
        *,
        auto_approve_low_risk: bool = True,
        auto_approve_medium_risk: bool = False,
        prompt: ApprovalPrompt | None = None,
        preferences: Mapping[RiskLevel | str, Preference] | None = None,
    ) -> None:
        self._auto_low = auto_approve_low_risk
        self._auto_medium = auto_approve_medium_risk
        self._prompt = prompt
        self._preferences: dict[RiskLevel, Preference] = {}
        for risk, preference in (preferences or {}).items():
            self.set_preference(risk, preference)
        self._records = deque[ApprovalRecord](maxlen=_AUDIT_LIMIT)

    @classmethod
    def from_config(
        cls, config: Mapping[str, Any], *, prompt: ApprovalPrompt | None = None
    ) -> PolicyApprovalGate:
        section = config["approvals"]
        return cls(
            auto_approve_low_risk=bool(section["auto_approve_low_risk"]),
            auto_approve_medium_risk=bool(section["auto_approve_medium_risk"]),
            prompt=prompt,
        )

    def set_preference(self, risk: RiskLevel | str, preference: Preference | None) -> None:
        """Remember ``always``/``never`` for a risk tier; ``None`` clears it."""

        level = RiskLevel.coerce(risk)
        if preference is None:
            self._preferences.pop(level, None)
            return
        if preference not in _PREFERENCES:
            raise ValueError(
                f"preference must be one of {sorted(_PREFERENCES)}, got {preference!r}"
            )
        self._preferences[level] = preference

    @property
    def records(self) -> tuple[ApprovalRecord, ...]:
        return tuple(self._records)

    async def request(
        self, description: str, operations: Sequence[str], risk: RiskLevel
    ) -> bool:
        level = RiskLevel.coerce(risk)
        preference = self._preferences.get(level)
        if preference is not None:
            approved = preference == "always"
            return self._record(description, operations, level, approved, "preference")
        if level is RiskLevel.LOW and self._auto_low:
            return self._record(description, operations, level, True, "auto")
        if level is RiskLevel.MEDIUM and self._auto_medium:
            return self._record(description, operations, level, True, "auto")
        if self._prompt is None:
            return self._record(description, operations, level, False, "no-prompt")
        approved = bool(await self._prompt(description, tuple(operations), level))
        return self._record(description, operations, level, approved, "prompt")

    def _record(
        self,
        description: str,
        operations: Sequence[str],
        risk: RiskLevel,
        approved: bool,
        source: str,
    ) -> bool:
        self._records.append(
            ApprovalRecord(
                description=description,
                operations=tuple(operations),
                risk=risk,
                approved=approved,
                source=source,
            )
        )
        logger.info(
            "approval_decided",
            description=description,
            risk=risk.value,
            approved=approved,
            source=source,
        )
        return approved


class StaticApprovalGate:
    """Gate that answers every request the same way."""

    def __init__(self, approve: bool) -> None:
        self.approve = approve
        self.requests: list[tuple[str, tuple[str, ...], RiskLevel]] = []

    async def request(self, description: str, operations: Sequence[str], risk: RiskLevel) -> bool:
        self.requests.append((description, tuple(operations), RiskLevel.coerce(risk)))
        return self.approve


__all__ = [
    "ApprovalGate",
    "ApprovalPrompt",
    "ApprovalRecord",
    "PolicyApprovalGate",
    "Preference",
    "StaticApprovalGate",
]
