"""Runtime event types and the serializable event envelope."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from vibe_runtime.domain import ids
from vibe_runtime.domain.models import JSONValue


class EventType(StrEnum):
    """Lifecycle events emitted while agents and tools run."""

    EXECUTION_STARTED = "execution-started"
    AGENT_STARTED = "agent-started"
    AGENT_COMPLETED = "agent-completed"
    AGENT_FAILED = "agent-failed"
    EXECUTION_COMPLETED = "execution-completed"

    TOOL_EXECUTED = "tool-executed"
    TOOL_DENIED = "tool-denied"

    CHECKPOINT_CREATED = "checkpoint-created"
    CHECKPOINT_RESTORED = "checkpoint-restored"


@dataclass(frozen=True, slots=True)
class RuntimeEvent:
    """Event envelope delivered to EventBus subscribers."""

    event_type: EventType
    payload: dict[str, JSONValue]
    event_id: str = field(default_factory=ids.generate_event_id)
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    correlation_id: str | None = None

    def __post_init__(self) -> None:
        ids.validate_prefixed_id(self.event_id, ids.EVENT_ID_PREFIX)
        object.__setattr__(self, "event_type", EventType(self.event_type))
        if self.timestamp.tzinfo is None:
            raise ValueError("RuntimeEvent.timestamp: datetime must be timezone-aware")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.astimezone(UTC).isoformat().replace("+00:00", "Z"),
            "correlation_id": self.correlation_id,
            "payload": self.payload,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = ["EventType", "RuntimeEvent"]
