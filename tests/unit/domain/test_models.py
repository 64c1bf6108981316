"""Domain model validation and serialization contracts."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from vibe_runtime.domain import ids
from vibe_runtime.domain.events import EventType, RuntimeEvent
from vibe_runtime.domain.models import (
    Agent,
    AgentResult,
    AgentRole,
    Checkpoint,
    EditOperation,
    EditType,
    FileChangeType,
    FileDiff,
    ProjectContext,
    RiskLevel,
    ScoredResult,
    ToolResult,
)


def test_prefixed_ids_round_trip_through_validation() -> None:
    agent_id = ids.generate_agent_id()
    assert agent_id.startswith("agt-")
    ids.validate_prefixed_id(agent_id, ids.AGENT_ID_PREFIX)
    with pytest.raises(ValueError, match="expected prefix"):
        ids.validate_prefixed_id(agent_id, ids.CHECKPOINT_ID_PREFIX)


def test_ulid_encodes_timestamp_and_sorts_by_time() -> None:
    earlier = ids.generate_ulid(timestamp_ms=1_000, randbytes=lambda n: b"\xff" * n)
    later = ids.generate_ulid(timestamp_ms=1_001, randbytes=lambda n: b"\x00" * n)
    assert ids.parse_ulid_timestamp_ms(earlier) == 1_000
    assert earlier < later
    assert len({ids.generate_agent_id() for _ in range(200)}) == 200


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("low", RiskLevel.LOW),
        (" HIGH ", RiskLevel.HIGH),
        ("bogus", RiskLevel.MEDIUM),
        (3, RiskLevel.MEDIUM),
    ],
)
def test_risk_level_coerce(raw: object, expected: RiskLevel) -> None:
    assert RiskLevel.coerce(raw) is expected


def test_risk_weights_are_ordered() -> None:
    weights = [level.weight for level in RiskLevel]
    assert weights == sorted(weights)


def test_agent_coerces_role_and_validates_timeout() -> None:
    context = ProjectContext(working_dir=".")
    agent = Agent(role="developer", task="t", context=context)  # type: ignore[arg-type]
    assert agent.role is AgentRole.DEVELOPER
    with pytest.raises(ValueError):
        Agent(role=AgentRole.DEVELOPER, task="t", context=ProjectContext("."), timeout_ms=0)
    with pytest.raises(ValueError):
        Agent(role="wizard", task="t", context=ProjectContext("."))  # type: ignore[arg-type]


def test_scored_result_rejects_out_of_range_scores() -> None:
    result = AgentResult(
        agent_id="agt-x", role=AgentRole.REVIEWER, success=True, output="ok", execution_time_ms=5
    )
    scored = ScoredResult.from_result(result, score=0.9, confidence=1.0, reasoning="r")
    assert scored.to_dict()["score"] == 0.9
    with pytest.raises(ValueError):
        ScoredResult.from_result(result, score=1.5, confidence=1.0, reasoning="r")


def test_tool_result_failure_shape() -> None:
    failed = ToolResult.failure("nope", duration_ms=3)
    assert failed.success is False
    assert failed.error == "nope"
    assert failed.to_dict()["duration_ms"] == 3


def test_file_diff_content_rules() -> None:
    FileDiff(path="a.txt", type=FileChangeType.CREATED)
    with pytest.raises(ValueError):
        FileDiff(path="a.txt", type=FileChangeType.CREATED, original_content="x")
    with pytest.raises(ValueError):
        FileDiff(path="a.txt", type=FileChangeType.MODIFIED)


def test_checkpoint_json_round_trip_keeps_paths() -> None:
    checkpoint = Checkpoint(
        id=ids.generate_checkpoint_id(),
        session_id="ses-1",
        description="Before: file_write",
        created_at=datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC),
        root="/tmp/project",
        file_diffs=[
            FileDiff(path="a.txt", type=FileChangeType.MODIFIED, original_content="old"),
            FileDiff(path="new.txt", type=FileChangeType.CREATED),
        ],
        baseline_paths=frozenset({"a.txt", "b.txt"}),
        dirty_paths=frozenset({"a.txt"}),
        is_git=True,
    )

    loaded = Checkpoint.from_json(checkpoint.to_json())

    assert loaded == checkpoint
    assert loaded.tracked_paths() == frozenset({"a.txt", "new.txt"})
    assert loaded.info().file_count == 2


def test_checkpoint_from_dict_rejects_unknown_fields() -> None:
    with pytest.raises(ValueError, match="unexpected fields"):
        Checkpoint.from_dict(
            {
                "id": "chk-1",
                "session_id": "s",
                "description": "",
                "created_at": "2026-01-01T00:00:00Z",
                "root": "/r",
                "file_diffs": [],
                "extra": 1,
            }
        )


def test_edit_operation_keeps_unknown_types_and_checks_ranges() -> None:
    assert EditOperation(type="replace", file="a").type is EditType.REPLACE
    assert EditOperation(type="rewrite", file="a").type == "rewrite"
    with pytest.raises(ValueError):
        EditOperation(type=EditType.DELETE, file="a", line_number=3, end_line_number=2)
    with pytest.raises(ValueError):
        EditOperation(type=EditType.INSERT, file="a", line_number=0)


def test_edit_operation_from_dict() -> None:
    op = EditOperation.from_dict(
        {"type": "insert", "file": "src/a.py", "line_number": 2, "replacement": "x"}
    )
    assert op == EditOperation(
        type=EditType.INSERT, file="src/a.py", line_number=2, replacement="x"
    )


def test_runtime_event_serializes_with_utc_timestamp() -> None:
    event = RuntimeEvent(event_type=EventType.AGENT_STARTED, payload={"agent_id": "agt-1"})
    data = event.to_dict()
    assert data["event_type"] == "agent-started"
    assert str(data["timestamp"]).endswith("Z")
    assert '"agent_id":"agt-1"' in event.to_json()
    with pytest.raises(ValueError):
        RuntimeEvent(
            event_type=EventType.AGENT_STARTED,
            payload={},
            timestamp=datetime(2026, 1, 1),  # noqa: DTZ001
        )
