"""Consensus scoring of agent results."""

from __future__ import annotations

import pytest

from vibe_runtime.domain.models import AgentResult, AgentRole
from vibe_runtime.orchestration.scoring import (
    NO_CONSENSUS_REASONING,
    compare_results,
    score_result,
    score_results,
    unscored,
)


def _result(
    agent_id: str,
    *,
    success: bool = True,
    output: str = "done",
    time_ms: int = 1_000,
    artifacts: tuple[str, ...] = (),
) -> AgentResult:
    return AgentResult(
        agent_id=agent_id,
        role=AgentRole.DEVELOPER,
        success=success,
        output=output,
        execution_time_ms=time_ms,
        error=None if success else "boom",
        artifacts=artifacts,
    )


def test_failed_agents_score_zero() -> None:
    [scored] = score_results([_result("agt-1", success=False)])
    assert scored.score == 0.0
    assert scored.confidence == 0.0
    assert scored.reasoning == "Agent failed: boom"


@pytest.mark.parametrize(
    ("result", "expected"),
    [
        (_result("a", time_ms=0, artifacts=("report.md",)), 1.0),
        (_result("b", output="", time_ms=30_000), 0.6),
        (_result("c", output="", time_ms=90_000), 0.5),
    ],
)
def test_score_components(result: AgentResult, expected: float) -> None:
    assert score_result(result) == pytest.approx(expected)


def test_identical_agents_get_identical_scores() -> None:
    scored = score_results([_result("agt-1"), _result("agt-2")])
    assert scored[0].score == scored[1].score
    assert scored[0].confidence == scored[1].confidence == 1.0


def test_confidence_measures_distance_from_mean() -> None:
    scored = score_results([_result("a", time_ms=1_000), _result("b", time_ms=3_000)])
    assert [item.confidence for item in scored] == pytest.approx([0.5, 0.5])
    assert scored[0].reasoning == "High quality output, low confidence, fast execution"


def test_zero_mean_execution_time_is_full_confidence() -> None:
    scored = score_results([_result("a", time_ms=0), _result("b", time_ms=0)])
    assert [item.confidence for item in scored] == [1.0, 1.0]


def test_compare_results_orders_best_first() -> None:
    ranked = compare_results(
        [_result("slow", time_ms=50_000), _result("failed", success=False), _result("fast")]
    )
    assert [item.agent_id for item in ranked] == ["fast", "slow", "failed"]


def test_unscored_results_keep_input_order() -> None:
    wrapped = unscored([_result("b"), _result("a", success=False)])
    assert [item.agent_id for item in wrapped] == ["b", "a"]
    assert {item.reasoning for item in wrapped} == {NO_CONSENSUS_REASONING}
    assert wrapped[1].success is False
