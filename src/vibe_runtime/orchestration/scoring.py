"""Deterministic scoring of agent results for consensus runs."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from vibe_runtime.domain.models import AgentResult, ScoredResult

NO_CONSENSUS_REASONING: Final[str] = "No consensus required"

_BASE_SCORE: Final[float] = 0.5
_OUTPUT_BONUS: Final[float] = 0.2
_ARTIFACT_BONUS: Final[float] = 0.1
_TIME_BONUS_MAX: Final[float] = 0.2
_TIME_REFERENCE_MS: Final[int] = 60_000
_FAST_MS: Final[int] = 30_000


def score_result(result: AgentResult) -> float:
    """Score one result in ``[0, 1]``; failed agents score 0."""

    if not result.success:
        return 0.0
    score = _BASE_SCORE
    if result.output:
        score += _OUTPUT_BONUS
    remaining = (_TIME_REFERENCE_MS - result.execution_time_ms) / _TIME_REFERENCE_MS
    time_bonus = remaining * _TIME_BONUS_MAX
    score += min(_TIME_BONUS_MAX, max(0.0, time_bonus))
    if result.artifacts:
        score += _ARTIFACT_BONUS
    return min(1.0, max(0.0, score))


def compute_confidence(result: AgentResult, results: Sequence[AgentResult]) -> float:
    """Agreement of ``result``'s execution time with the mean of successful peers."""

    if not result.success:
        return 0.0
    successful = [item for item in results if item.success]
    if len(successful) <= 1:
        return 1.0
    mean = sum(item.execution_time_ms for item in successful) / len(successful)
    if mean == 0:
        return 1.0
    return max(0.0, 1.0 - abs(result.execution_time_ms - mean) / mean)


def build_reasoning(result: AgentResult, score: float, confidence: float) -> str:
    if not result.success:
        return f"Agent failed: {result.error}"

    if score > 0.8:
        quality = "High quality output"
    elif score > 0.6:
        quality = "Good output quality"
    else:
        quality = "Basic output quality"

    if confidence > 0.8:
        certainty = "high confidence"
    elif confidence > 0.6:
        certainty = "medium confidence"
    else:
        certainty = "low confidence"

    if result.execution_time_ms < _FAST_MS:
        speed = "fast execution"
    elif result.execution_time_ms < _TIME_REFERENCE_MS:
        speed = "reasonable execution time"
    else:
        speed = "slow execution"
    return f"{quality}, {certainty}, {speed}"


def score_results(results: Sequence[AgentResult]) -> list[ScoredResult]:
    scored: list[ScoredResult] = []
    for result in results:
        score = score_result(result)
        confidence = compute_confidence(result, results)
        scored.append(
            ScoredResult.from_result(
                result,
                score=score,
                confidence=confidence,
                reasoning=build_reasoning(result, score, confidence),
            )
        )
    return scored


def unscored(results: Sequence[AgentResult]) -> list[ScoredResult]:
    """Wrap results without consensus scoring."""

    return [
        ScoredResult.from_result(
            result, score=1.0, confidence=1.0, reasoning=NO_CONSENSUS_REASONING
        )
        for result in results
    ]


def compare_results(results: Sequence[AgentResult]) -> list[ScoredResult]:
    """Score an arbitrary set of results, best first."""

    return sorted(score_results(results), key=lambda item: (-item.score, -item.confidence))


__all__ = [
    "NO_CONSENSUS_REASONING",
    "build_reasoning",
    "compare_results",
    "compute_confidence",
    "score_result",
    "score_results",
    "unscored",
]
