"""Confidence heuristics and decision fingerprints."""
from __future__ import annotations

import pytest

from taskhive.orchestration.models import Issue, Opportunity, Severity, SystemState
from taskhive.orchestration.scoring import HeuristicConfidenceScorer, fingerprint


def state(success_rate: float, queue_depth: int) -> SystemState:
    return SystemState(queue_depth=queue_depth, running=0, success_rate=success_rate)


@pytest.mark.parametrize(
    ("success_rate", "queue_depth", "expected"),
    [
        (0.95, 1, 0.8),
        (0.8, 10, 0.5),
        (0.5, 30, 0.2),
    ],
)
def test_heuristic_adjustments(success_rate: float, queue_depth: int, expected: float) -> None:
    scorer = HeuristicConfidenceScorer()
    assert scorer.score(state(success_rate, queue_depth), None) == pytest.approx(expected)


def test_history_is_blended_in() -> None:
    scorer = HeuristicConfidenceScorer()
    assert scorer.score(state(0.95, 1), 0.0) == pytest.approx(0.56)
    assert scorer.score(state(0.95, 1), 1.0) == pytest.approx(0.86)


def test_score_stays_in_unit_interval_for_extreme_coefficients() -> None:
    generous = HeuristicConfidenceScorer(base=0.9, success_adjustment=0.5, load_adjustment=0.5)
    harsh = HeuristicConfidenceScorer(base=0.1, success_adjustment=0.5, load_adjustment=0.5)

    assert generous.score(state(1.0, 0), 5.0) == 1.0
    assert harsh.score(state(0.0, 100), -3.0) == 0.0


def test_fingerprint_sorts_each_group() -> None:
    snapshot = SystemState(
        queue_depth=20,
        running=1,
        success_rate=0.5,
        issues=[Issue("performance", Severity.HIGH), Issue("backlog", Severity.MEDIUM)],
        opportunities=[Opportunity("capacity", "scale-up")],
    )
    assert fingerprint(snapshot) == "backlog,performance|capacity"
    assert fingerprint(state(1.0, 0)) == "|"
