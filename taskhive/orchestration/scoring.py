"""Confidence scoring for autonomous decisions.

The scorer is a replaceable strategy: the orchestrator only relies on the
result being a float in ``[0, 1]`` and clamps it again on its side.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from taskhive.orchestration.models import SystemState


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def fingerprint(state: SystemState) -> str:
    """Key summarizing a decision context: sorted issue types | sorted opportunity types."""
    issues = ",".join(sorted(issue.type for issue in state.issues))
    opportunities = ",".join(sorted(opportunity.type for opportunity in state.opportunities))
    return f"{issues}|{opportunities}"


class ConfidenceScorer(Protocol):
    def score(self, state: SystemState, historical_success_rate: Optional[float]) -> float: ...


@dataclass(frozen=True)
class HeuristicConfidenceScorer:
    """Base confidence nudged by global success rate and queue depth, then blended with history."""

    base: float = 0.5
    success_adjustment: float = 0.2
    high_success_rate: float = 0.9
    low_success_rate: float = 0.7
    load_adjustment: float = 0.1
    light_queue: int = 5
    heavy_queue: int = 20
    current_weight: float = 0.7

    def score(self, state: SystemState, historical_success_rate: Optional[float]) -> float:
        confidence = self.base

        if state.success_rate > self.high_success_rate:
            confidence += self.success_adjustment
        elif state.success_rate < self.low_success_rate:
            confidence -= self.success_adjustment

        if state.queue_depth < self.light_queue:
            confidence += self.load_adjustment
        elif state.queue_depth > self.heavy_queue:
            confidence -= self.load_adjustment

        if historical_success_rate is not None:
            confidence = (
                confidence * self.current_weight
                + clamp(historical_success_rate) * (1 - self.current_weight)
            )

        return clamp(confidence)
