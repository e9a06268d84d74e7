"""Knowledge base bookkeeping and snapshot persistence."""
from __future__ import annotations

import pytest

from taskhive.orchestration.knowledge import KnowledgeBase
from taskhive.orchestration.models import Decision, DecisionStatus


def executed(fingerprint: str, success: bool, confidence: float = 0.8) -> Decision:
    return Decision(
        fingerprint=fingerprint,
        confidence=confidence,
        status=DecisionStatus.EXECUTED,
        success=success,
    )


def test_learn_tracks_outcomes_per_fingerprint() -> None:
    knowledge = KnowledgeBase()
    knowledge.learn(executed("backlog|", True, 0.6))
    knowledge.learn(executed("backlog|", False, 0.8))
    knowledge.learn(executed("|capacity", True))

    entry = knowledge.get("backlog|")
    assert entry is not None
    assert (entry.occurrences, entry.successes, entry.failures) == (2, 1, 1)
    assert entry.success_rate == pytest.approx(0.5)
    assert entry.avg_confidence == pytest.approx(0.7)
    assert len(knowledge) == 2


def test_history_is_bounded() -> None:
    knowledge = KnowledgeBase(history_limit=3)
    decisions = [executed("x|", True) for _ in range(5)]
    for decision in decisions:
        knowledge.learn(decision)

    assert [record.decision_id for record in knowledge.history] == [d.decision_id for d in decisions[-3:]]


def test_record_decision_updates_existing_entry() -> None:
    knowledge = KnowledgeBase()
    decision = Decision(fingerprint="x|", confidence=0.4)
    knowledge.record_decision(decision)
    decision.status = DecisionStatus.REJECTED
    knowledge.record_decision(decision)

    assert len(knowledge.history) == 1
    assert knowledge.history[0].status is DecisionStatus.REJECTED


def test_similar_success_rate_uses_recent_window() -> None:
    knowledge = KnowledgeBase()
    assert knowledge.similar_success_rate("x|") is None
    for outcome in [False, False, True, True]:
        knowledge.learn(executed("x|", outcome))
    knowledge.learn(executed("y|", False))

    assert knowledge.similar_success_rate("x|") == pytest.approx(0.5)
    assert knowledge.similar_success_rate("x|", window=2) == pytest.approx(1.0)


@pytest.mark.anyio
async def test_snapshot_round_trip_leaves_no_temp_files(tmp_path) -> None:
    path = tmp_path / "state" / "knowledge.json"
    knowledge = KnowledgeBase(path)
    knowledge.learn(executed("backlog|capacity", True))
    await knowledge.save()

    restored = KnowledgeBase(path)
    await restored.load()

    entry = restored.get("backlog|capacity")
    assert entry is not None and entry.successes == 1
    assert len(restored.history) == 1
    assert [p.name for p in path.parent.iterdir()] == ["knowledge.json"]


@pytest.mark.anyio
async def test_corrupt_or_missing_snapshot_starts_fresh(tmp_path) -> None:
    missing = KnowledgeBase(tmp_path / "absent.json")
    await missing.load()
    assert len(missing) == 0

    path = tmp_path / "knowledge.json"
    path.write_text("{not json", encoding="utf-8")
    corrupt = KnowledgeBase(path)
    await corrupt.load()
    assert len(corrupt) == 0
    assert corrupt.history == []


@pytest.mark.anyio
async def test_snapshot_with_invalid_utf8_starts_fresh(tmp_path) -> None:
    path = tmp_path / "knowledge.json"
    path.write_bytes(b"\xff\xfe\x00garbage")
    knowledge = KnowledgeBase(path)

    await knowledge.load()

    assert len(knowledge) == 0
    assert knowledge.history == []
