"""Outcome-frequency knowledge base with bounded decision history."""
from __future__ import annotations

import asyncio
from collections import deque
from pathlib import Path
from typing import Deque, Dict, Iterator, List, Optional

import structlog
from pydantic import ValidationError

from taskhive.orchestration.models import Decision, DecisionRecord, KnowledgeEntry, KnowledgeSnapshot
from taskhive.orchestration.persistence import atomic_write_text

logger = structlog.get_logger(__name__)


class KnowledgeBase:
    """Per-fingerprint success statistics plus the most recent decisions.

    Owned by a single orchestrator. ``save`` snapshots to ``path`` through a
    temp file and rename so a crash never leaves a truncated file behind.
    """

    def __init__(self, path: Optional[Path] = None, *, history_limit: int = 1000) -> None:
        self.path = path
        self.history_limit = max(1, history_limit)
        self._entries: Dict[str, KnowledgeEntry] = {}
        self._history: Deque[DecisionRecord] = deque(maxlen=self.history_limit)
        self._index: Dict[str, DecisionRecord] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def get(self, fingerprint: str) -> Optional[KnowledgeEntry]:
        return self._entries.get(fingerprint)

    @property
    def history(self) -> List[DecisionRecord]:
        return list(self._history)

    def record_decision(self, decision: Decision) -> DecisionRecord:
        """Add or refresh the history entry for ``decision``."""
        record = decision.to_record()
        existing = self._index.get(decision.decision_id)
        if existing is not None and existing in self._history:
            self._history[self._history.index(existing)] = record
        else:
            if len(self._history) == self._history.maxlen:
                self._index.pop(self._history[0].decision_id, None)
            self._history.append(record)
        self._index[decision.decision_id] = record
        return record

    def learn(self, decision: Decision) -> KnowledgeEntry:
        """Fold an executed decision's outcome into its fingerprint's entry."""
        entry = self._entries.setdefault(decision.fingerprint, KnowledgeEntry())
        entry.record(bool(decision.success), decision.confidence)
        self.record_decision(decision)
        return entry

    def similar_success_rate(self, fingerprint: str, window: int = 10) -> Optional[float]:
        """Mean outcome of the last ``window`` resolved decisions sharing ``fingerprint``."""
        outcomes = [
            record.success
            for record in self._history
            if record.fingerprint == fingerprint and record.success is not None
        ][-window:]
        if not outcomes:
            return None
        return sum(1.0 for outcome in outcomes if outcome) / len(outcomes)

    def snapshot(self) -> KnowledgeSnapshot:
        return KnowledgeSnapshot(
            knowledge={key: entry.model_copy() for key, entry in self._entries.items()},
            decision_history=list(self._history),
        )

    def restore(self, snapshot: KnowledgeSnapshot) -> None:
        self._entries = dict(snapshot.knowledge)
        self._history = deque(snapshot.decision_history[-self.history_limit :], maxlen=self.history_limit)
        self._index = {record.decision_id: record for record in self._history}

    async def save(self) -> None:
        if self.path is None:
            return
        payload = self.snapshot().model_dump_json(indent=2)
        await asyncio.to_thread(atomic_write_text, self.path, payload)
        logger.debug("knowledge_base_saved", path=str(self.path), entries=len(self._entries))

    async def load(self) -> None:
        if self.path is None:
            return
        try:
            raw = await asyncio.to_thread(self.path.read_bytes)
        except FileNotFoundError:
            logger.info("knowledge_base_missing_starting_fresh", path=str(self.path))
            return
        try:
            self.restore(KnowledgeSnapshot.model_validate_json(raw))
        except ValidationError as exc:
            logger.error("knowledge_base_corrupt", path=str(self.path), error=str(exc))
            return
        logger.info("knowledge_base_loaded", entries=len(self._entries), decisions=len(self._history))
