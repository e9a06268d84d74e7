"""Agent receiving decision outcomes from the orchestrator."""
from __future__ import annotations

from collections import defaultdict, deque
from typing import Any, Deque, Dict

from taskhive.agents.base import Agent
from taskhive.core.errors import TaskExecutionError

KNOWLEDGE_TOPIC = "knowledge.updated"
DEFAULT_HISTORY_LIMIT = 1000


class LearnerAgent(Agent):
    """Keeps a bounded outcome window per fingerprint and announces every lesson on the bus.

    The window size comes from the ``history_limit`` entry of the agent metadata.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.history_limit = max(1, int(self.config.metadata.get("history_limit", DEFAULT_HISTORY_LIMIT)))
        self.outcomes: Dict[str, Deque[bool]] = defaultdict(lambda: deque(maxlen=self.history_limit))

    async def process_task(self, payload: Any) -> Dict[str, Any]:
        action = payload.get("action") if isinstance(payload, dict) else None
        if action == "learn":
            return await self._learn(payload)
        if action == "summary":
            return {"fingerprints": {key: self._summarize(key) for key in self.outcomes}}
        raise TaskExecutionError(f"Unsupported learner action: {action}")

    async def _learn(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        decision = payload.get("decision") or {}
        fingerprint = decision.get("fingerprint", "|")
        self.outcomes[fingerprint].append(bool(decision.get("success")))
        lesson = {"fingerprint": fingerprint, **self._summarize(fingerprint)}
        if self._bus is not None:
            await self.publish(KNOWLEDGE_TOPIC, lesson)
        return lesson

    def _summarize(self, fingerprint: str) -> Dict[str, Any]:
        history = self.outcomes[fingerprint]
        return {
            "observations": len(history),
            "success_rate": sum(history) / len(history) if history else 0.0,
        }
