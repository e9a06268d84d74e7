"""Simple agent implementation used by the demo and the tests."""
from __future__ import annotations

import asyncio
from typing import Any, Dict

from taskhive.agents.base import Agent
from taskhive.core.errors import TaskExecutionError


class EchoAgent(Agent):
    """Agent that echoes task payloads back to demonstrate lifecycle control.

    Payload keys understood: ``delay`` (seconds of simulated work) and ``fail``
    (raise instead of answering, with the value as the error message).
    """

    async def process_task(self, payload: Any) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            payload = {"content": payload}
        delay = float(payload.get("delay", 0))
        if delay > 0:
            await asyncio.sleep(delay)  # Simulate work
        if payload.get("fail"):
            raise TaskExecutionError(str(payload["fail"]))
        return {
            "echo": payload.get("content"),
            "agent": self.name,
            "action": payload.get("action"),
        }
