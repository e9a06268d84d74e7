"""Observer registry used by agents and the orchestrator to publish lifecycle events."""
from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from typing import Any, Callable, Dict, List, Set

import structlog

logger = structlog.get_logger(__name__)

INITIALIZED = "initialized"
STARTED = "started"
STOPPED = "stopped"
TASK_COMPLETED = "task-completed"
TASK_FAILED = "task-failed"
ERROR = "error"
DECISION_MADE = "decision_made"
DECISION_PENDING = "decision_pending"
AGENT_DECISION = "agent_decision"
AGENT_ERROR = "agent_error"
AGENT_MESSAGE = "agent_message"
EMERGENCY_DISABLE = "emergency_disable"
AUTONOMY_TOGGLED = "autonomy_toggled"
AUTONOMY_CHANGED = "autonomy_changed"

EventHandler = Callable[[Any], Any]


class EventEmitter:
    """Register callbacks per event name and notify them on ``emit``.

    Handlers may be plain callables or coroutine functions. A coroutine handler
    is scheduled on the running loop; the emitter keeps a reference to the task
    until it finishes. Handler failures are logged and never reach the emitter.
    """

    def __init__(self, source: str = "") -> None:
        self._source = source
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._pending: Set[asyncio.Task[Any]] = set()

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                result = handler(payload)
            except Exception as exc:  # noqa: BLE001
                logger.error("event_handler_failed", source=self._source, event_name=event, error=str(exc))
                continue
            if inspect.isawaitable(result):
                self._schedule(event, result)

    def _schedule(self, event: str, awaitable: Any) -> None:
        async def _run() -> None:
            try:
                await awaitable
            except Exception as exc:  # noqa: BLE001
                logger.error("event_handler_failed", source=self._source, event_name=event, error=str(exc))

        task = asyncio.get_running_loop().create_task(_run())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
