"""Base agent definition used by the orchestrator."""
from __future__ import annotations

import abc
import asyncio
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional

import structlog

from taskhive.core import events
from taskhive.core.errors import (
    AgentStateError,
    MessageBusUnavailable,
    MessageTimeoutError,
    RemoteTaskError,
)
from taskhive.core.events import EventEmitter
from taskhive.core.message_bus import MessageBus, TopicHandler
from taskhive.core.models import (
    A2AMessage,
    AgentConfig,
    AgentDescriptor,
    AgentMetrics,
    AgentState,
    HealthStatus,
    MessageKind,
    TaskResult,
)
from taskhive.core.queue import PriorityQueue

logger = structlog.get_logger(__name__)

ERROR_STATE_THRESHOLD = 5
MAX_ERRORS = 10
REGISTRATION_TIMEOUT = 5.0


class Agent(abc.ABC):
    """Abstract agent encapsulating lifecycle hooks, messaging and task processing.

    Subclasses implement :meth:`process_task`; every other hook is optional.
    One task is in flight at a time: the processing loop only dequeues while the
    agent is IDLE and runs the task to completion before looking again.
    """

    def __init__(
        self,
        descriptor: AgentDescriptor,
        bus: Optional[MessageBus] = None,
        *,
        orchestrator_id: str = "orchestrator",
        poll_interval: float = 0.05,
        error_backoff: float = 1.0,
    ) -> None:
        self.descriptor = descriptor
        self._bus = bus
        self.orchestrator_id = orchestrator_id
        self.poll_interval = poll_interval
        self.error_backoff = error_backoff
        self.events = EventEmitter(source=descriptor.name)
        self._queue: PriorityQueue[A2AMessage] = PriorityQueue()
        self._pending_requests: Dict[str, asyncio.Future[Any]] = {}
        self._subscriptions: Dict[str, List[TopicHandler]] = {}
        self._errors: Deque[Dict[str, Any]] = deque(maxlen=MAX_ERRORS)
        self._runner: Optional[asyncio.Task[None]] = None
        self._shutdown_requested = False
        self._log = logger.bind(agent=descriptor.name, agent_id=descriptor.agent_id)

    @property
    def agent_id(self) -> str:
        return self.descriptor.agent_id

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def role(self) -> str:
        return self.descriptor.config.role

    @property
    def config(self) -> AgentConfig:
        return self.descriptor.config

    @property
    def capabilities(self) -> List[str]:
        return self.descriptor.config.capabilities

    @property
    def state(self) -> AgentState:
        return self.descriptor.state

    @property
    def metrics(self) -> AgentMetrics:
        return self.descriptor.metrics

    @property
    def is_running(self) -> bool:
        return self._runner is not None and not self._runner.done()

    @property
    def pending_request_count(self) -> int:
        return len(self._pending_requests)

    @property
    def queue_size(self) -> int:
        return self._queue.size()

    @property
    def error_count(self) -> int:
        return len(self._errors)

    # Lifecycle

    async def initialize(self) -> None:
        """Register with the bus and orchestrator, then run the setup hooks."""
        if self.state is not AgentState.UNINITIALIZED:
            raise AgentStateError(f"Cannot initialize agent in state: {self.state.value}")

        self._log.info("agent_initializing")
        try:
            if self._bus is not None:
                await self._bus.register_agent(self)
            await self._register_with_orchestrator()
            await self.setup_subscriptions()
            await self.load_configuration()
            await self.on_initialize()
        except Exception as exc:
            self.descriptor.state = AgentState.ERROR
            self.descriptor.health = HealthStatus.UNHEALTHY
            self._add_error(exc)
            self._log.error("agent_initialization_failed", error=str(exc))
            raise

        self.descriptor.state = AgentState.IDLE
        self.descriptor.health = HealthStatus.HEALTHY
        self.metrics.start_time = time.time()
        self.events.emit(events.INITIALIZED, {"agent_id": self.agent_id, "name": self.name})
        self._log.info("agent_initialized")

    async def start(self) -> None:
        """Start the agent's background processing loop."""
        if self.state is AgentState.UNINITIALIZED:
            raise AgentStateError("Agent must be initialized before starting")
        if self.is_running:
            return

        rejoining = self.state is AgentState.STOPPED
        if self._bus is not None:
            await self._bus.register_agent(self)
            if rejoining:
                await self._register_with_orchestrator()
        self._shutdown_requested = False
        self.descriptor.state = AgentState.IDLE
        self.descriptor.health = HealthStatus.HEALTHY
        self._runner = asyncio.create_task(self._processing_loop(), name=f"agent-{self.name}")
        await self.on_start()
        self.events.emit(events.STARTED, {"agent_id": self.agent_id, "name": self.name})
        self._log.info("agent_started")

    async def stop(self, grace: Optional[float] = None) -> None:
        """Stop after the in-flight task finishes.

        With ``grace`` set, a task still running after that many seconds is
        cancelled instead of awaited.
        """
        self._log.info("agent_stopping")
        self._shutdown_requested = True
        runner, self._runner = self._runner, None
        if runner is not None:
            try:
                if grace is None:
                    await runner
                else:
                    await asyncio.wait_for(runner, timeout=grace)
            except asyncio.TimeoutError:
                self._log.warning("agent_stop_grace_exceeded", grace=grace)
            except asyncio.CancelledError:
                if not runner.cancelled():
                    raise

        self.descriptor.state = AgentState.STOPPED
        self.descriptor.health = HealthStatus.STOPPED
        self.metrics.busy_since = None
        await self.on_stop()
        await self._cleanup_subscriptions()
        await self._unregister_from_orchestrator()
        if self._bus is not None:
            await self._bus.unregister_agent(self.agent_id)
        self.events.emit(events.STOPPED, {"agent_id": self.agent_id, "name": self.name})
        self._log.info("agent_stopped")

    async def restart(self, grace: Optional[float] = None) -> None:
        self._log.info("agent_restarting")
        await self.stop(grace=grace)
        self._errors.clear()
        self.descriptor.last_error = None
        await self.start()

    # Communication

    async def send_message(
        self,
        to: str,
        payload: Any,
        *,
        kind: MessageKind = MessageKind.REQUEST,
        correlation_id: Optional[str] = None,
        priority: int = 5,
        requires_ack: bool = True,
        timeout: float = 30.0,
    ) -> Any:
        """Send a message; with ``requires_ack`` wait for the correlated response."""
        if self._bus is None:
            raise MessageBusUnavailable("Message bus not configured")

        message = A2AMessage(
            sender_id=self.agent_id,
            sender_name=self.name,
            recipient_id=to,
            payload=payload,
            kind=kind,
            priority=priority,
            requires_ack=requires_ack,
            timeout=timeout,
        )
        if correlation_id is not None:
            message.correlation_id = correlation_id

        if not requires_ack:
            return await self._bus.send(message)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending_requests[message.correlation_id] = future
        try:
            await self._bus.send(message)
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise MessageTimeoutError(message.correlation_id, timeout) from None
        finally:
            self._pending_requests.pop(message.correlation_id, None)

    async def receive_message(self, message: A2AMessage) -> None:
        """Resolve a pending request or queue the message as a task."""
        if message.kind is MessageKind.RESPONSE:
            future = self._pending_requests.pop(message.correlation_id, None)
            if future is None:
                self._log.debug("unmatched_response_dropped", correlation_id=message.correlation_id)
                return
            if not future.done():
                if message.error:
                    future.set_exception(RemoteTaskError(message.error))
                else:
                    future.set_result(message.payload)
            return

        self.enqueue_task(message)

    def enqueue_task(self, message: A2AMessage) -> None:
        self._queue.enqueue(message, message.priority)
        self.metrics.last_activity_time = time.time()

    async def send_response(
        self,
        original: A2AMessage,
        payload: Any,
        error: Optional[BaseException] = None,
    ) -> None:
        if self._bus is None:
            raise MessageBusUnavailable("Message bus not configured")
        response = A2AMessage(
            sender_id=self.agent_id,
            sender_name=self.name,
            recipient_id=original.sender_id,
            payload=None if error else payload,
            kind=MessageKind.RESPONSE,
            correlation_id=original.correlation_id,
            priority=original.priority,
            requires_ack=False,
            error=str(error) if error else None,
        )
        await self._bus.send(response)

    async def subscribe(self, topic: str, handler: TopicHandler) -> None:
        if self._bus is None:
            raise MessageBusUnavailable("Message bus not configured")
        self._subscriptions.setdefault(topic, []).append(handler)
        await self._bus.subscribe(topic, handler)
        self._log.debug("agent_subscribed", topic=topic)

    async def publish(self, topic: str, data: Any) -> None:
        if self._bus is None:
            raise MessageBusUnavailable("Message bus not configured")
        await self._bus.publish(
            topic,
            {
                "publisher_id": self.agent_id,
                "publisher_name": self.name,
                "topic": topic,
                "data": data,
                "timestamp": time.time(),
            },
        )

    async def delegate_task(self, role: str, task: Dict[str, Any], *, timeout: float = 30.0) -> Any:
        """Ask the orchestrator to route ``task`` to an agent with ``role``."""
        self._log.info("delegating_task", target_role=role)
        return await self.send_message(
            self.orchestrator_id,
            {"action": "route-task", "target_role": role, "task": task},
            timeout=timeout,
        )

    # Task processing

    async def _processing_loop(self) -> None:
        self._log.debug("processing_loop_started")
        while not self._shutdown_requested:
            try:
                if self.state is AgentState.IDLE and not self._queue.is_empty():
                    message = self._queue.dequeue()
                    if message is not None:
                        await self.handle_task(message)
                else:
                    await asyncio.sleep(self.poll_interval)
            except Exception as exc:  # noqa: BLE001
                self._log.error("processing_loop_error", error=str(exc))
                self._add_error(exc)
                await asyncio.sleep(self.error_backoff)
        self._log.debug("processing_loop_stopped")

    async def handle_task(self, message: A2AMessage) -> TaskResult:
        """Run one task with timing, counters, response dispatch and events."""
        started = time.monotonic()
        self.descriptor.state = AgentState.BUSY
        self.metrics.busy_since = time.time()
        self.metrics.last_activity_time = self.metrics.busy_since
        action = message.payload.get("action", "unknown") if isinstance(message.payload, dict) else "unknown"
        self._log.debug("task_started", action=action, correlation_id=message.correlation_id)

        try:
            result = await self.process_task(message.payload)
        except Exception as exc:  # noqa: BLE001
            self.metrics.tasks_failed += 1
            self.metrics.record_duration(time.monotonic() - started)
            self.metrics.busy_since = None
            self._add_error(exc)
            if len(self._errors) >= ERROR_STATE_THRESHOLD:
                self.descriptor.state = AgentState.ERROR
                self.descriptor.health = HealthStatus.UNHEALTHY
            else:
                self.descriptor.state = AgentState.IDLE
            if message.requires_ack:
                await self._respond_safely(message, None, exc)
            self.events.emit(
                events.TASK_FAILED,
                {"agent_id": self.agent_id, "message": message, "error": exc},
            )
            self._log.warning("task_failed", action=action, error=str(exc), errors=len(self._errors))
            return TaskResult(success=False, error=str(exc))

        self.metrics.tasks_succeeded += 1
        self.metrics.record_duration(time.monotonic() - started)
        self.metrics.busy_since = None
        self.descriptor.state = AgentState.IDLE
        if message.requires_ack:
            await self._respond_safely(message, result)
        self.events.emit(
            events.TASK_COMPLETED,
            {"agent_id": self.agent_id, "message": message, "result": result},
        )
        self._log.debug("task_completed", action=action)
        return TaskResult(success=True, result=result)

    @abc.abstractmethod
    async def process_task(self, payload: Any) -> Any:
        """Execute a task payload and return its result. May raise."""

    # Health & metrics

    async def health_check(self) -> Dict[str, Any]:
        if self.state is AgentState.ERROR or len(self._errors) >= ERROR_STATE_THRESHOLD:
            self.descriptor.health = HealthStatus.UNHEALTHY
        elif self.state is AgentState.STOPPED:
            self.descriptor.health = HealthStatus.STOPPED
        elif self.state is not AgentState.UNINITIALIZED:
            self.descriptor.health = HealthStatus.HEALTHY
        return self.get_status()

    def get_status(self) -> Dict[str, Any]:
        start_time = self.metrics.start_time
        return {
            "agent_id": self.agent_id,
            "name": self.name,
            "role": self.role,
            "state": self.state.value,
            "health": self.descriptor.health.value,
            "capabilities": list(self.capabilities),
            "queue_size": self._queue.size(),
            "pending_requests": len(self._pending_requests),
            "error_count": len(self._errors),
            "busy_since": self.metrics.busy_since,
            "uptime": time.time() - start_time if start_time else 0.0,
            "metrics": self.metrics.as_dict(),
            "timestamp": time.time(),
        }

    def get_metrics(self) -> Dict[str, Any]:
        return self.metrics.as_dict()

    # Hooks

    async def on_initialize(self) -> None:
        """Hook executed at the end of initialization."""
        return None

    async def on_start(self) -> None:
        """Hook executed once the processing loop is running."""
        return None

    async def on_stop(self) -> None:
        """Hook executed after the processing loop exits."""
        return None

    async def setup_subscriptions(self) -> None:
        """Hook for subscribing to bus topics during initialization."""
        return None

    async def load_configuration(self) -> None:
        """Hook for loading agent-specific configuration during initialization."""
        return None

    # Internals

    def _add_error(self, error: BaseException) -> None:
        self._errors.append({"message": str(error), "type": type(error).__name__, "timestamp": time.time()})
        self.descriptor.last_error = str(error)
        self.events.emit(events.ERROR, error)

    async def _respond_safely(
        self,
        message: A2AMessage,
        payload: Any,
        error: Optional[BaseException] = None,
    ) -> None:
        try:
            await self.send_response(message, payload, error)
        except Exception as exc:  # noqa: BLE001
            self._log.warning("response_dispatch_failed", to=message.sender_id, error=str(exc))

    async def _register_with_orchestrator(self) -> None:
        if self._bus is None:
            self._log.warning("no_message_bus_skipping_registration")
            return
        try:
            await self.send_message(
                self.orchestrator_id,
                {
                    "action": "register-agent",
                    "agent_id": self.agent_id,
                    "name": self.name,
                    "role": self.role,
                    "capabilities": list(self.capabilities),
                },
                timeout=REGISTRATION_TIMEOUT,
            )
            self._log.info("registered_with_orchestrator")
        except Exception as exc:  # noqa: BLE001
            self._log.warning("orchestrator_registration_failed", error=str(exc))

    async def _unregister_from_orchestrator(self) -> None:
        if self._bus is None:
            return
        try:
            await self.send_message(
                self.orchestrator_id,
                {"action": "unregister-agent", "agent_id": self.agent_id},
                requires_ack=False,
            )
        except Exception as exc:  # noqa: BLE001
            self._log.warning("orchestrator_unregistration_failed", error=str(exc))

    async def _cleanup_subscriptions(self) -> None:
        if self._bus is None:
            self._subscriptions.clear()
            return
        for topic, handlers in list(self._subscriptions.items()):
            for handler in handlers:
                try:
                    await self._bus.unsubscribe(topic, handler)
                except Exception as exc:  # noqa: BLE001
                    self._log.warning("unsubscribe_failed", topic=topic, error=str(exc))
        self._subscriptions.clear()
