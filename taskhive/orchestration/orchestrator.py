"""Orchestrator responsible for provisioning, feeding and supervising agents."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Type

import structlog

from taskhive.agents.base import Agent
from taskhive.config import OrchestratorSettings
from taskhive.core import events
from taskhive.core.errors import AutonomyLockedError, UnknownDecisionError
from taskhive.core.events import EventEmitter
from taskhive.core.message_bus import MessageBus
from taskhive.core.models import (
    A2AMessage,
    AgentConfig,
    AgentDescriptor,
    AgentState,
    MessageKind,
    Task,
    new_id,
)
from taskhive.core.queue import PriorityQueue
from taskhive.orchestration.knowledge import KnowledgeBase
from taskhive.orchestration.models import (
    AutonomyFile,
    Decision,
    DecisionAction,
    DecisionStatus,
    Issue,
    KnowledgeEntry,
    Opportunity,
    Severity,
    SystemState,
)
from taskhive.orchestration.persistence import load_autonomy, save_autonomy
from taskhive.orchestration.scoring import ConfidenceScorer, HeuristicConfidenceScorer, clamp, fingerprint

logger = structlog.get_logger(__name__)

ORCHESTRATOR_ID = "orchestrator"
LEARNER_ROLE = "learner"


@dataclass(slots=True)
class OrchestratorMetrics:
    tasks_queued: int = 0
    tasks_assigned: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0
    decisions_made: int = 0
    autonomous_actions: int = 0

    @property
    def success_rate(self) -> float:
        finished = self.tasks_completed + self.tasks_failed
        if finished == 0:
            return 1.0
        return self.tasks_completed / finished

    def as_dict(self) -> Dict[str, Any]:
        return {
            "tasks_queued": self.tasks_queued,
            "tasks_assigned": self.tasks_assigned,
            "tasks_completed": self.tasks_completed,
            "tasks_failed": self.tasks_failed,
            "decisions_made": self.decisions_made,
            "autonomous_actions": self.autonomous_actions,
            "success_rate": self.success_rate,
        }


class Orchestrator:
    """Coordinate agent lifecycle, task assignment and autonomous decisions.

    The orchestrator is also a bus endpoint (id ``"orchestrator"``): agents
    register with it on initialization and ask it to route delegated tasks.
    """

    def __init__(
        self,
        *,
        bus: MessageBus,
        agent_catalog: Dict[str, Type[Agent]],
        settings: Optional[OrchestratorSettings] = None,
        knowledge_base: Optional[KnowledgeBase] = None,
        scorer: Optional[ConfidenceScorer] = None,
    ) -> None:
        self._bus = bus
        self._agent_catalog = agent_catalog
        self.settings = settings or OrchestratorSettings()
        self.knowledge = knowledge_base or KnowledgeBase(
            self.settings.knowledge_path,
            history_limit=self.settings.history_limit,
        )
        self.scorer: ConfidenceScorer = scorer or HeuristicConfidenceScorer()
        self.decision_threshold = self.settings.decision_threshold
        self.events = EventEmitter(source=ORCHESTRATOR_ID)
        self.metrics = OrchestratorMetrics()

        self._agents: Dict[str, Agent] = {}
        self._assignments: Dict[str, str] = {}
        self._parked: Set[str] = set()
        self._bus_registrations: Set[str] = set()
        self._task_queue: PriorityQueue[Task] = PriorityQueue()
        self._pending_decisions: Dict[str, Decision] = {}

        self._autonomy_enabled = self.settings.autonomy_enabled
        self._emergency_disabled = False

        self._initialized = False
        self._running = False
        self._shutting_down = False
        self._stop_event: Optional[asyncio.Event] = None
        self._loops: List[asyncio.Task[None]] = []
        self._health_lock = asyncio.Lock()
        self._started_at = time.time()

    # Bus endpoint identity

    @property
    def agent_id(self) -> str:
        return ORCHESTRATOR_ID

    @property
    def name(self) -> str:
        return ORCHESTRATOR_ID

    @property
    def role(self) -> str:
        return ORCHESTRATOR_ID

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queue_length(self) -> int:
        return self._task_queue.size()

    @property
    def bus_registrations(self) -> Set[str]:
        """Agent ids that announced themselves with a register-agent request."""
        return set(self._bus_registrations)

    # Lifecycle

    async def initialize(self) -> None:
        """Load persisted autonomy and knowledge, then join the bus."""
        if self._initialized:
            return
        await self._load_autonomy()
        await self.knowledge.load()
        await self._bus.register_agent(self)
        self._initialized = True
        logger.info(
            "orchestrator_initialized",
            autonomy=self.is_autonomy_enabled(),
            knowledge_entries=len(self.knowledge),
        )

    async def start(self) -> None:
        if self._running:
            logger.info("orchestrator_already_running")
            return
        await self.initialize()
        self._running = True
        self._shutting_down = False
        stop_event = self._stop_event = asyncio.Event()

        for agent in list(self._agents.values()):
            if agent.state is not AgentState.UNINITIALIZED and not agent.is_running:
                await self.start_agent(agent.agent_id)

        self._loops = [
            asyncio.create_task(
                self._run_periodic("monitoring", self.settings.monitoring_interval, self._monitor_once, stop_event)
            ),
            asyncio.create_task(
                self._run_periodic("decision", self.settings.decision_interval, self._decide_once, stop_event)
            ),
            asyncio.create_task(
                self._run_periodic("snapshot", self.settings.snapshot_interval, self._snapshot_once, stop_event)
            ),
        ]
        self.events.emit(events.STARTED, {"agents": len(self._agents)})
        logger.info("orchestrator_started", agents=len(self._agents))

    async def shutdown(self) -> None:
        """Stop the periodic loops, then every agent, then snapshot the knowledge base."""
        logger.info("orchestrator_shutting_down")
        self._shutting_down = True
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        loops, self._loops = self._loops, []
        await asyncio.gather(*loops, return_exceptions=True)

        async with self._health_lock:
            for agent in list(self._agents.values()):
                if agent.is_running or agent.state not in (AgentState.UNINITIALIZED, AgentState.STOPPED):
                    await self.stop_agent(agent.agent_id)

        await self._snapshot_once()
        await self._bus.unregister_agent(self.agent_id)
        self._initialized = False
        self.events.emit(events.STOPPED, {"agents": len(self._agents)})
        logger.info("orchestrator_shutdown_complete")

    async def _run_periodic(
        self,
        name: str,
        interval: float,
        tick: Callable[[], Awaitable[Any]],
        stop_event: asyncio.Event,
    ) -> None:
        while self._running:
            try:
                await tick()
            except Exception as exc:  # noqa: BLE001
                logger.error("orchestrator_loop_error", loop=name, error=str(exc))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    async def _monitor_once(self) -> None:
        state = self.assess_system_state()
        if self.should_take_action(state):
            await self.make_autonomous_decision(state)
        await self.check_agent_health()

    async def _decide_once(self) -> None:
        self.drain_queue()
        await self.review_pending_decisions()

    async def _snapshot_once(self) -> None:
        try:
            await self.knowledge.save()
        except OSError as exc:
            logger.error("knowledge_base_save_failed", error=str(exc))

    # Agent management

    async def register_agent(self, name: str, config: AgentConfig) -> AgentDescriptor:
        """Instantiate an agent from the catalog, wire its events and initialize it."""
        agent_cls = self._resolve_agent_class(config.role)
        if any(agent.name == name for agent in self._agents.values()):
            raise ValueError(f"Agent name already registered: {name}")

        descriptor = AgentDescriptor(agent_id=new_id(), name=name, config=config)
        agent = agent_cls(descriptor, self._bus, orchestrator_id=self.agent_id)
        self._wire_agent(agent)
        self._agents[descriptor.agent_id] = agent
        try:
            await agent.initialize()
        except Exception:
            self._agents.pop(descriptor.agent_id, None)
            await self._bus.unregister_agent(descriptor.agent_id)
            raise

        logger.info("agent_registered", agent=name, role=config.role, agent_id=descriptor.agent_id)
        if self._running:
            await self.start_agent(descriptor.agent_id)
        return descriptor

    async def unregister_agent(self, agent_id: str) -> None:
        """Stop and remove an agent from the orchestrator."""
        agent = self._agents.pop(agent_id, None)
        if agent is None:
            return
        if agent.is_running or agent.state not in (AgentState.UNINITIALIZED, AgentState.STOPPED):
            await agent.stop()
        self._assignments.pop(agent_id, None)
        self._parked.discard(agent_id)
        logger.info("agent_unregistered", agent=agent.name)

    async def start_agent(self, agent_id: str) -> bool:
        agent = self._agents.get(agent_id)
        if agent is None:
            logger.error("agent_not_found", agent_id=agent_id)
            return False
        self._parked.discard(agent_id)
        try:
            await agent.start()
        except Exception as exc:  # noqa: BLE001
            logger.error("agent_start_failed", agent=agent.name, error=str(exc))
            return False
        return True

    async def stop_agent(self, agent_id: str, *, park: bool = False) -> bool:
        """Stop an agent. A parked agent is left alone by the health check."""
        agent = self._agents.get(agent_id)
        if agent is None:
            return False
        if park:
            self._parked.add(agent_id)
        try:
            await agent.stop()
        except Exception as exc:  # noqa: BLE001
            logger.error("agent_stop_failed", agent=agent.name, error=str(exc))
            return False
        finally:
            self._assignments.pop(agent_id, None)
        return True

    async def restart_agent(self, agent_id: str) -> bool:
        agent = self._agents.get(agent_id)
        if agent is None:
            return False
        self._parked.discard(agent_id)
        try:
            await agent.restart(grace=self.settings.restart_grace)
        except Exception as exc:  # noqa: BLE001
            logger.error("agent_restart_failed", agent=agent.name, error=str(exc))
            return False
        finally:
            self._assignments.pop(agent_id, None)
        return True

    def list_agents(self) -> Iterable[AgentDescriptor]:
        return (agent.descriptor for agent in self._agents.values())

    def get_agent(self, agent_id: str) -> Optional[AgentDescriptor]:
        agent = self._agents.get(agent_id)
        return agent.descriptor if agent else None

    def get_agent_instance(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    def find_agent_by_role(self, role: str) -> Optional[Agent]:
        for agent in self._agents.values():
            if agent.role == role:
                return agent
        return None

    def _resolve_agent_class(self, role: str) -> Type[Agent]:
        if role not in self._agent_catalog:
            raise KeyError(f"No agent registered for role '{role}'")
        return self._agent_catalog[role]

    def _wire_agent(self, agent: Agent) -> None:
        agent.events.on(events.DECISION_MADE, partial(self._handle_agent_decision, agent.agent_id))
        agent.events.on(events.TASK_COMPLETED, partial(self._handle_task_finished, agent.agent_id, True))
        agent.events.on(events.TASK_FAILED, partial(self._handle_task_finished, agent.agent_id, False))
        agent.events.on(events.ERROR, partial(self._handle_agent_error, agent.agent_id))
        agent.events.on(events.STOPPED, partial(self._handle_agent_stopped, agent.agent_id))

    def _agent_name(self, agent_id: str) -> str:
        agent = self._agents.get(agent_id)
        return agent.name if agent else agent_id

    def _handle_agent_decision(self, agent_id: str, decision: Any) -> None:
        logger.info("agent_decision", agent=self._agent_name(agent_id))
        self.events.emit(events.AGENT_DECISION, {"agent": self._agent_name(agent_id), "decision": decision})

    def _handle_task_finished(self, agent_id: str, success: bool, payload: Dict[str, Any]) -> None:
        message: Optional[A2AMessage] = payload.get("message")
        if message is not None and self._assignments.get(agent_id) == message.correlation_id:
            del self._assignments[agent_id]
        if success:
            self.metrics.tasks_completed += 1
        else:
            self.metrics.tasks_failed += 1
        event = events.TASK_COMPLETED if success else events.TASK_FAILED
        self.events.emit(event, {"agent": self._agent_name(agent_id), **payload})

    def _handle_agent_error(self, agent_id: str, error: BaseException) -> None:
        logger.warning("agent_error", agent=self._agent_name(agent_id), error=str(error))
        self.events.emit(events.AGENT_ERROR, {"agent": self._agent_name(agent_id), "error": error})

    def _handle_agent_stopped(self, agent_id: str, _payload: Any) -> None:
        self._assignments.pop(agent_id, None)

    # Bus endpoint

    async def receive_message(self, message: A2AMessage) -> None:
        """Handle control requests addressed to the orchestrator."""
        if message.kind is MessageKind.RESPONSE:
            logger.debug("orchestrator_ignored_response", correlation_id=message.correlation_id)
            return

        payload = message.payload if isinstance(message.payload, dict) else {}
        action = payload.get("action")
        self.events.emit(events.AGENT_MESSAGE, message)
        if action == "register-agent":
            self._bus_registrations.add(payload.get("agent_id", message.sender_id))
            await self._reply(message, {"registered": True, "orchestrator_id": self.agent_id})
        elif action == "unregister-agent":
            self._bus_registrations.discard(payload.get("agent_id", message.sender_id))
            await self._reply(message, {"unregistered": True})
        elif action == "route-task":
            await self._route_task(message, payload)
        else:
            await self._reply(message, None, error=f"Unsupported orchestrator action: {action}")

    async def _route_task(self, message: A2AMessage, payload: Dict[str, Any]) -> None:
        role = payload.get("target_role")
        candidates = [
            agent
            for agent in self._agents.values()
            if agent.role == role
            and agent.agent_id != message.sender_id
            and agent.state is AgentState.IDLE
            and agent.is_running
        ]
        if not candidates:
            await self._reply(message, None, error=f"No available agent for role: {role}")
            return

        target = min(candidates, key=lambda agent: agent.queue_size)
        forwarded = A2AMessage(
            sender_id=message.sender_id,
            sender_name=message.sender_name,
            recipient_id=target.agent_id,
            payload=payload.get("task"),
            correlation_id=message.correlation_id,
            priority=message.priority,
            requires_ack=message.requires_ack,
            timeout=message.timeout,
        )
        logger.info("task_routed", to=target.name, role=role, sender=message.sender_id)
        await self._bus.send(forwarded)

    async def _reply(self, message: A2AMessage, payload: Any, *, error: Optional[str] = None) -> None:
        if not message.requires_ack:
            return
        response = A2AMessage(
            sender_id=self.agent_id,
            sender_name=self.name,
            recipient_id=message.sender_id,
            payload=payload,
            kind=MessageKind.RESPONSE,
            correlation_id=message.correlation_id,
            priority=message.priority,
            requires_ack=False,
            error=error,
        )
        try:
            await self._bus.send(response)
        except Exception as exc:  # noqa: BLE001
            logger.warning("orchestrator_reply_failed", to=message.sender_id, error=str(exc))

    # Tasks

    def queue_task(
        self,
        payload: Dict[str, Any],
        *,
        priority: int = 5,
        required_capabilities: Optional[List[str]] = None,
        autonomous: bool = False,
    ) -> Task:
        task = Task(
            payload=payload,
            priority=priority,
            required_capabilities=list(required_capabilities or []),
            autonomous=autonomous,
        )
        self._task_queue.enqueue(task, task.priority)
        self.metrics.tasks_queued += 1
        logger.debug("task_queued", task_id=task.task_id, autonomous=autonomous, priority=priority)
        return task

    def queued_tasks(self) -> List[Task]:
        return list(self._task_queue)

    def assign_task(self, task: Task) -> Optional[str]:
        """Hand ``task`` to the best-fit idle agent, or put it back in the queue."""
        agent = self.select_best_agent(task)
        if agent is None:
            self._task_queue.enqueue(task, task.priority)
            logger.debug("no_suitable_agent_task_requeued", task_id=task.task_id)
            return None

        self._assignments[agent.agent_id] = task.task_id
        agent.enqueue_task(
            A2AMessage(
                sender_id=self.agent_id,
                sender_name=self.name,
                recipient_id=agent.agent_id,
                payload=task.payload,
                correlation_id=task.task_id,
                priority=task.priority,
                requires_ack=False,
            )
        )
        self.metrics.tasks_assigned += 1
        logger.info("task_assigned", task_id=task.task_id, agent=agent.name)
        return agent.agent_id

    def select_best_agent(self, task: Task) -> Optional[Agent]:
        best: Optional[Agent] = None
        best_score = 0.0
        for agent in self._agents.values():
            if agent.agent_id in self._assignments:
                continue
            if agent.state is not AgentState.IDLE or not agent.is_running:
                continue
            if task.required_capabilities and not set(task.required_capabilities) & set(agent.capabilities):
                continue
            score = self.calculate_agent_suitability(agent, task)
            if best is None or score > best_score:
                best, best_score = agent, score
        return best

    def calculate_agent_suitability(self, agent: Agent, task: Task) -> float:
        score = float(len(set(task.required_capabilities) & set(agent.capabilities)))
        score += agent.metrics.success_rate
        if agent.state is AgentState.IDLE and agent.queue_size == 0:
            score += 0.5
        return score

    def drain_queue(self) -> int:
        """Assign queued tasks while slots are free; stop at the first task nobody can take."""
        assigned = 0
        while not self._task_queue.is_empty() and len(self._assignments) < self.settings.max_concurrent_agents:
            task = self._task_queue.dequeue()
            if task is None or self.assign_task(task) is None:
                break
            assigned += 1
        return assigned

    # Monitoring & decisions

    def assess_system_state(self) -> SystemState:
        state = SystemState(
            queue_depth=self._task_queue.size(),
            running=len(self._assignments),
            success_rate=self.metrics.success_rate,
            agents={agent.agent_id: agent.get_status() for agent in self._agents.values()},
        )

        if state.queue_depth > self.settings.backlog_threshold:
            state.issues.append(Issue("backlog", Severity.MEDIUM, "Task queue growing"))
        if state.success_rate < self.settings.min_success_rate:
            state.issues.append(Issue("performance", Severity.HIGH, "Low success rate"))
        failed = sorted(agent.name for agent in self._agents.values() if agent.state is AgentState.ERROR)
        if failed:
            state.issues.append(Issue("error", Severity.HIGH, f"Agents in error state: {', '.join(failed)}"))

        if state.running < self.settings.max_concurrent_agents and state.queue_depth > 0:
            state.opportunities.append(Opportunity("capacity", "scale-up"))
        return state

    def should_take_action(self, state: SystemState) -> bool:
        if state.has_high_severity_issue():
            return True
        if state.opportunities:
            return self.calculate_action_confidence(state) >= self.decision_threshold
        return False

    def calculate_action_confidence(self, state: SystemState) -> float:
        historical = self.knowledge.similar_success_rate(fingerprint(state))
        return clamp(self.scorer.score(state, historical))

    async def make_autonomous_decision(self, state: SystemState) -> Optional[Decision]:
        """Execute a decision when confident enough, otherwise surface it for approval."""
        if not self.is_autonomy_enabled():
            logger.info("autonomous_decision_skipped", reason="autonomy disabled")
            return None

        decision = Decision(
            fingerprint=fingerprint(state),
            confidence=self.calculate_action_confidence(state),
            context=state,
        )
        for issue in state.issues:
            if issue.severity is Severity.HIGH:
                decision.actions.append(
                    DecisionAction("resolve-issue", issue.type, {"severity": issue.severity.value, "detail": issue.detail})
                )
        for opportunity in state.opportunities:
            decision.actions.append(
                DecisionAction("exploit-opportunity", opportunity.type, {"action": opportunity.action})
            )
        self.metrics.decisions_made += 1

        if decision.confidence >= self.decision_threshold:
            logger.info("autonomous_decision", decision_id=decision.decision_id, confidence=round(decision.confidence, 2))
            await self.execute_decision(decision)
            self.metrics.autonomous_actions += 1
        else:
            logger.info(
                "decision_pending_confirmation",
                decision_id=decision.decision_id,
                confidence=round(decision.confidence, 2),
            )
            self._pending_decisions[decision.decision_id] = decision
            self.knowledge.record_decision(decision)
            self.events.emit(events.DECISION_PENDING, decision)
        return decision

    async def execute_decision(self, decision: Decision) -> Decision:
        failures: List[str] = []
        for action in decision.actions:
            try:
                await self._run_action(action, autonomous=decision.autonomous)
            except Exception as exc:  # noqa: BLE001
                logger.error("decision_action_failed", action=action.type, target=action.target, error=str(exc))
                failures.append(f"{action.type}:{action.target}: {exc}")

        decision.status = DecisionStatus.EXECUTED
        decision.success = not failures
        decision.error = "; ".join(failures) or None
        if self.settings.learning_enabled:
            await self.learn_from_decision(decision)
        else:
            self.knowledge.record_decision(decision)
        return decision

    async def _run_action(self, action: DecisionAction, autonomous: bool) -> None:
        if action.type == "resolve-issue":
            if action.target == "backlog":
                self.drain_queue()
            elif action.target == "performance":
                self.queue_task({"action": "optimize", "target": "performance"}, autonomous=autonomous)
            elif action.target == "error":
                await self._recover_failed_agents()
            else:
                self._delegate_action(action, autonomous)
        elif action.type == "exploit-opportunity" and action.target == "capacity":
            self.drain_queue()
        else:
            self._delegate_action(action, autonomous)

    def _delegate_action(self, action: DecisionAction, autonomous: bool) -> None:
        self.queue_task({"action": action.type, "target": action.target, **action.params}, autonomous=autonomous)

    async def _recover_failed_agents(self) -> None:
        for agent in list(self._agents.values()):
            if agent.state is AgentState.ERROR and agent.agent_id not in self._parked:
                await self.restart_agent(agent.agent_id)

    async def learn_from_decision(self, decision: Decision) -> KnowledgeEntry:
        """Record the outcome and pass it on to a learner agent, if one is registered."""
        entry = self.knowledge.learn(decision)
        learner = self.find_agent_by_role(LEARNER_ROLE)
        if learner is not None:
            learner.enqueue_task(
                A2AMessage(
                    sender_id=self.agent_id,
                    sender_name=self.name,
                    recipient_id=learner.agent_id,
                    payload={
                        "action": "learn",
                        "decision": decision.to_record().model_dump(mode="json"),
                        "knowledge": entry.model_dump(),
                    },
                    requires_ack=False,
                )
            )
        return entry

    def pending_decisions(self) -> List[Decision]:
        return list(self._pending_decisions.values())

    async def approve_decision(self, decision_id: str) -> Decision:
        decision = self._pending_decisions.pop(decision_id, None)
        if decision is None:
            raise UnknownDecisionError(decision_id)
        decision.autonomous = False
        logger.info("decision_approved", decision_id=decision_id)
        return await self.execute_decision(decision)

    def reject_decision(self, decision_id: str) -> Decision:
        decision = self._pending_decisions.pop(decision_id, None)
        if decision is None:
            raise UnknownDecisionError(decision_id)
        decision.status = DecisionStatus.REJECTED
        self.knowledge.record_decision(decision)
        logger.info("decision_rejected", decision_id=decision_id)
        return decision

    async def review_pending_decisions(self) -> List[Decision]:
        """Expire pending decisions nobody acted on within the configured TTL."""
        cutoff = time.time() - self.settings.pending_decision_ttl
        expired = [d for d in self._pending_decisions.values() if d.created_at < cutoff]
        for decision in expired:
            del self._pending_decisions[decision.decision_id]
            decision.status = DecisionStatus.EXPIRED
            self.knowledge.record_decision(decision)
            logger.info("decision_expired", decision_id=decision.decision_id)
        return expired

    async def check_agent_health(self) -> List[str]:
        """Restart agents in error/stopped state and agents stuck on one task.

        Returns the names of the restarted agents.
        """
        restarted: List[str] = []
        async with self._health_lock:
            if self._shutting_down:
                return restarted
            now = time.time()
            for agent in list(self._agents.values()):
                status = await agent.health_check()
                if not agent.config.auto_restart or agent.agent_id in self._parked:
                    continue
                busy_since = status.get("busy_since")
                if agent.state in (AgentState.ERROR, AgentState.STOPPED):
                    logger.warning("restarting_failed_agent", agent=agent.name, state=agent.state.value)
                elif agent.state is AgentState.BUSY and busy_since and now - busy_since > self.settings.stuck_after:
                    logger.warning("restarting_stuck_agent", agent=agent.name, busy_for=round(now - busy_since, 1))
                else:
                    continue
                if await self.restart_agent(agent.agent_id):
                    restarted.append(agent.name)
        return restarted

    # Autonomy

    def is_autonomy_enabled(self) -> bool:
        return self._autonomy_enabled and not self._emergency_disabled

    @property
    def emergency_disabled(self) -> bool:
        return self._emergency_disabled

    async def toggle_autonomy(self, enabled: bool, reason: str = "", user: str = "system") -> int:
        """Switch autonomy; disabling purges autonomous tasks. Returns how many were purged."""
        if enabled and self._emergency_disabled:
            raise AutonomyLockedError("Autonomy is emergency-disabled; reset the emergency lock first")

        was_enabled = self._autonomy_enabled
        self._autonomy_enabled = enabled
        await self._persist_autonomy(user)
        logger.info("autonomy_toggled", enabled=enabled, user=user, reason=reason)

        change = {"enabled": enabled, "reason": reason, "user": user}
        for agent in self._agents.values():
            agent.events.emit(events.AUTONOMY_CHANGED, change)
        self.events.emit(events.AUTONOMY_TOGGLED, {**change, "was_enabled": was_enabled})

        if not enabled:
            return self.pause_autonomous_actions()
        return 0

    async def emergency_disable(self, reason: str = "Emergency stop") -> int:
        """Disable autonomy until :meth:`reset_emergency` is called."""
        logger.critical("emergency_autonomy_disable", reason=reason)
        self._emergency_disabled = True
        self._autonomy_enabled = False
        await self._persist_autonomy("EMERGENCY_SYSTEM")
        removed = self.pause_autonomous_actions()
        self.events.emit(events.EMERGENCY_DISABLE, {"reason": reason, "removed_tasks": removed})
        return removed

    async def reset_emergency(self, user: str = "system") -> None:
        self._emergency_disabled = False
        await self._persist_autonomy(user)
        logger.warning("emergency_lock_reset", user=user)

    def pause_autonomous_actions(self) -> int:
        removed = self._task_queue.remove_if(lambda task: task.autonomous)
        if removed:
            logger.info("autonomous_tasks_purged", removed=removed)
        return removed

    async def _load_autonomy(self) -> None:
        stored = await load_autonomy(self.settings.autonomy_path)
        if stored is None:
            return
        self._emergency_disabled = stored.emergency_disable
        self._autonomy_enabled = stored.enabled and not stored.emergency_disable
        if stored.confidence_threshold is not None:
            self.decision_threshold = stored.confidence_threshold

    async def _persist_autonomy(self, user: str) -> None:
        state = AutonomyFile(
            enabled=self._autonomy_enabled,
            emergency_disable=self._emergency_disabled,
            confidence_threshold=self.decision_threshold,
            last_toggled=datetime.now(timezone.utc),
            toggled_by=user,
        )
        try:
            await save_autonomy(self.settings.autonomy_path, state)
        except OSError as exc:
            logger.error("autonomy_save_failed", error=str(exc))

    # Status

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self._running,
            "agents": [agent.name for agent in self._agents.values()],
            "assignments": {self._agent_name(aid): task_id for aid, task_id in self._assignments.items()},
            "queue_length": self._task_queue.size(),
            "pending_decisions": len(self._pending_decisions),
            "metrics": self.metrics.as_dict(),
            "knowledge_size": len(self.knowledge),
            "autonomy_enabled": self.is_autonomy_enabled(),
            "emergency_disabled": self._emergency_disabled,
            "decision_threshold": self.decision_threshold,
            "uptime": time.time() - self._started_at,
        }
