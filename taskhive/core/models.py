"""Core data models shared across agents, the bus and the orchestrator."""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


def new_id() -> str:
    return str(uuid.uuid4())


class AgentState(Enum):
    """Lifecycle states for an agent. Only IDLE agents receive new assignments."""

    UNINITIALIZED = "uninitialized"
    IDLE = "idle"
    BUSY = "busy"
    ERROR = "error"
    STOPPED = "stopped"


class HealthStatus(Enum):
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    STOPPED = "stopped"


class MessageKind(Enum):
    REQUEST = "request"
    RESPONSE = "response"


@dataclass(slots=True)
class AgentConfig:
    """Configuration payload used by the orchestrator when instantiating an agent."""

    role: str
    capabilities: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    auto_restart: bool = True


@dataclass(slots=True)
class AgentMetrics:
    tasks_processed: int = 0
    tasks_succeeded: int = 0
    tasks_failed: int = 0
    average_task_time: float = 0.0
    last_task_time: Optional[float] = None
    start_time: Optional[float] = None
    last_activity_time: Optional[float] = None
    busy_since: Optional[float] = None

    @property
    def success_rate(self) -> float:
        finished = self.tasks_succeeded + self.tasks_failed
        if finished == 0:
            return 0.5
        return self.tasks_succeeded / finished

    def record_duration(self, duration: float) -> None:
        self.tasks_processed += 1
        self.last_task_time = duration
        self.average_task_time += (duration - self.average_task_time) / self.tasks_processed

    def as_dict(self) -> Dict[str, Any]:
        return {
            "tasks_processed": self.tasks_processed,
            "tasks_succeeded": self.tasks_succeeded,
            "tasks_failed": self.tasks_failed,
            "average_task_time": self.average_task_time,
            "last_task_time": self.last_task_time,
            "start_time": self.start_time,
            "last_activity_time": self.last_activity_time,
            "busy_since": self.busy_since,
            "success_rate": self.success_rate,
        }


@dataclass(slots=True)
class AgentDescriptor:
    """Descriptor kept by the orchestrator for each registered agent."""

    agent_id: str
    name: str
    config: AgentConfig
    state: AgentState = AgentState.UNINITIALIZED
    health: HealthStatus = HealthStatus.UNKNOWN
    metrics: AgentMetrics = field(default_factory=AgentMetrics)
    last_error: Optional[str] = None


@dataclass(slots=True)
class A2AMessage:
    """Canonical message exchanged between agents over the A2A bus."""

    sender_id: str
    recipient_id: str
    payload: Any
    kind: MessageKind = MessageKind.REQUEST
    correlation_id: str = field(default_factory=new_id)
    priority: int = 5
    requires_ack: bool = True
    timeout: float = 30.0
    message_id: str = field(default_factory=new_id)
    timestamp: float = field(default_factory=time.time)
    sender_name: Optional[str] = None
    error: Optional[str] = None


@dataclass(slots=True)
class Task:
    """Unit of work queued at the orchestrator until an agent takes it."""

    payload: Dict[str, Any]
    priority: int = 5
    required_capabilities: List[str] = field(default_factory=list)
    autonomous: bool = False
    task_id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)


@dataclass(slots=True)
class TaskResult:
    success: bool
    result: Any = None
    error: Optional[str] = None
