"""Decision, knowledge and system-state models used by the orchestrator."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field

from taskhive.core.models import new_id


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(slots=True)
class Issue:
    type: str
    severity: Severity
    detail: str = ""


@dataclass(slots=True)
class Opportunity:
    type: str
    action: str


@dataclass(slots=True)
class SystemState:
    """Snapshot produced by each monitoring cycle."""

    queue_depth: int
    running: int
    success_rate: float
    agents: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    issues: List[Issue] = field(default_factory=list)
    opportunities: List[Opportunity] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    def has_high_severity_issue(self) -> bool:
        return any(issue.severity is Severity.HIGH for issue in self.issues)


class DecisionStatus(str, Enum):
    PENDING = "pending"
    EXECUTED = "executed"
    REJECTED = "rejected"
    EXPIRED = "expired"


@dataclass(slots=True)
class DecisionAction:
    type: str
    target: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Decision:
    """An autonomous action proposal and, once executed, its outcome."""

    fingerprint: str
    confidence: float
    actions: List[DecisionAction] = field(default_factory=list)
    context: Optional[SystemState] = None
    autonomous: bool = True
    status: DecisionStatus = DecisionStatus.PENDING
    success: Optional[bool] = None
    error: Optional[str] = None
    decision_id: str = field(default_factory=new_id)
    created_at: float = field(default_factory=time.time)

    def to_record(self) -> "DecisionRecord":
        return DecisionRecord(
            decision_id=self.decision_id,
            fingerprint=self.fingerprint,
            confidence=self.confidence,
            actions=[{"type": a.type, "target": a.target} for a in self.actions],
            autonomous=self.autonomous,
            status=self.status,
            success=self.success,
            error=self.error,
            created_at=self.created_at,
        )


class DecisionRecord(BaseModel):
    """Persisted form of a decision in the bounded history."""

    decision_id: str
    fingerprint: str
    confidence: float = Field(ge=0.0, le=1.0)
    actions: List[Dict[str, str]] = Field(default_factory=list)
    autonomous: bool = True
    status: DecisionStatus = DecisionStatus.PENDING
    success: Optional[bool] = None
    error: Optional[str] = None
    created_at: float


class KnowledgeEntry(BaseModel):
    """Outcome statistics for one context fingerprint."""

    occurrences: int = 0
    successes: int = 0
    failures: int = 0
    avg_confidence: float = 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_rate(self) -> float:
        if self.occurrences == 0:
            return 0.0
        return self.successes / self.occurrences

    def record(self, success: bool, confidence: float) -> None:
        self.occurrences += 1
        if success:
            self.successes += 1
        else:
            self.failures += 1
        self.avg_confidence += (confidence - self.avg_confidence) / self.occurrences


class KnowledgeSnapshot(BaseModel):
    """On-disk layout of the knowledge base."""

    knowledge: Dict[str, KnowledgeEntry] = Field(default_factory=dict)
    decision_history: List[DecisionRecord] = Field(default_factory=list)
    last_saved: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AutonomyFile(BaseModel):
    """Persisted autonomy switch, shared across restarts."""

    enabled: bool = False
    emergency_disable: bool = False
    confidence_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    last_toggled: Optional[datetime] = None
    toggled_by: Optional[str] = None
