"""HTTP API controlling autonomous operation and pending decisions."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from taskhive.core.errors import AutonomyLockedError, UnknownDecisionError
from taskhive.orchestration.models import Decision
from taskhive.orchestration.orchestrator import Orchestrator
from taskhive.runtime import get_orchestrator

router = APIRouter(prefix="/autonomy", tags=["autonomy"])
decisions_router = APIRouter(prefix="/decisions", tags=["decisions"])


class AutonomyStatus(BaseModel):
    enabled: bool
    emergency_disabled: bool
    decision_threshold: float
    removed_tasks: int = 0


class ToggleRequest(BaseModel):
    enabled: bool
    reason: str = ""
    user: str = Field("api", description="Who is flipping the switch")


class EmergencyRequest(BaseModel):
    reason: str = "Emergency stop"


class ResetRequest(BaseModel):
    user: str = "api"


class ActionModel(BaseModel):
    type: str
    target: str


class DecisionResponse(BaseModel):
    decision_id: str
    fingerprint: str
    confidence: float
    status: str
    autonomous: bool
    success: Optional[bool]
    error: Optional[str]
    created_at: float
    actions: List[ActionModel]

    @classmethod
    def from_decision(cls, decision: Decision) -> "DecisionResponse":
        return cls(
            decision_id=decision.decision_id,
            fingerprint=decision.fingerprint,
            confidence=decision.confidence,
            status=decision.status.value,
            autonomous=decision.autonomous,
            success=decision.success,
            error=decision.error,
            created_at=decision.created_at,
            actions=[ActionModel(type=action.type, target=action.target) for action in decision.actions],
        )


def _status(orchestrator: Orchestrator, removed: int = 0) -> AutonomyStatus:
    return AutonomyStatus(
        enabled=orchestrator.is_autonomy_enabled(),
        emergency_disabled=orchestrator.emergency_disabled,
        decision_threshold=orchestrator.decision_threshold,
        removed_tasks=removed,
    )


@router.get("", response_model=AutonomyStatus)
async def autonomy_status(orchestrator: Orchestrator = Depends(get_orchestrator)) -> AutonomyStatus:
    return _status(orchestrator)


@router.post("/toggle", response_model=AutonomyStatus)
async def toggle_autonomy(
    request: ToggleRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> AutonomyStatus:
    try:
        removed = await orchestrator.toggle_autonomy(request.enabled, request.reason, request.user)
    except AutonomyLockedError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _status(orchestrator, removed)


@router.post("/emergency-disable", response_model=AutonomyStatus)
async def emergency_disable(
    request: EmergencyRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> AutonomyStatus:
    removed = await orchestrator.emergency_disable(request.reason)
    return _status(orchestrator, removed)


@router.post("/reset", response_model=AutonomyStatus)
async def reset_emergency(
    request: ResetRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> AutonomyStatus:
    await orchestrator.reset_emergency(request.user)
    return _status(orchestrator)


@decisions_router.get("", response_model=List[DecisionResponse])
async def pending_decisions(orchestrator: Orchestrator = Depends(get_orchestrator)) -> List[DecisionResponse]:
    return [DecisionResponse.from_decision(decision) for decision in orchestrator.pending_decisions()]


@decisions_router.post("/{decision_id}/approve", response_model=DecisionResponse)
async def approve_decision(
    decision_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> DecisionResponse:
    try:
        decision = await orchestrator.approve_decision(decision_id)
    except UnknownDecisionError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown decision") from exc
    return DecisionResponse.from_decision(decision)


@decisions_router.post("/{decision_id}/reject", response_model=DecisionResponse)
async def reject_decision(
    decision_id: str,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> DecisionResponse:
    try:
        decision = orchestrator.reject_decision(decision_id)
    except UnknownDecisionError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown decision") from exc
    return DecisionResponse.from_decision(decision)
