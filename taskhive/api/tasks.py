"""HTTP API for submitting work to the orchestrator queue."""
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from taskhive.core.models import Task
from taskhive.orchestration.orchestrator import Orchestrator
from taskhive.runtime import get_orchestrator

router = APIRouter(prefix="/tasks", tags=["tasks"])


class TaskRequest(BaseModel):
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(5, description="Higher runs first")
    required_capabilities: List[str] = Field(default_factory=list)


class TaskResponse(BaseModel):
    task_id: str
    priority: int
    required_capabilities: List[str]
    autonomous: bool
    created_at: float
    payload: Dict[str, Any]

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(
            task_id=task.task_id,
            priority=task.priority,
            required_capabilities=list(task.required_capabilities),
            autonomous=task.autonomous,
            created_at=task.created_at,
            payload=task.payload,
        )


@router.post("", response_model=TaskResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_task(
    request: TaskRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> TaskResponse:
    task = orchestrator.queue_task(
        request.payload,
        priority=request.priority,
        required_capabilities=request.required_capabilities,
    )
    return TaskResponse.from_task(task)


@router.get("", response_model=List[TaskResponse])
async def list_tasks(orchestrator: Orchestrator = Depends(get_orchestrator)) -> List[TaskResponse]:
    return [TaskResponse.from_task(task) for task in orchestrator.queued_tasks()]
