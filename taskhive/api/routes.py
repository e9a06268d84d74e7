"""HTTP API exposing agent management."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from taskhive.core.models import AgentConfig, AgentDescriptor
from taskhive.orchestration.orchestrator import Orchestrator
from taskhive.runtime import get_orchestrator

router = APIRouter(prefix="/agents", tags=["agents"])


class AgentCreateRequest(BaseModel):
    name: str = Field(..., description="Unique agent name")
    role: str = Field(..., description="Catalog role to instantiate")
    capabilities: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    auto_restart: bool = True


class AgentResponse(BaseModel):
    agent_id: str
    name: str
    role: str
    state: str
    health: str
    capabilities: List[str]
    tasks_processed: int
    success_rate: float
    last_error: Optional[str]

    @classmethod
    def from_descriptor(cls, descriptor: AgentDescriptor) -> "AgentResponse":
        return cls(
            agent_id=descriptor.agent_id,
            name=descriptor.name,
            role=descriptor.config.role,
            state=descriptor.state.value,
            health=descriptor.health.value,
            capabilities=list(descriptor.config.capabilities),
            tasks_processed=descriptor.metrics.tasks_processed,
            success_rate=descriptor.metrics.success_rate,
            last_error=descriptor.last_error,
        )


def _require_agent(orchestrator: Orchestrator, agent_id: str) -> AgentDescriptor:
    descriptor = orchestrator.get_agent(agent_id)
    if descriptor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown agent")
    return descriptor


@router.post("", response_model=AgentResponse, status_code=status.HTTP_201_CREATED)
async def create_agent(
    request: AgentCreateRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> AgentResponse:
    config = AgentConfig(
        role=request.role,
        capabilities=request.capabilities,
        metadata=request.metadata,
        auto_restart=request.auto_restart,
    )
    try:
        descriptor = await orchestrator.register_agent(request.name, config)
    except KeyError as exc:
        detail = exc.args[0] if exc.args else str(exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return AgentResponse.from_descriptor(descriptor)


@router.get("", response_model=List[AgentResponse])
async def list_agents(orchestrator: Orchestrator = Depends(get_orchestrator)) -> List[AgentResponse]:
    return [AgentResponse.from_descriptor(desc) for desc in orchestrator.list_agents()]


@router.get("/{agent_id}")
async def get_agent(agent_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    agent = orchestrator.get_agent_instance(agent_id)
    if agent is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown agent")
    return await agent.health_check()


@router.delete("/{agent_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agent(agent_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)) -> None:
    _require_agent(orchestrator, agent_id)
    await orchestrator.unregister_agent(agent_id)


@router.post("/{agent_id}/restart", response_model=AgentResponse)
async def restart_agent(agent_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)) -> AgentResponse:
    descriptor = _require_agent(orchestrator, agent_id)
    if not await orchestrator.restart_agent(agent_id):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=descriptor.last_error or "Restart failed",
        )
    return AgentResponse.from_descriptor(descriptor)
