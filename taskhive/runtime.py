"""Application runtime composition helpers."""
from __future__ import annotations

from functools import lru_cache
from typing import Dict, Type

from taskhive.agents.base import Agent
from taskhive.agents.echo import EchoAgent
from taskhive.agents.learner import LearnerAgent
from taskhive.config import Config
from taskhive.core.message_bus import A2AMessageBus
from taskhive.core.models import AgentConfig
from taskhive.orchestration.knowledge import KnowledgeBase
from taskhive.orchestration.orchestrator import Orchestrator

_AGENT_CATALOG: Dict[str, Type[Agent]] = {
    "echo": EchoAgent,
    "learner": LearnerAgent,
}


@lru_cache
def get_config() -> Config:
    return Config.from_env()


@lru_cache
def get_bus() -> A2AMessageBus:
    return A2AMessageBus()


@lru_cache
def get_knowledge_base() -> KnowledgeBase:
    settings = get_config().orchestrator
    return KnowledgeBase(settings.knowledge_path, history_limit=settings.history_limit)


@lru_cache
def get_orchestrator() -> Orchestrator:
    return Orchestrator(
        bus=get_bus(),
        agent_catalog=_AGENT_CATALOG,
        settings=get_config().orchestrator,
        knowledge_base=get_knowledge_base(),
    )


def available_roles() -> list[str]:
    return sorted(_AGENT_CATALOG)


def default_agent_config(role: str = "echo") -> AgentConfig:
    return AgentConfig(role=role, capabilities=[role])
