"""Configuration management for the orchestrator."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_path(name: str) -> Optional[Path]:
    value = os.getenv(name)
    return Path(value) if value else None


@dataclass(frozen=True)
class OrchestratorSettings:
    """Tuning knobs for the orchestrator loops, decisions and persistence."""

    max_concurrent_agents: int = 5
    decision_threshold: float = 0.7
    learning_enabled: bool = True
    autonomy_enabled: bool = False
    monitoring_interval: float = 10.0
    decision_interval: float = 5.0
    snapshot_interval: float = 60.0
    stuck_after: float = 300.0
    restart_grace: float = 5.0
    pending_decision_ttl: float = 300.0
    backlog_threshold: int = 10
    min_success_rate: float = 0.8
    history_limit: int = 1000
    knowledge_path: Optional[Path] = None
    autonomy_path: Optional[Path] = None

    @classmethod
    def from_env(cls) -> OrchestratorSettings:
        """Load orchestrator settings from ``TASKHIVE_*`` environment variables."""
        defaults = cls()
        return cls(
            max_concurrent_agents=int(os.getenv("TASKHIVE_MAX_CONCURRENT_AGENTS", defaults.max_concurrent_agents)),
            decision_threshold=float(os.getenv("TASKHIVE_DECISION_THRESHOLD", defaults.decision_threshold)),
            learning_enabled=_env_bool("TASKHIVE_LEARNING_ENABLED", defaults.learning_enabled),
            autonomy_enabled=_env_bool("TASKHIVE_AUTONOMY_ENABLED", defaults.autonomy_enabled),
            monitoring_interval=float(os.getenv("TASKHIVE_MONITORING_INTERVAL", defaults.monitoring_interval)),
            decision_interval=float(os.getenv("TASKHIVE_DECISION_INTERVAL", defaults.decision_interval)),
            snapshot_interval=float(os.getenv("TASKHIVE_SNAPSHOT_INTERVAL", defaults.snapshot_interval)),
            stuck_after=float(os.getenv("TASKHIVE_STUCK_AFTER", defaults.stuck_after)),
            restart_grace=float(os.getenv("TASKHIVE_RESTART_GRACE", defaults.restart_grace)),
            pending_decision_ttl=float(os.getenv("TASKHIVE_PENDING_DECISION_TTL", defaults.pending_decision_ttl)),
            backlog_threshold=int(os.getenv("TASKHIVE_BACKLOG_THRESHOLD", defaults.backlog_threshold)),
            min_success_rate=float(os.getenv("TASKHIVE_MIN_SUCCESS_RATE", defaults.min_success_rate)),
            history_limit=int(os.getenv("TASKHIVE_HISTORY_LIMIT", defaults.history_limit)),
            knowledge_path=_env_path("TASKHIVE_KNOWLEDGE_PATH"),
            autonomy_path=_env_path("TASKHIVE_AUTONOMY_PATH"),
        )


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    orchestrator: OrchestratorSettings = field(default_factory=OrchestratorSettings)
    environment: str = "development"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        return cls(
            orchestrator=OrchestratorSettings.from_env(),
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
