"""Structured logging configuration with structlog.

Call :func:`configure_structlog` once at application startup, then use
``structlog.get_logger(__name__)`` everywhere::

    log = structlog.get_logger(__name__)
    log.info("agent_started", agent="worker-1")
"""
from __future__ import annotations

import logging
from typing import List

import structlog
from structlog.typing import Processor


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def configure_structlog(environment: str = "development", log_level: str = "INFO") -> None:
    """Configure structlog: JSON lines in production, coloured console output otherwise."""
    shared_processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if environment == "production":
        final_processor: Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(_level(log_level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
