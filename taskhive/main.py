"""FastAPI entry-point exposing orchestrator controls."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import Depends, FastAPI

from taskhive.api.autonomy import decisions_router
from taskhive.api.autonomy import router as autonomy_router
from taskhive.api.routes import router as agents_router
from taskhive.api.tasks import router as tasks_router
from taskhive.observability import configure_structlog
from taskhive.orchestration.orchestrator import Orchestrator
from taskhive.runtime import get_bus, get_config, get_orchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the orchestrator loops on startup and stop every agent on shutdown."""
    config = get_config()
    configure_structlog(config.environment, config.log_level)
    orchestrator = get_orchestrator()
    await orchestrator.initialize()
    await orchestrator.start()
    yield
    await orchestrator.shutdown()
    await get_bus().shutdown()


app = FastAPI(title="TaskHive Orchestrator", lifespan=lifespan)
app.include_router(agents_router)
app.include_router(tasks_router)
app.include_router(autonomy_router)
app.include_router(decisions_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/status")
async def orchestrator_status(orchestrator: Orchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return orchestrator.get_status()
