"""FastAPI application entry point.

Run with ``uvicorn finagent.app:app``.
"""

import logging
from typing import Annotated

from fastapi import Depends, FastAPI

from finagent.api.chat import router as chat_router
from finagent.api.exceptions import register_exception_handlers
from finagent.api.health import SERVICE_VERSION
from finagent.api.health import router as health_router
from finagent.configs.config import get_app_config
from finagent.core.relay import StreamRelay, build_relay
from finagent.core.service.deps import build_orchestrator
from finagent.core.service.metrics import setup_metrics
from finagent.core.service.orchestrator import CompletionOrchestrator
from finagent.infra.concurrency import UserLock, build_user_lock
from finagent.infra.lifespan import inject
from finagent.infra.logging import setup_logging
from finagent.infra.telemetry import build_telemetry, init_telemetry

logger = logging.getLogger(__name__)


@inject
async def lifespan(
    app: FastAPI,
    _telemetry: Annotated[None, Depends(build_telemetry)],
    orchestrator: Annotated[CompletionOrchestrator, Depends(build_orchestrator)],
    _relay: Annotated[StreamRelay, Depends(build_relay)],
    _user_lock: Annotated[UserLock, Depends(build_user_lock)],
):
    """Build providers, relay and user lock; tear them down on shutdown."""
    logger.info(
        "finagent started (providers: %s)",
        ", ".join(sorted(orchestrator.registry.available_names)) or "none",
    )
    yield
    logger.info("finagent shutting down")


def get_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    config = get_app_config()
    setup_logging(config.logging)

    app = FastAPI(
        title="finagent",
        description="LLM provider failover and token streaming backend",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )

    # Middleware and handlers must exist before the app starts.
    register_exception_handlers(app)
    setup_metrics(app, config.tracing)
    init_telemetry(app, config.tracing)

    app.include_router(chat_router)
    app.include_router(health_router)

    return app


app = get_app()
