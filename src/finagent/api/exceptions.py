"""Global exception handlers.

Registered from ``get_app()`` rather than the lifespan so they are part
of the middleware stack Starlette builds before startup.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from finagent.core.service.errors import NoProviderConfigured, user_facing_error
from finagent.infra.concurrency import CompletionInProgress

from .models import ErrorResponse

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register the domain exception handlers on ``app``."""

    @app.exception_handler(NoProviderConfigured)
    async def handle_no_provider(
        request: Request, exc: NoProviderConfigured
    ) -> JSONResponse:
        logger.error("Completion failed on %s: %s", request.url.path, exc)
        message, code = user_facing_error(exc)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(message=message, code=code).model_dump(),
        )

    @app.exception_handler(CompletionInProgress)
    async def handle_completion_in_progress(
        request: Request, exc: CompletionInProgress
    ) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content=ErrorResponse(
                message=str(exc), code="COMPLETION_IN_PROGRESS"
            ).model_dump(),
        )
