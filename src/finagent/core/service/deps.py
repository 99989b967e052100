"""FastAPI dependency factories for the completion service.

``build_orchestrator`` runs once in the lifespan and stores the
orchestrator on ``app.state``; ``get_orchestrator`` reads it back per
request, so handlers receive it by injection rather than via a module
global.
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, FastAPI, Request

from finagent.core.llm import ProviderRegistry, build_providers
from finagent.infra.lifespan import get_app

from .orchestrator import CompletionOrchestrator


async def build_orchestrator(
    app: Annotated[FastAPI, Depends(get_app)],
    registry: Annotated[ProviderRegistry, Depends(build_providers)],
) -> AsyncGenerator[CompletionOrchestrator, None]:
    orchestrator = CompletionOrchestrator(registry)
    app.state.orchestrator = orchestrator
    yield orchestrator


def get_orchestrator(request: Request) -> CompletionOrchestrator:
    """Return the ``CompletionOrchestrator`` from ``app.state``."""
    return request.app.state.orchestrator
