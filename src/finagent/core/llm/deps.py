"""Lifespan and request dependencies for the provider registry."""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, FastAPI, Request

from finagent.configs.config import AppConfig, get_app_config
from finagent.infra.lifespan import get_app

from .registry import ProviderRegistry, resolve_providers

logger = logging.getLogger(__name__)


async def build_providers(
    app: Annotated[FastAPI, Depends(get_app)],
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> AsyncGenerator[ProviderRegistry, None]:
    """Resolve providers once per process and attach them to ``app.state``."""
    registry = resolve_providers(
        config.providers,
        config.llm,
        persona_prompts=config.persona.prompts,
    )
    app.state.provider_registry = registry
    yield registry


def get_provider_registry(request: Request) -> ProviderRegistry:
    """Return the ``ProviderRegistry`` from ``app.state``."""
    return request.app.state.provider_registry
