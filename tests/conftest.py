"""Shared fixtures: application config and an app client."""

from typing import Annotated

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from finagent.configs.config import AppConfig, get_app_config
from finagent.core.llm import ProviderRegistry, build_providers
from finagent.infra.lifespan import get_app


@pytest.fixture
def app_config() -> AppConfig:
    config = get_app_config()
    config.third_party.redis_uri = ""
    return config


@pytest.fixture
def make_client(app_config):
    """Build a ``TestClient`` over the shared app with a given registry.

    Only the module-level app is used; a second ``get_app()`` would
    register the Prometheus collectors twice.
    """
    from finagent.app import app

    opened: list[TestClient] = []

    def factory(registry: ProviderRegistry, config: AppConfig | None = None):
        cfg = config or app_config

        async def fake_providers(
            app: Annotated[FastAPI, Depends(get_app)],
        ):
            app.state.provider_registry = registry
            yield registry

        app.dependency_overrides[get_app_config] = lambda: cfg
        app.dependency_overrides[build_providers] = fake_providers
        client = TestClient(app)
        client.__enter__()
        opened.append(client)
        return client

    yield factory

    for client in opened:
        client.__exit__(None, None, None)
    app.dependency_overrides.clear()
