"""Centralized FastAPI dependency type aliases.

Route modules import these ``*Dep`` aliases instead of writing
``Annotated[T, Depends(get_xxx)]`` everywhere.  Tests override the
underlying ``get_*`` factories through ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends

from finagent.configs.config import AppConfig, get_app_config
from finagent.core.llm import ProviderRegistry, get_provider_registry
from finagent.core.relay import StreamHub, StreamRelay, get_stream_hub, get_stream_relay
from finagent.core.service.deps import get_orchestrator
from finagent.core.service.orchestrator import CompletionOrchestrator
from finagent.infra.concurrency import UserLock, get_user_lock

AppConfigDep = Annotated[AppConfig, Depends(get_app_config)]
OrchestratorDep = Annotated[CompletionOrchestrator, Depends(get_orchestrator)]
ProviderRegistryDep = Annotated[ProviderRegistry, Depends(get_provider_registry)]
StreamRelayDep = Annotated[StreamRelay, Depends(get_stream_relay)]
StreamHubDep = Annotated[StreamHub, Depends(get_stream_hub)]
UserLockDep = Annotated[UserLock, Depends(get_user_lock)]
