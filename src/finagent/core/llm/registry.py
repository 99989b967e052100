"""Provider availability resolution.

``resolve_providers`` is called once at startup.  It checks that each
known provider's credentials are non-empty, builds an adapter for every
configured provider and records why the others are unavailable.  It
never raises and never touches the network: a provider whose client
cannot even be constructed is simply reported as unavailable, and an
empty registry is a valid (degraded) result that only turns into an
error when a completion is requested.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from finagent.configs.system import LLMConfig, ProvidersConfig
from finagent.core.service.models import PROVIDER_MOCK, PROVIDER_ROLES

from .base import ProviderAdapter, ProviderUnavailable
from .chat_model import describe_failure
from .mock import MockAdapter
from .vendors import DEFAULT_FACTORIES, ProviderFactory

logger = logging.getLogger(__name__)

# Resolution and fallback order when nothing else is configured.
KNOWN_PROVIDERS: tuple[str, ...] = ("groq", "azure")


def remediation_hint(missing_keys: Sequence[str]) -> str:
    """Operator-facing hint naming the environment keys to set."""
    hint = (
        "Set GROQ_API_KEY, or AZURE_OPENAI_API_KEY and AZURE_OPENAI_ENDPOINT, "
        "to enable AI responses."
    )
    if missing_keys:
        return f"Missing configuration: {', '.join(missing_keys)}. {hint}"
    return hint


@dataclass(frozen=True)
class ProviderStatus:
    """Readiness of one provider as seen at startup."""

    name: str
    role: str
    ready: bool
    model: str | None = None
    missing_keys: tuple[str, ...] = ()
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "role": self.role, "ready": self.ready}
        if self.model:
            data["model"] = self.model
        if self.missing_keys:
            data["missingKeys"] = list(self.missing_keys)
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ProviderRegistry:
    """Adapters usable by the orchestrator plus the readiness report.

    Built once and treated as read-only afterwards.
    """

    adapters: dict[str, ProviderAdapter]
    statuses: tuple[ProviderStatus, ...]
    primary_provider: str = "groq"
    streaming_router: str = "azure"

    @property
    def available(self) -> tuple[ProviderAdapter, ...]:
        return tuple(self.adapters[name] for name in self._names_in_order())

    @property
    def available_names(self) -> frozenset[str]:
        return frozenset(self.adapters)

    def _names_in_order(self) -> list[str]:
        names = [name for name in KNOWN_PROVIDERS if name in self.adapters]
        names.extend(name for name in self.adapters if name not in names)
        return names

    def missing_keys(self) -> list[str]:
        keys: list[str] = []
        for status in self.statuses:
            keys.extend(k for k in status.missing_keys if k not in keys)
        return keys

    def ordered(self, streaming: bool) -> list[ProviderAdapter]:
        """Adapters in attempt order for the given path.

        Non-streaming starts with ``primary_provider``; streaming starts
        with ``streaming_router``.  Remaining adapters follow in
        resolution order.
        """
        first = self.streaming_router if streaming else self.primary_provider
        names = self._names_in_order()
        if first in names:
            names.remove(first)
            names.insert(0, first)
        return [self.adapters[name] for name in names]

    def readiness(self) -> dict[str, Any]:
        return {
            "ready": bool(self.adapters),
            "primary": self.primary_provider,
            "streamingRouter": self.streaming_router,
            "providers": [status.to_dict() for status in self.statuses],
        }

    def summary(self) -> str:
        parts = []
        for status in self.statuses:
            if status.ready:
                parts.append(f"{status.name}: ready ({status.model})")
            elif status.missing_keys:
                parts.append(f"{status.name}: missing {', '.join(status.missing_keys)}")
            else:
                parts.append(f"{status.name}: failed ({status.error})")
        return "; ".join(parts)


def _resolve_one(
    name: str,
    vendor_config: Any,
    llm_config: LLMConfig,
    factory: ProviderFactory | None,
) -> tuple[ProviderAdapter | None, ProviderStatus]:
    role = PROVIDER_ROLES.get(name, "fallback")
    try:
        missing = vendor_config.missing_keys()
        if missing:
            raise ProviderUnavailable(name, missing)
        if factory is None:
            raise ValueError(f"no adapter factory registered for {name!r}")
        adapter = factory(vendor_config, llm_config)
    except ProviderUnavailable as exc:
        return None, ProviderStatus(
            name=name, role=role, ready=False, missing_keys=tuple(exc.missing_keys)
        )
    except Exception as exc:
        logger.warning("Failed to construct %s adapter.", name, exc_info=True)
        return None, ProviderStatus(
            name=name, role=role, ready=False, error=describe_failure(exc)
        )
    return adapter, ProviderStatus(
        name=name, role=role, ready=True, model=adapter.model_name
    )


def resolve_providers(
    providers_config: ProvidersConfig,
    llm_config: LLMConfig,
    *,
    factories: Mapping[str, ProviderFactory] | None = None,
    persona_prompts: Mapping[str, str] | None = None,
) -> ProviderRegistry:
    """Build a ``ProviderRegistry`` from configuration.  Never raises.

    Parameters
    ----------
    providers_config:
        Credentials and endpoints per provider.
    llm_config:
        Ordering, sampling constants and the mock switch.
    factories:
        Adapter factories by provider name; defaults to the real vendors.
    persona_prompts:
        Persona prompts, used only to label mock answers.
    """
    factories = DEFAULT_FACTORIES if factories is None else factories

    adapters: dict[str, ProviderAdapter] = {}
    statuses: list[ProviderStatus] = []
    for name in KNOWN_PROVIDERS:
        adapter, status = _resolve_one(
            name,
            getattr(providers_config, name),
            llm_config,
            factories.get(name),
        )
        statuses.append(status)
        if adapter is not None:
            adapters[name] = adapter

    if not adapters and llm_config.allow_mock_provider:
        adapters[PROVIDER_MOCK] = MockAdapter(persona_prompts)
        statuses.append(
            ProviderStatus(
                name=PROVIDER_MOCK,
                role=PROVIDER_ROLES[PROVIDER_MOCK],
                ready=True,
                model=MockAdapter.model_name,
            )
        )

    registry = ProviderRegistry(
        adapters=adapters,
        statuses=tuple(statuses),
        primary_provider=llm_config.primary_provider,
        streaming_router=llm_config.streaming_router,
    )

    if adapters:
        logger.info("LLM providers resolved: %s", registry.summary())
    else:
        logger.error(
            "No LLM provider configured: %s. %s",
            registry.summary(),
            remediation_hint(registry.missing_keys()),
        )
    return registry
