"""Tests for provider availability resolution."""

import logging

from finagent.configs.system import (
    AzureOpenAIConfig,
    GroqConfig,
    LLMConfig,
    ProvidersConfig,
)
from finagent.core.llm import MockAdapter, resolve_providers
from fakes import ScriptedAdapter


def _providers(groq_key: str = "", azure_key: str = "", azure_endpoint: str = ""):
    return ProvidersConfig(
        groq=GroqConfig(api_key=groq_key),
        azure=AzureOpenAIConfig(api_key=azure_key, endpoint=azure_endpoint),
    )


def _fake_factories(calls: list[str]):
    def factory_for(name):
        def build(config, llm):
            calls.append(name)
            return ScriptedAdapter(name, "ok")

        return build

    return {"groq": factory_for("groq"), "azure": factory_for("azure")}


class TestResolveProviders:
    def test_no_credentials_gives_empty_registry(self, caplog):
        calls: list[str] = []
        with caplog.at_level(logging.ERROR):
            registry = resolve_providers(
                _providers(), LLMConfig(), factories=_fake_factories(calls)
            )

        assert registry.available == ()
        assert calls == []
        assert registry.missing_keys() == [
            "GROQ_API_KEY",
            "AZURE_OPENAI_API_KEY",
            "AZURE_OPENAI_ENDPOINT",
        ]
        assert "GROQ_API_KEY" in caplog.text

    def test_resolution_is_idempotent(self):
        calls: list[str] = []
        providers = _providers(groq_key="gsk", azure_key="k")

        first = resolve_providers(providers, LLMConfig(), factories=_fake_factories(calls))
        second = resolve_providers(providers, LLMConfig(), factories=_fake_factories(calls))

        assert first.available_names == second.available_names == frozenset({"groq"})
        assert first.statuses == second.statuses
        assert first.missing_keys() == second.missing_keys()
        assert [a.name for a in first.ordered(True)] == [
            a.name for a in second.ordered(True)
        ]

    def test_only_configured_providers_are_built(self):
        calls: list[str] = []
        registry = resolve_providers(
            _providers(groq_key="gsk"), LLMConfig(), factories=_fake_factories(calls)
        )

        assert calls == ["groq"]
        assert registry.available_names == frozenset({"groq"})
        statuses = {s.name: s for s in registry.statuses}
        assert statuses["groq"].ready
        assert statuses["azure"].missing_keys == (
            "AZURE_OPENAI_API_KEY",
            "AZURE_OPENAI_ENDPOINT",
        )

    def test_azure_needs_both_key_and_endpoint(self):
        calls: list[str] = []
        registry = resolve_providers(
            _providers(azure_key="k"), LLMConfig(), factories=_fake_factories(calls)
        )

        assert calls == []
        assert registry.missing_keys() == ["GROQ_API_KEY", "AZURE_OPENAI_ENDPOINT"]

    def test_whitespace_key_counts_as_missing(self):
        registry = resolve_providers(
            _providers(groq_key="   "), LLMConfig(), factories=_fake_factories([])
        )
        assert "groq" not in registry.available_names

    def test_construction_failure_marks_provider_unavailable(self):
        def broken(config, llm):
            raise ValueError("bad endpoint")

        registry = resolve_providers(
            _providers(groq_key="gsk", azure_key="k", azure_endpoint="https://x"),
            LLMConfig(),
            factories={"groq": broken, "azure": _fake_factories([])["azure"]},
        )

        assert registry.available_names == frozenset({"azure"})
        groq = next(s for s in registry.statuses if s.name == "groq")
        assert not groq.ready
        assert groq.error == "ValueError"

    def test_mock_only_when_allowed_and_nothing_configured(self):
        registry = resolve_providers(
            _providers(),
            LLMConfig(allow_mock_provider=True),
            factories=_fake_factories([]),
        )
        assert [a.name for a in registry.available] == ["mock"]
        assert isinstance(registry.available[0], MockAdapter)

        registry = resolve_providers(
            _providers(groq_key="gsk"),
            LLMConfig(allow_mock_provider=True),
            factories=_fake_factories([]),
        )
        assert "mock" not in registry.available_names

    def test_real_vendor_factories_build_without_network(self):
        registry = resolve_providers(
            _providers(groq_key="gsk", azure_key="k", azure_endpoint="https://x.openai.azure.com"),
            LLMConfig(),
        )

        assert registry.available_names == frozenset({"groq", "azure"})
        groq = registry.adapters["groq"]
        assert groq.role == "primary"
        assert groq.model_name == "llama-3.3-70b-versatile"
        assert registry.adapters["azure"].model_name == "model-router"


class TestProviderOrdering:
    def _registry(self, **llm):
        return resolve_providers(
            _providers(groq_key="gsk", azure_key="k", azure_endpoint="https://x"),
            LLMConfig(**llm),
            factories=_fake_factories([]),
        )

    def test_default_orders(self):
        registry = self._registry()

        assert [a.name for a in registry.ordered(streaming=False)] == ["groq", "azure"]
        assert [a.name for a in registry.ordered(streaming=True)] == ["azure", "groq"]

    def test_same_router_unifies_order(self):
        registry = self._registry(streaming_router="groq")

        assert [a.name for a in registry.ordered(streaming=True)] == ["groq", "azure"]

    def test_readiness_report(self):
        registry = self._registry()
        report = registry.readiness()

        assert report["ready"] is True
        assert report["primary"] == "groq"
        assert report["streamingRouter"] == "azure"
        assert {p["name"] for p in report["providers"]} == {"groq", "azure"}

    def test_readiness_lists_missing_keys(self):
        registry = resolve_providers(_providers(), LLMConfig(), factories={})
        report = registry.readiness()

        assert report["ready"] is False
        groq = next(p for p in report["providers"] if p["name"] == "groq")
        assert groq["missingKeys"] == ["GROQ_API_KEY"]
