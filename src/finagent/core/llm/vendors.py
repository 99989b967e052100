"""Factories for the two supported vendors.

* **groq**: fast low-latency provider behind an OpenAI-compatible
  endpoint, driven through ``ChatOpenAI`` with a custom ``base_url``.
* **azure**: Azure OpenAI deployment (``api-key`` header, deployment
  name, versioned ``api-version`` query parameter).

Factories only construct client objects; no request is sent until the
orchestrator calls the adapter.
"""

from collections.abc import Callable
from typing import Any

from langchain_openai import AzureChatOpenAI, ChatOpenAI

from finagent.configs.system import AzureOpenAIConfig, GroqConfig, LLMConfig
from finagent.core.service.models import (
    PROVIDER_AZURE,
    PROVIDER_GROQ,
    PROVIDER_ROLES,
)

from .base import ProviderAdapter
from .chat_model import ChatModelAdapter

ProviderFactory = Callable[[Any, LLMConfig], ProviderAdapter]


def build_groq_adapter(config: GroqConfig, llm: LLMConfig) -> ProviderAdapter:
    model = ChatOpenAI(
        base_url=config.base_url,
        api_key=config.api_key,
        model=config.chat_model,
        temperature=llm.temperature,
        max_tokens=llm.max_tokens,
        timeout=llm.model_timeout.total_seconds(),
        max_retries=llm.max_retries,
        stream_usage=True,
    )
    return ChatModelAdapter(
        model,
        name=PROVIDER_GROQ,
        role=PROVIDER_ROLES[PROVIDER_GROQ],
        model_name=config.chat_model,
    )


def build_azure_adapter(config: AzureOpenAIConfig, llm: LLMConfig) -> ProviderAdapter:
    model = AzureChatOpenAI(
        azure_endpoint=config.endpoint,
        api_key=config.api_key,
        azure_deployment=config.deployment_name,
        api_version=config.api_version,
        temperature=llm.temperature,
        max_tokens=llm.max_tokens,
        timeout=llm.model_timeout.total_seconds(),
        max_retries=llm.max_retries,
        stream_usage=True,
    )
    return ChatModelAdapter(
        model,
        name=PROVIDER_AZURE,
        role=PROVIDER_ROLES[PROVIDER_AZURE],
        model_name=config.deployment_name,
    )


DEFAULT_FACTORIES: dict[str, ProviderFactory] = {
    PROVIDER_GROQ: build_groq_adapter,
    PROVIDER_AZURE: build_azure_adapter,
}
