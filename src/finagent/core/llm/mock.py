"""Canned provider used for demos when no real provider is configured."""

import re
from collections.abc import AsyncIterator, Mapping, Sequence

from finagent.configs.persona import DEFAULT_PERSONA
from finagent.core.service.models import (
    PROVIDER_MOCK,
    PROVIDER_ROLE_MOCK,
    ChatMessage,
)

from .base import ProviderAdapter, ProviderChunk, ProviderReply

MOCK_MODEL = "none"

_WORDS = re.compile(r"\S+\s*")


class MockAdapter(ProviderAdapter):
    """Deterministic echo naming the persona and how to enable real answers.

    The persona is recovered from the leading system prompt, since
    adapters only ever see the assembled message list.
    """

    name = PROVIDER_MOCK
    role = PROVIDER_ROLE_MOCK
    model_name = MOCK_MODEL

    def __init__(self, persona_prompts: Mapping[str, str] | None = None) -> None:
        self._persona_by_prompt = {
            prompt: persona for persona, prompt in (persona_prompts or {}).items()
        }

    def _answer(self, messages: Sequence[ChatMessage]) -> str:
        persona = DEFAULT_PERSONA
        if messages and messages[0].role == "system":
            persona = self._persona_by_prompt.get(messages[0].content, DEFAULT_PERSONA)
        question = next(
            (m.content for m in reversed(messages) if m.role == "user"), ""
        )
        return (
            f"[{persona.upper()} ASSISTANT]\n\n"
            f'I\'m responding to your message: "{question}"\n\n'
            "To enable AI responses, please configure an LLM provider "
            "(Groq or Azure OpenAI) in your environment variables."
        )

    async def complete(self, messages: Sequence[ChatMessage]) -> ProviderReply:
        return ProviderReply(content=self._answer(messages), tokens_used=0)

    async def stream(
        self, messages: Sequence[ChatMessage]
    ) -> AsyncIterator[ProviderChunk]:
        for word in _WORDS.findall(self._answer(messages)):
            yield ProviderChunk(text=word)
        yield ProviderChunk(text="", tokens_used=0)
