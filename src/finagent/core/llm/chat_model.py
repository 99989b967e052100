"""Provider adapter over a LangChain chat model."""

import logging
from collections.abc import AsyncIterator, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
)

from finagent.core.service.models import ChatMessage

from .base import ProviderAdapter, ProviderCallFailed, ProviderChunk, ProviderReply

logger = logging.getLogger(__name__)

_MESSAGE_TYPES: dict[str, type[BaseMessage]] = {
    "system": SystemMessage,
    "user": HumanMessage,
    "assistant": AIMessage,
}


def to_langchain_messages(messages: Sequence[ChatMessage]) -> list[BaseMessage]:
    return [_MESSAGE_TYPES[m.role](content=m.content) for m in messages]


def describe_failure(exc: BaseException) -> str:
    """Short, body-free reason for a vendor exception.

    Vendor error bodies can carry request echoes or internal details, so
    only the exception type and HTTP status travel with a switch event.
    """
    status = getattr(exc, "status_code", None)
    if status is not None:
        return f"{type(exc).__name__} (HTTP {status})"
    return type(exc).__name__


def _total_tokens(message: BaseMessage) -> int | None:
    usage = getattr(message, "usage_metadata", None)
    if not usage:
        return None
    return usage.get("total_tokens")


class ChatModelAdapter(ProviderAdapter):
    """Adapt a ``BaseChatModel`` to the uniform provider interface.

    ``ainvoke`` serves the non-streaming path and ``astream`` the
    streaming one.  Sampling parameters live on the wrapped model, set
    by the vendor factories from ``LLMConfig``.
    """

    def __init__(
        self, model: BaseChatModel, *, name: str, role: str, model_name: str
    ) -> None:
        self._model = model
        self.name = name
        self.role = role
        self.model_name = model_name

    async def complete(self, messages: Sequence[ChatMessage]) -> ProviderReply:
        try:
            reply = await self._model.ainvoke(to_langchain_messages(messages))
        except Exception as exc:
            raise ProviderCallFailed(self.name, describe_failure(exc)) from exc

        if not isinstance(reply.content, str):
            raise ProviderCallFailed(self.name, "malformed response: non-text content")
        return ProviderReply(content=reply.content, tokens_used=_total_tokens(reply))

    async def stream(
        self, messages: Sequence[ChatMessage]
    ) -> AsyncIterator[ProviderChunk]:
        try:
            async for chunk in self._model.astream(to_langchain_messages(messages)):
                if not isinstance(chunk.content, str):
                    raise ProviderCallFailed(
                        self.name, "malformed response: non-text chunk"
                    )
                tokens = _total_tokens(chunk)
                if chunk.content or tokens is not None:
                    yield ProviderChunk(text=chunk.content, tokens_used=tokens)
        except ProviderCallFailed:
            raise
        except Exception as exc:
            raise ProviderCallFailed(self.name, describe_failure(exc)) from exc
