"""Provider adapter interface and provider-level exceptions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass

from finagent.core.service.models import ChatMessage

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ProviderUnavailable(Exception):
    """A provider's credentials are missing; it is never attempted."""

    def __init__(self, provider: str, missing_keys: Sequence[str]) -> None:
        super().__init__(
            f"{provider} is not configured (missing: {', '.join(missing_keys)})"
        )
        self.provider = provider
        self.missing_keys = list(missing_keys)


class ProviderCallFailed(Exception):
    """A configured provider failed (network, HTTP status, malformed reply)."""

    def __init__(self, provider: str, reason: str) -> None:
        super().__init__(f"{provider} call failed: {reason}")
        self.provider = provider
        self.reason = reason


# ---------------------------------------------------------------------------
# Replies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProviderReply:
    content: str
    tokens_used: int | None = None


@dataclass(frozen=True)
class ProviderChunk:
    """One streamed fragment; ``tokens_used`` is set on the usage chunk."""

    text: str
    tokens_used: int | None = None


# ---------------------------------------------------------------------------
# Abstract adapter
# ---------------------------------------------------------------------------


class ProviderAdapter(ABC):
    """Uniform chat-completion call over one vendor.

    Implementations raise ``ProviderCallFailed`` for every failure so the
    orchestrator can fall back without knowing vendor exception types.
    """

    name: str
    role: str
    model_name: str

    @abstractmethod
    async def complete(self, messages: Sequence[ChatMessage]) -> ProviderReply:
        """Return the whole answer for *messages*."""

    @abstractmethod
    def stream(self, messages: Sequence[ChatMessage]) -> AsyncIterator[ProviderChunk]:
        """Yield answer fragments for *messages* in arrival order."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, model={self.model_name!r})"
