"""Request and result models passed between the API and the orchestrator."""

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]
ProviderRole = Literal["primary", "fallback", "mock"]


class ChatMessage(BaseModel):
    """One message sent to a provider.  Immutable once built."""

    model_config = ConfigDict(frozen=True)

    role: Role = Field(description="Message sender role")
    content: str = Field(description="Message content")


@dataclass(frozen=True)
class CompletionRequest:
    """Per-request input to the orchestrator.

    Built once per inbound chat call from the assembled message list;
    the persona has already been turned into the leading system message
    and is carried only for labelling.
    """

    messages: tuple[ChatMessage, ...]
    persona: str
    wants_streaming: bool
    trace_id: str
    user_id: str


class CompletionResult(BaseModel):
    """The single final answer of one completion request."""

    content: str = Field(description="Full (possibly accumulated) answer text")
    provider_used: ProviderRole = Field(
        description="Role of the provider that produced the content"
    )
    provider_name: str = Field(description="Vendor label, e.g. 'groq'")
    model_identifier: str = Field(description="Model or deployment that answered")
    tokens_used: int | None = Field(
        default=None, description="Total tokens reported by the provider"
    )
