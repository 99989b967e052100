"""Completion events emitted by the orchestrator and relayed messages."""

import time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .context import CompletionResult


class TokenEvent(BaseModel):
    """One text fragment from the provider currently answering."""

    type: Literal["token"] = "token"
    content: str = Field(description="Token text")
    provider: str = Field(description="Vendor label of the emitting provider")
    model: str = Field(description="Model identifier of the emitting provider")


class ProviderSwitchEvent(BaseModel):
    """The orchestrator gave up on one provider and moves to the next.

    ``reset`` is true when tokens from the failed provider were already
    emitted; consumers must discard what they accumulated so far.
    """

    type: Literal["provider_switch"] = "provider_switch"
    from_provider: str
    to_provider: str
    reason: str
    reset: bool = False


class CompleteEvent(BaseModel):
    """Terminal success event carrying the final result."""

    type: Literal["complete"] = "complete"
    result: CompletionResult


class ErrorEvent(BaseModel):
    """Terminal failure event (never carries provider error bodies)."""

    type: Literal["error"] = "error"
    message: str = Field(description="User-facing error message")
    code: str | None = Field(default=None, description="Error code")


CompletionEvent = TokenEvent | ProviderSwitchEvent | CompleteEvent | ErrorEvent


def _now_ms() -> int:
    return int(time.time() * 1000)


class StreamMessage(BaseModel):
    """Message published to the hub and to the durable Redis channel.

    Serialised with camelCase keys (``userId``, ``traceId``) so existing
    subscribers of ``sse:chat:stream`` keep working.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    type: Literal["token", "complete", "error", "provider_switch"]
    user_id: str
    trace_id: str
    content: str | None = None
    response: str | None = None
    provider: str | None = None
    model: str | None = None
    error: str | None = None
    metadata: dict[str, Any] | None = None
    timestamp: int = Field(default_factory=_now_ms)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
