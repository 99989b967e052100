"""Pydantic models for the chat API.

Wire names are camelCase (``assistantType``, ``traceId``) to stay
compatible with existing web clients; Python attributes are snake_case.
"""

from traceback import format_exception
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from finagent.configs.persona import Persona
from finagent.core.service.errors import user_facing_error
from finagent.core.service.models import ErrorEvent

# Maximum accepted length of one chat message.
CHAT_MESSAGE_MAX_LENGTH = 8192

ERROR_TITLE = "An error occurred processing your request"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class HistoryMessage(_CamelModel):
    """A prior message of the conversation as sent by the client."""

    role: Literal["system", "user", "assistant"]
    content: str = ""


class ChatRequest(_CamelModel):
    """Body of ``POST /api/chat/stream``."""

    message: str = Field(min_length=1, max_length=CHAT_MESSAGE_MAX_LENGTH)
    assistant_type: Persona = Field(default="general")
    user_id: str | None = Field(default=None, description="Generated when absent")
    context: dict[str, Any] | None = Field(
        default=None, description="Free-form client context (not sent to providers)"
    )
    history: list[HistoryMessage] = Field(default_factory=list)
    stream: bool = False


# ---------------------------------------------------------------------------
# JSON responses
# ---------------------------------------------------------------------------


class ChatResponse(_CamelModel):
    """Non-streaming answer, also the acknowledgement of relayed requests."""

    trace_id: str
    user_id: str
    response: str
    assistant_type: str
    llm_provider: str
    provider_used: str
    model: str
    tokens_used: int | None = None
    chart_html: str | None = None
    has_chart: bool = False


class ErrorResponse(BaseModel):
    error: str = ERROR_TITLE
    message: str
    code: str | None = None


# ---------------------------------------------------------------------------
# SSE events
# ---------------------------------------------------------------------------


class ConnectedEvent(_CamelModel):
    type: Literal["connected"] = "connected"
    trace_id: str | None = None
    user_id: str | None = None


class ContentEvent(_CamelModel):
    type: Literal["content"] = "content"
    content: str
    provider: str
    model: str


class ProviderSwitchSSEEvent(_CamelModel):
    type: Literal["provider_switch"] = "provider_switch"
    from_provider: str = Field(serialization_alias="from")
    to_provider: str = Field(serialization_alias="to")
    reason: str
    reset: bool


class DoneEvent(_CamelModel):
    type: Literal["done"] = "done"
    trace_id: str
    response: str
    provider: str
    provider_used: str
    model: str
    tokens_used: int | None = None


SSEEvent = ConnectedEvent | ContentEvent | ProviderSwitchSSEEvent | DoneEvent | ErrorEvent


def format_sse(event: BaseModel) -> str:
    if isinstance(event, _CamelModel):
        payload = event.model_dump_json(by_alias=True, exclude_none=True)
    else:
        payload = event.model_dump_json(exclude_none=True)
    return f"data: {payload}\n\n"


def format_error_sse(exc: BaseException, send_traceback: bool = False) -> str:
    message, code = user_facing_error(exc)
    if send_traceback:
        message = f"{message}\n{''.join(format_exception(exc))}"
    return format_sse(ErrorEvent(message=message, code=code))
