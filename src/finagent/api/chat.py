"""Chat endpoints.

``POST /api/chat/stream`` answers in one of three ways:

* ``stream=false``: one non-streaming completion, JSON body.
* ``stream=true`` with ``Accept: text/event-stream``: SSE response
  (``connected``, ``content``, ``provider_switch``, ``done``, ``error``);
  every event is also relayed to the hub and the Redis channel.
* ``stream=true`` otherwise: tokens are relayed while the request runs
  and the JSON body (the snapshot) is returned at the end.  Clients
  subscribe to ``GET /api/chat/events`` and filter by ``traceId``; the
  hub replay buffer covers subscriptions opened after the POST returns.
"""

import asyncio
import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from finagent.core.relay import RelayTarget
from finagent.core.service.errors import FRIENDLY_APOLOGY, NoProviderConfigured
from finagent.core.service.messages import build_messages
from finagent.core.service.models import (
    TERMINAL_EVENT_TYPES,
    ChatMessage,
    CompleteEvent,
    CompletionRequest,
    CompletionResult,
)
from finagent.infra.id_utils import new_trace_id, new_user_id

from .deps import (
    AppConfigDep,
    OrchestratorDep,
    StreamHubDep,
    StreamRelayDep,
    UserLockDep,
)
from .models import ChatRequest, ChatResponse, ConnectedEvent, ErrorResponse, format_sse
from .streaming import (
    completion_sse_events,
    event_stream_response,
    sse_stream,
    wants_event_stream,
)

logger = logging.getLogger(__name__)

# Comment frame sent when a subscriber has been idle this long.
KEEPALIVE_SECONDS = 15.0

router = APIRouter(prefix="/api/chat", tags=["chat"])


def _chat_response(
    result: CompletionResult, body: ChatRequest, trace_id: str, user_id: str
) -> JSONResponse:
    return JSONResponse(
        ChatResponse(
            trace_id=trace_id,
            user_id=user_id,
            response=result.content,
            assistant_type=body.assistant_type,
            llm_provider=result.provider_name,
            provider_used=result.provider_used,
            model=result.model_identifier,
            tokens_used=result.tokens_used,
        ).to_wire()
    )


@router.post("/stream", response_model=None)
async def chat_stream(
    body: ChatRequest,
    request: Request,
    config: AppConfigDep,
    orchestrator: OrchestratorDep,
    relay: StreamRelayDep,
    user_lock: UserLockDep,
) -> JSONResponse | StreamingResponse:
    """Run one chat completion for ``body.message``."""
    trace_id = new_trace_id()
    user_id = body.user_id or new_user_id()
    completion = CompletionRequest(
        messages=build_messages(
            config.persona.system_prompt(body.assistant_type),
            [ChatMessage(role=h.role, content=h.content) for h in body.history],
            body.message,
            config.chat.max_history_messages,
        ),
        persona=body.assistant_type,
        wants_streaming=body.stream,
        trace_id=trace_id,
        user_id=user_id,
    )
    target = RelayTarget(user_id=user_id, trace_id=trace_id)
    logger.info(
        "trace=%s user=%s persona=%s stream=%s history=%d",
        trace_id,
        user_id,
        body.assistant_type,
        body.stream,
        len(body.history),
    )

    lease = await user_lock.acquire(user_id)

    if body.stream and wants_event_stream(request.headers.get("accept")):
        events = relay.relay(target, orchestrator.events(completion))
        return event_stream_response(
            sse_stream(
                completion_sse_events(events, trace_id=trace_id, user_id=user_id),
                request_timeout=config.chat.request_timeout,
                trace_id=trace_id,
                send_traceback=config.chat.send_traceback,
                on_finish=lease.release,
            ),
            on_close=lease.release,
        )

    try:
        async with asyncio.timeout(config.chat.request_timeout.total_seconds()):
            if body.stream:
                result = None
                async for event in relay.relay(target, orchestrator.events(completion)):
                    if isinstance(event, CompleteEvent):
                        result = event.result
                if result is None:
                    raise RuntimeError("completion ended without a result")
            else:
                result = await orchestrator.complete(completion)
    except NoProviderConfigured:
        raise
    except Exception:
        logger.exception("trace=%s chat request failed", trace_id)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(message=FRIENDLY_APOLOGY).model_dump(
                exclude_none=True
            ),
        )
    finally:
        await lease.release()

    logger.info(
        "trace=%s answered by %s (%s)",
        trace_id,
        result.provider_name,
        result.model_identifier,
    )
    return _chat_response(result, body, trace_id, user_id)


@router.get("/events", response_model=None)
async def chat_events(
    request: Request,
    hub: StreamHubDep,
    user_id: str = Query(alias="userId", min_length=1),
    trace_id: str | None = Query(default=None, alias="traceId"),
) -> StreamingResponse:
    """Subscribe to a user's relayed messages as SSE.

    Starts with the replay buffer.  With ``traceId`` only that trace is
    replayed and the stream closes after its terminal message; without
    it, it stays open until the client disconnects.
    """

    async def subscription_frames():
        async with hub.subscribe(user_id, trace_id) as subscription:
            yield format_sse(ConnectedEvent(user_id=user_id, trace_id=trace_id))
            while True:
                try:
                    message = await asyncio.wait_for(
                        subscription.get(), timeout=KEEPALIVE_SECONDS
                    )
                except TimeoutError:
                    if await request.is_disconnected():
                        return
                    yield ": keepalive\n\n"
                    continue
                yield f"data: {message.to_json()}\n\n"
                if trace_id is not None and (
                    message.trace_id == trace_id
                    and message.type in TERMINAL_EVENT_TYPES
                ):
                    return

    return event_stream_response(subscription_frames())
