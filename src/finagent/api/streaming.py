"""SSE streaming infrastructure.

``sse_stream`` turns an async generator of API event models into
``data: {...}\\n\\n`` frames with a wall-clock timeout, an error boundary
that converts failures into a final ``error`` event, and unified
metrics/tracing.  Route code only produces events.
"""

import asyncio
import json
import logging
import time
from collections import Counter as EventCounter
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from datetime import timedelta

from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from finagent.core.service.errors import NoProviderConfigured
from finagent.core.service.metrics import (
    CHAT_SESSION_DURATION_SECONDS,
    CHAT_SESSIONS_ACTIVE,
    CHAT_SESSIONS_TOTAL,
    SSE_STREAM_OUTCOMES_TOTAL,
    STREAM_EVENTS_TOTAL,
)
from finagent.core.service.models import (
    CompleteEvent,
    CompletionEvent,
    ErrorEvent,
    ProviderSwitchEvent,
    TokenEvent,
)
from finagent.infra.telemetry import (
    ATTR_SSE_ERROR_CODE,
    ATTR_SSE_EVENT_COUNTS,
    ATTR_TRACE_ID,
    SPAN_SSE_STREAM,
    tracer,
)

from .models import (
    ConnectedEvent,
    ContentEvent,
    DoneEvent,
    ProviderSwitchSSEEvent,
    SSEEvent,
    format_error_sse,
    format_sse,
)

logger = logging.getLogger(__name__)

SSE_MEDIA_TYPE = "text/event-stream"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def wants_event_stream(accept: str | None) -> bool:
    return bool(accept) and SSE_MEDIA_TYPE in accept.lower()


def event_stream_response(
    frames: AsyncIterator[str],
    on_close: Callable[[], Awaitable[None]] | None = None,
) -> StreamingResponse:
    """Wrap SSE *frames* in a ``StreamingResponse``.

    *on_close* runs as the response's background task.  A body whose
    client went away before the first frame was pulled never reaches its
    own ``finally``, so cleanup passed here must be idempotent.
    """
    return StreamingResponse(
        frames,
        media_type=SSE_MEDIA_TYPE,
        headers=SSE_HEADERS,
        background=BackgroundTask(on_close) if on_close is not None else None,
    )


async def completion_sse_events(
    events: AsyncIterator[CompletionEvent],
    *,
    trace_id: str,
    user_id: str,
) -> AsyncGenerator[SSEEvent, None]:
    """Map completion events to the chat SSE vocabulary."""
    yield ConnectedEvent(trace_id=trace_id, user_id=user_id)
    async for event in events:
        if isinstance(event, TokenEvent):
            yield ContentEvent(
                content=event.content, provider=event.provider, model=event.model
            )
        elif isinstance(event, ProviderSwitchEvent):
            yield ProviderSwitchSSEEvent(
                from_provider=event.from_provider,
                to_provider=event.to_provider,
                reason=event.reason,
                reset=event.reset,
            )
        elif isinstance(event, CompleteEvent):
            result = event.result
            yield DoneEvent(
                trace_id=trace_id,
                response=result.content,
                provider=result.provider_name,
                provider_used=result.provider_used,
                model=result.model_identifier,
                tokens_used=result.tokens_used,
            )
        elif isinstance(event, ErrorEvent):
            yield event


async def sse_stream(
    events: AsyncGenerator[SSEEvent, None],
    *,
    request_timeout: timedelta,
    trace_id: str = "",
    send_traceback: bool = False,
    on_finish: Callable[[], Awaitable[None]] | None = None,
) -> AsyncGenerator[str, None]:
    """Format events as SSE with timeout, error handling, and metrics.

    Parameters
    ----------
    events:
        Async generator of API event models.
    request_timeout:
        Wall-clock limit for the whole response.
    on_finish:
        Awaited in the ``finally`` block (e.g. ``lease.release``).

    Yields
    ------
    SSE-formatted strings (``data: {...}\\n\\n``).
    """
    with tracer.start_as_current_span(SPAN_SSE_STREAM) as span:
        span.set_attribute(ATTR_TRACE_ID, trace_id)
        code = "ok"
        event_counts: EventCounter[str] = EventCounter()
        CHAT_SESSIONS_ACTIVE.inc()
        start = time.monotonic()
        try:
            async with asyncio.timeout(request_timeout.total_seconds()):
                async for event in events:
                    event_counts[event.type] += 1
                    STREAM_EVENTS_TOTAL.labels(event_type=event.type).inc()
                    yield format_sse(event)

        except NoProviderConfigured as e:
            code = "NO_PROVIDER"
            logger.error("trace=%s completion failed: %s", trace_id, e)
            yield format_error_sse(e)
        except TimeoutError as e:
            code = "REQUEST_TIMEOUT"
            logger.warning("trace=%s request timed out after %s.", trace_id, request_timeout)
            yield format_error_sse(e)
        except asyncio.CancelledError:
            code = "CANCELLED"
            raise
        except Exception as e:
            code = "PROCESSING_ERROR"
            span.record_exception(e)
            logger.warning("trace=%s unexpected error in SSE stream", trace_id, exc_info=True)
            yield format_error_sse(e, send_traceback=send_traceback)
        finally:
            span.set_attribute(ATTR_SSE_ERROR_CODE, code)
            span.set_attribute(ATTR_SSE_EVENT_COUNTS, json.dumps(event_counts))
            SSE_STREAM_OUTCOMES_TOTAL.labels(code=code).inc()
            CHAT_SESSIONS_ACTIVE.dec()
            CHAT_SESSIONS_TOTAL.labels(status=code).inc()
            CHAT_SESSION_DURATION_SECONDS.observe(time.monotonic() - start)
            if on_finish:
                await on_finish()
