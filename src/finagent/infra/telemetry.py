"""OpenTelemetry bootstrap, span names and helpers.

``init_telemetry`` installs a ``TracerProvider`` with an OTLP HTTP
exporter when ``TracingConfig.enabled`` is set and credentials are
present; otherwise it is a no-op and ``tracer`` hands out non-recording
spans.  It runs from ``get_app()`` because the FastAPI instrumentor
attaches ASGI middleware, which must happen before the app starts.

Auto-instrumentations wired here:

- **FastAPI** (inbound HTTP spans)
- **httpx** (outbound HTTP spans, which covers the ``openai`` SDK used by
  both provider adapters)

Usage::

    from finagent.infra.telemetry import SPAN_PROVIDER_ATTEMPT, tracer

    with tracer.start_as_current_span(SPAN_PROVIDER_ATTEMPT) as span:
        span.set_attribute(ATTR_PROVIDER_NAME, adapter.name)
"""

from __future__ import annotations

import base64
import logging
from collections.abc import AsyncGenerator

from opentelemetry import trace

from finagent.configs.system import TracingConfig

logger = logging.getLogger(__name__)

_tracer_provider = None

tracer = trace.get_tracer("finagent")

# ---------------------------------------------------------------------------
# Span names
# ---------------------------------------------------------------------------

SPAN_COMPLETION = "completion.run"
SPAN_PROVIDER_ATTEMPT = "provider.attempt"
SPAN_RELAY_TRACE = "relay.trace"
SPAN_REDIS_CONNECT = "relay.redis_connect"
SPAN_USER_LOCK = "user_lock.hold"
SPAN_SSE_STREAM = "sse.stream"

# ---------------------------------------------------------------------------
# Span attribute keys
# ---------------------------------------------------------------------------

ATTR_TRACE_ID = "finagent.trace_id"
ATTR_STREAMING = "completion.streaming"
ATTR_PROVIDER_USED = "completion.provider_used"
ATTR_ATTEMPTS = "completion.attempts"

ATTR_PROVIDER_NAME = "provider.name"
ATTR_PROVIDER_MODEL = "provider.model"
ATTR_PROVIDER_ERROR = "provider.error"
ATTR_PROVIDER_TOKENS = "provider.tokens_emitted"

ATTR_RELAY_MESSAGES = "relay.messages"
ATTR_RELAY_TERMINAL = "relay.terminal"

ATTR_SSE_ERROR_CODE = "sse.error_code"
ATTR_SSE_EVENT_COUNTS = "sse.event_counts"


def init_telemetry(
    app: object | None = None,
    settings: TracingConfig | None = None,
) -> None:
    """Initialise the OTEL ``TracerProvider`` and auto-instrumentations.

    Parameters
    ----------
    app:
        The FastAPI application; instrumented for inbound spans.
    settings:
        Tracing configuration.  ``None`` or ``enabled=False`` is a no-op.
    """
    global _tracer_provider  # noqa: PLW0603

    if settings is None or not settings.enabled:
        logger.info("OpenTelemetry tracing disabled.")
        return

    if not settings.endpoint or not settings.username or not settings.password:
        logger.warning(
            "Tracing enabled but endpoint/credentials not configured; "
            "skipping OpenTelemetry setup."
        )
        return

    from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
        OTLPSpanExporter,
    )
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased

    provider = TracerProvider(
        resource=Resource.create({"service.name": settings.service_name}),
        sampler=ParentBased(root=TraceIdRatioBased(settings.sample_rate)),
    )

    credentials = f"{settings.username}:{settings.password}"
    encoded = base64.b64encode(credentials.encode()).decode()
    exporter = OTLPSpanExporter(
        endpoint=settings.endpoint,
        headers={"Authorization": f"Basic {encoded}"},
    )
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    if app is not None:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        excluded = ",".join(settings.excluded_urls) if settings.excluded_urls else ""
        FastAPIInstrumentor.instrument_app(app, excluded_urls=excluded)

    from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

    HTTPXClientInstrumentor().instrument()

    _tracer_provider = provider
    logger.info(
        "OpenTelemetry tracing initialised (service=%s).", settings.service_name
    )


# ---------------------------------------------------------------------------
# Lifespan dependency
# ---------------------------------------------------------------------------


async def build_telemetry() -> AsyncGenerator[None, None]:
    """Flush and shut down the exporter when the app stops."""
    yield
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
        logger.info("OpenTelemetry tracer provider shut down.")
