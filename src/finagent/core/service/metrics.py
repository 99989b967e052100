"""Prometheus metrics for finagent.

Business metrics complementing the HTTP metrics that
``prometheus-fastapi-instrumentator`` records.  All metrics use the
``finagent_`` prefix.
"""

import logging

from fastapi import FastAPI
from prometheus_client import Counter, Gauge, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

from finagent.configs.system import TracingConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Provider metrics
# ---------------------------------------------------------------------------

PROVIDER_CALLS_TOTAL = Counter(
    "finagent_provider_calls_total",
    "Provider attempts, by provider, path and outcome",
    ["provider", "mode", "outcome"],  # mode: stream | complete; outcome: ok | error
)

PROVIDER_CALL_DURATION_SECONDS = Histogram(
    "finagent_provider_call_duration_seconds",
    "Duration of one provider attempt",
    ["provider", "mode"],
    buckets=(0.25, 0.5, 1, 2, 5, 10, 20, 30, 60, 120),
)

PROVIDER_SWITCHES_TOTAL = Counter(
    "finagent_provider_switches_total",
    "Failovers from one provider to the next",
    ["from_provider", "to_provider", "reset"],
)

COMPLETIONS_TOTAL = Counter(
    "finagent_completions_total",
    "Completed requests by final outcome",
    ["mode", "outcome"],  # outcome: primary | fallback | mock | no_provider | exhausted
)

# ---------------------------------------------------------------------------
# Relay metrics
# ---------------------------------------------------------------------------

RELAY_MESSAGES_TOTAL = Counter(
    "finagent_relay_messages_total",
    "Messages relayed, by message type",
    ["type"],
)

RELAY_PUBLISH_TOTAL = Counter(
    "finagent_relay_publish_total",
    "Durable channel publishes, by outcome",
    ["outcome"],  # ok | error | dropped | disabled
)

RELAY_OUTBOX_DEPTH = Gauge(
    "finagent_relay_outbox_depth",
    "Messages waiting in the durable-channel outbox",
)

HUB_SUBSCRIBERS = Gauge(
    "finagent_hub_subscribers",
    "Live subscribers of the in-process stream hub",
)

# ---------------------------------------------------------------------------
# Chat session metrics
# ---------------------------------------------------------------------------

CHAT_SESSIONS_ACTIVE = Gauge(
    "finagent_chat_sessions_active",
    "Chat SSE responses currently in progress",
)

CHAT_SESSIONS_TOTAL = Counter(
    "finagent_chat_sessions_total",
    "Chat SSE responses, by final status code",
    ["status"],
)

CHAT_SESSION_DURATION_SECONDS = Histogram(
    "finagent_chat_session_duration_seconds",
    "End-to-end duration of a chat SSE response",
    buckets=(0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)

STREAM_EVENTS_TOTAL = Counter(
    "finagent_stream_events_total",
    "SSE events written, by event type",
    ["event_type"],
)

SSE_STREAM_OUTCOMES_TOTAL = Counter(
    "finagent_sse_stream_outcomes_total",
    "SSE streams by outcome code",
    ["code"],
)

# ---------------------------------------------------------------------------
# Concurrency metrics
# ---------------------------------------------------------------------------

USER_LOCK_REJECTIONS_TOTAL = Counter(
    "finagent_user_lock_rejections_total",
    "Requests rejected because the user already had a completion running",
)


def setup_metrics(app: FastAPI, tracing: TracingConfig) -> None:
    """Attach HTTP instrumentation middleware and expose ``/metrics``.

    Must run before the app starts serving, since it adds middleware.
    """
    Instrumentator(
        should_instrument_requests_inprogress=True,
        excluded_handlers=tracing.excluded_urls,
    ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    logger.info("Prometheus metrics initialised")
