"""Tee completion events into keyed stream messages.

``StreamRelay.relay`` wraps the orchestrator's event generator: each
event is passed through unchanged to the caller (the SSE response or
the JSON handler) and, before that, converted to a ``StreamMessage`` and
published to the in-process hub and the durable Redis channel.

Exactly one terminal message is published per trace: ``complete`` when
the orchestrator finished, ``error`` when it raised, was cancelled, or
the consumer walked away first.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator
from dataclasses import dataclass

from finagent.core.service.errors import user_facing_error
from finagent.core.service.metrics import RELAY_MESSAGES_TOTAL
from finagent.core.service.models import (
    EVENT_TYPE_COMPLETE,
    EVENT_TYPE_ERROR,
    EVENT_TYPE_PROVIDER_SWITCH,
    EVENT_TYPE_TOKEN,
    CompleteEvent,
    CompletionEvent,
    ErrorEvent,
    ProviderSwitchEvent,
    StreamMessage,
    TokenEvent,
)
from finagent.infra.id_utils import MESSAGE_PREFIX, generate_id
from finagent.infra.telemetry import (
    ATTR_RELAY_MESSAGES,
    ATTR_RELAY_TERMINAL,
    ATTR_TRACE_ID,
    SPAN_RELAY_TRACE,
    tracer,
)

from .hub import StreamHub
from .publisher import RedisPublisher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayTarget:
    """Addressing of one relayed trace."""

    user_id: str
    trace_id: str


def to_stream_message(target: RelayTarget, event: CompletionEvent) -> StreamMessage:
    """Convert one completion event to the relayed wire message."""
    common = {
        "id": generate_id(MESSAGE_PREFIX),
        "user_id": target.user_id,
        "trace_id": target.trace_id,
    }
    if isinstance(event, TokenEvent):
        return StreamMessage(
            type=EVENT_TYPE_TOKEN,
            content=event.content,
            provider=event.provider,
            model=event.model,
            **common,
        )
    if isinstance(event, ProviderSwitchEvent):
        return StreamMessage(
            type=EVENT_TYPE_PROVIDER_SWITCH,
            provider=event.to_provider,
            metadata={
                "from": event.from_provider,
                "to": event.to_provider,
                "reason": event.reason,
                "reset": event.reset,
            },
            **common,
        )
    if isinstance(event, CompleteEvent):
        result = event.result
        metadata: dict[str, object] = {"providerUsed": result.provider_used}
        if result.tokens_used is not None:
            metadata["tokensUsed"] = result.tokens_used
        return StreamMessage(
            type=EVENT_TYPE_COMPLETE,
            response=result.content,
            provider=result.provider_name,
            model=result.model_identifier,
            metadata=metadata,
            **common,
        )
    if isinstance(event, ErrorEvent):
        return StreamMessage(
            type=EVENT_TYPE_ERROR,
            error=event.message,
            metadata={"code": event.code} if event.code else None,
            **common,
        )
    raise TypeError(f"Unknown completion event: {type(event).__name__}")


class StreamRelay:
    """Publishes relayed messages to the hub and the durable channel."""

    def __init__(
        self, hub: StreamHub, publisher: RedisPublisher | None = None
    ) -> None:
        self._hub = hub
        self._publisher = publisher

    @property
    def hub(self) -> StreamHub:
        return self._hub

    def publish(self, message: StreamMessage) -> None:
        # Both calls are synchronous, so per-trace order is call order.
        self._hub.publish(message)
        if self._publisher is not None:
            self._publisher.publish(message)
        RELAY_MESSAGES_TOTAL.labels(type=message.type).inc()

    def _publish_error(self, target: RelayTarget, exc: BaseException) -> None:
        message, code = user_facing_error(exc)
        self.publish(to_stream_message(target, ErrorEvent(message=message, code=code)))

    async def relay(
        self,
        target: RelayTarget,
        events: AsyncIterator[CompletionEvent],
    ) -> AsyncGenerator[CompletionEvent, None]:
        """Yield *events* unchanged while relaying each one.

        Exceptions from *events* are re-raised after the ``error``
        message is published.
        """
        span = tracer.start_span(SPAN_RELAY_TRACE)
        span.set_attribute(ATTR_TRACE_ID, target.trace_id)
        count = 0
        terminal: str | None = None
        try:
            async for event in events:
                if terminal is not None:
                    logger.warning(
                        "trace=%s ignoring %s after terminal message",
                        target.trace_id,
                        event.type,
                    )
                    continue
                message = to_stream_message(target, event)
                self.publish(message)
                count += 1
                if isinstance(event, (CompleteEvent, ErrorEvent)):
                    terminal = message.type
                yield event
            if terminal is None:
                terminal = EVENT_TYPE_ERROR
                self._publish_error(
                    target, RuntimeError("completion ended without a result")
                )
                count += 1
        except BaseException as exc:
            if terminal is None:
                terminal = EVENT_TYPE_ERROR
                self._publish_error(target, exc)
                count += 1
                logger.debug(
                    "trace=%s relayed error terminal (%s)",
                    target.trace_id,
                    type(exc).__name__,
                )
            raise
        finally:
            span.set_attribute(ATTR_RELAY_MESSAGES, count)
            span.set_attribute(ATTR_RELAY_TERMINAL, terminal or "")
            span.end()
