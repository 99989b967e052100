"""Completion orchestrator: provider ordering, failover and normalisation.

One request walks a small state machine::

    IDLE -> ATTEMPTING_PRIMARY -> ATTEMPTING_FALLBACK -> SUCCEEDED
                                                      \\-> EXHAUSTED

Adapters are attempted strictly one after another, never in parallel,
so a healthy provider is never billed for a duplicate call.  The typed
event stream from ``events()`` is the primary API; ``complete()`` and
``complete_streaming()`` are thin callback-style drivers over it.
"""

import dataclasses
import enum
import inspect
import logging
import time
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

from opentelemetry.trace import Status, StatusCode

from finagent.core.llm import ProviderAdapter, ProviderCallFailed, ProviderRegistry
from finagent.infra.telemetry import (
    ATTR_ATTEMPTS,
    ATTR_PROVIDER_ERROR,
    ATTR_PROVIDER_MODEL,
    ATTR_PROVIDER_NAME,
    ATTR_PROVIDER_TOKENS,
    ATTR_PROVIDER_USED,
    ATTR_STREAMING,
    ATTR_TRACE_ID,
    SPAN_COMPLETION,
    SPAN_PROVIDER_ATTEMPT,
    tracer,
)

from .errors import AllProvidersFailed, NoProviderConfigured
from .metrics import (
    COMPLETIONS_TOTAL,
    PROVIDER_CALL_DURATION_SECONDS,
    PROVIDER_CALLS_TOTAL,
    PROVIDER_SWITCHES_TOTAL,
)
from .models import (
    CompleteEvent,
    CompletionEvent,
    CompletionRequest,
    CompletionResult,
    ProviderSwitchEvent,
    TokenEvent,
)

logger = logging.getLogger(__name__)

TokenCallback = Callable[[str, dict[str, str]], Awaitable[None] | None]
SwitchCallback = Callable[[ProviderSwitchEvent], Awaitable[None] | None]


class CompletionState(str, enum.Enum):
    IDLE = "idle"
    ATTEMPTING_PRIMARY = "attempting_primary"
    ATTEMPTING_FALLBACK = "attempting_fallback"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


async def _maybe_await(value: Any) -> None:
    if inspect.isawaitable(value):
        await value


class CompletionOrchestrator:
    """Selects, sequences and normalises provider calls.

    Owns the ``ProviderRegistry`` built at startup; adapters are never
    handed to callers.
    """

    def __init__(self, registry: ProviderRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def _transition(
        self,
        request: CompletionRequest,
        current: CompletionState,
        new: CompletionState,
        provider: str | None = None,
    ) -> CompletionState:
        logger.debug(
            "trace=%s completion %s -> %s%s",
            request.trace_id,
            current.value,
            new.value,
            f" ({provider})" if provider else "",
        )
        return new

    async def events(
        self, request: CompletionRequest
    ) -> AsyncGenerator[CompletionEvent, None]:
        """Run one completion and yield its events.

        Yields ``TokenEvent`` (streaming only), ``ProviderSwitchEvent`` on
        each failover and finally one ``CompleteEvent``.

        Raises
        ------
        NoProviderConfigured
            Before any provider call when no adapter is available.
        AllProvidersFailed
            When every adapter failed.
        """
        span = tracer.start_span(SPAN_COMPLETION)
        span.set_attribute(ATTR_TRACE_ID, request.trace_id)
        span.set_attribute(ATTR_STREAMING, request.wants_streaming)
        attempts = 1
        inner = self._attempts(request)
        try:
            async for event in inner:
                if isinstance(event, ProviderSwitchEvent):
                    attempts += 1
                elif isinstance(event, CompleteEvent):
                    span.set_attribute(ATTR_PROVIDER_USED, event.result.provider_used)
                yield event
        except BaseException as exc:
            span.set_status(Status(StatusCode.ERROR, type(exc).__name__))
            raise
        finally:
            span.set_attribute(ATTR_ATTEMPTS, attempts)
            span.end()
            await inner.aclose()

    async def _attempts(
        self, request: CompletionRequest
    ) -> AsyncGenerator[CompletionEvent, None]:
        streaming = request.wants_streaming
        mode = "stream" if streaming else "complete"
        adapters = self._registry.ordered(streaming)
        state = CompletionState.IDLE

        if not adapters:
            COMPLETIONS_TOTAL.labels(mode=mode, outcome="no_provider").inc()
            raise NoProviderConfigured(self._registry.missing_keys())

        failures: dict[str, str] = {}
        for index, adapter in enumerate(adapters):
            state = self._transition(
                request,
                state,
                CompletionState.ATTEMPTING_PRIMARY
                if index == 0
                else CompletionState.ATTEMPTING_FALLBACK,
                adapter.name,
            )
            emitted = 0
            span = tracer.start_span(SPAN_PROVIDER_ATTEMPT)
            span.set_attribute(ATTR_TRACE_ID, request.trace_id)
            span.set_attribute(ATTR_STREAMING, streaming)
            span.set_attribute(ATTR_PROVIDER_NAME, adapter.name)
            span.set_attribute(ATTR_PROVIDER_MODEL, adapter.model_name)
            start = time.monotonic()
            try:
                if streaming:
                    parts: list[str] = []
                    tokens_used = None
                    async for chunk in adapter.stream(request.messages):
                        if chunk.tokens_used is not None:
                            tokens_used = chunk.tokens_used
                        if not chunk.text:
                            continue
                        parts.append(chunk.text)
                        emitted += 1
                        yield TokenEvent(
                            content=chunk.text,
                            provider=adapter.name,
                            model=adapter.model_name,
                        )
                    content = "".join(parts)
                else:
                    reply = await adapter.complete(request.messages)
                    content, tokens_used = reply.content, reply.tokens_used
            except ProviderCallFailed as exc:
                self._record_attempt(adapter, mode, "error", start)
                span.set_attribute(ATTR_PROVIDER_ERROR, exc.reason)
                span.set_attribute(ATTR_PROVIDER_TOKENS, emitted)
                span.set_status(Status(StatusCode.ERROR, exc.reason))
                span.end()
                failures[adapter.name] = exc.reason
                logger.warning(
                    "trace=%s provider %s failed after %d token(s): %s",
                    request.trace_id,
                    adapter.name,
                    emitted,
                    exc.reason,
                    exc_info=exc.__cause__ is not None,
                )
                if index + 1 < len(adapters):
                    yield self._switch_event(adapter, adapters[index + 1], exc, emitted)
                continue
            except BaseException:
                span.end()
                raise

            self._record_attempt(adapter, mode, "ok", start)
            span.set_attribute(ATTR_PROVIDER_TOKENS, emitted)
            span.end()
            state = self._transition(
                request, state, CompletionState.SUCCEEDED, adapter.name
            )
            COMPLETIONS_TOTAL.labels(mode=mode, outcome=adapter.role).inc()
            yield CompleteEvent(
                result=CompletionResult(
                    content=content,
                    provider_used=adapter.role,
                    provider_name=adapter.name,
                    model_identifier=adapter.model_name,
                    tokens_used=tokens_used,
                )
            )
            return

        self._transition(request, state, CompletionState.EXHAUSTED)
        COMPLETIONS_TOTAL.labels(mode=mode, outcome="exhausted").inc()
        raise AllProvidersFailed(failures, self._registry.missing_keys())

    @staticmethod
    def _record_attempt(
        adapter: ProviderAdapter, mode: str, outcome: str, start: float
    ) -> None:
        PROVIDER_CALLS_TOTAL.labels(
            provider=adapter.name, mode=mode, outcome=outcome
        ).inc()
        PROVIDER_CALL_DURATION_SECONDS.labels(provider=adapter.name, mode=mode).observe(
            time.monotonic() - start
        )

    @staticmethod
    def _switch_event(
        failed: ProviderAdapter,
        upcoming: ProviderAdapter,
        exc: ProviderCallFailed,
        emitted: int,
    ) -> ProviderSwitchEvent:
        # Tokens already sent came from a provider that will not finish;
        # the next provider starts from an empty accumulator.
        reset = emitted > 0
        PROVIDER_SWITCHES_TOTAL.labels(
            from_provider=failed.name,
            to_provider=upcoming.name,
            reset=str(reset).lower(),
        ).inc()
        return ProviderSwitchEvent(
            from_provider=failed.name,
            to_provider=upcoming.name,
            reason=exc.reason,
            reset=reset,
        )

    async def complete(
        self,
        request: CompletionRequest,
        on_switch: SwitchCallback | None = None,
    ) -> CompletionResult:
        """Non-streaming completion; awaits at most one call per provider."""
        if request.wants_streaming:
            request = dataclasses.replace(request, wants_streaming=False)
        return await self._drive(request, None, on_switch)

    async def complete_streaming(
        self,
        request: CompletionRequest,
        on_token: TokenCallback,
        on_switch: SwitchCallback | None = None,
    ) -> CompletionResult:
        """Streaming completion.

        ``on_token(text, {"provider": ..., "model": ...})`` is called for
        every token, in arrival order, before this coroutine returns.
        Callbacks may be plain functions or coroutines.
        """
        if not request.wants_streaming:
            request = dataclasses.replace(request, wants_streaming=True)
        return await self._drive(request, on_token, on_switch)

    async def _drive(
        self,
        request: CompletionRequest,
        on_token: TokenCallback | None,
        on_switch: SwitchCallback | None,
    ) -> CompletionResult:
        result: CompletionResult | None = None
        async for event in self.events(request):
            if isinstance(event, TokenEvent):
                if on_token is not None:
                    await _maybe_await(
                        on_token(
                            event.content,
                            {"provider": event.provider, "model": event.model},
                        )
                    )
            elif isinstance(event, ProviderSwitchEvent):
                if on_switch is not None:
                    await _maybe_await(on_switch(event))
            elif isinstance(event, CompleteEvent):
                result = event.result
        if result is None:
            raise AllProvidersFailed({}, self._registry.missing_keys())
        return result
