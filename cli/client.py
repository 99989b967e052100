"""Client for the finagent chat API, including the stream consumer.

``stream_message`` posts with ``stream=true``, receives the JSON
acknowledgement (``traceId`` plus a snapshot ``response``), then
subscribes to the user's SSE channel and renders tokens for that
``traceId`` only.

Two bounded waits apply:

* **grace period**: if no token arrives shortly after subscribing, the
  live subscription is dropped and the snapshot is replayed word by
  word at a fixed cadence, so the caller still sees incremental output.
* **hard timeout**: if no terminal event arrived within the ceiling, the
  request fails with ``ClientStreamTimeout``.

The ``complete`` message carries the authoritative ``response``; when the
tokens seen live do not add up to it, the rendering is reset and the
full response is replayed word by word instead.
"""

import asyncio
import inspect
import json
import logging
import re
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import CLIConfig

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str, dict[str, Any]], Awaitable[None] | None]

_WORDS = re.compile(r"\S+\s*")
_CLOSED = object()


class ClientStreamTimeout(Exception):
    """No terminal event within the hard timeout."""


class StreamConnectionError(Exception):
    """The request or the subscription failed at the connection level."""


class StreamFailed(Exception):
    """The server reported an error for this trace."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


@dataclass
class StreamResult:
    trace_id: str
    content: str
    provider: str | None = None
    model: str | None = None
    provider_used: str | None = None
    tokens_used: int | None = None
    synthesized: bool = False
    switches: list[dict[str, Any]] = field(default_factory=list)


def split_words(text: str) -> list[str]:
    """Split *text* into words keeping their trailing whitespace."""
    return _WORDS.findall(text)


async def _call(on_chunk: ChunkCallback, text: str, meta: dict[str, Any]) -> None:
    result = on_chunk(text, meta)
    if inspect.isawaitable(result):
        await result


async def iter_sse(response: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    """Parse ``data: {...}`` frames of an SSE response."""
    buffer = ""
    async for chunk in response.aiter_text():
        buffer += chunk
        while "\n\n" in buffer:
            block, buffer = buffer.split("\n\n", 1)
            for line in block.split("\n"):
                line = line.strip()
                if not line.startswith("data: "):
                    continue
                data = line[6:]
                try:
                    yield json.loads(data)
                except json.JSONDecodeError as e:
                    logger.warning("Failed to parse SSE data: %s, error: %s", data, e)


class ChatAPIClient:
    """Client for the finagent chat API."""

    def __init__(
        self, config: CLIConfig, http_client: httpx.AsyncClient | None = None
    ) -> None:
        self.config = config
        self.client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(config.hard_timeout, connect=10.0)
        )
        self.user_id = f"user-{int(time.time() * 1000)}"

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _post_chat(
        self,
        text: str,
        persona: str,
        history: Sequence[dict[str, str]] | None,
        user_id: str,
        stream: bool,
    ) -> dict[str, Any]:
        payload = {
            "message": text,
            "assistantType": persona,
            "userId": user_id,
            "history": list(history or []),
            "stream": stream,
        }
        logger.debug("POST %s stream=%s", self.config.chat_url, stream)
        try:
            response = await self.client.post(
                self.config.chat_url,
                json=payload,
                headers={"Accept": "application/json"},
            )
        except httpx.TransportError as e:
            raise StreamConnectionError(f"Connection error: {e}") from e

        if response.status_code != 200:
            try:
                body = response.json()
            except ValueError:
                body = {}
            raise StreamFailed(
                body.get("message") or f"HTTP {response.status_code}",
                body.get("code"),
            )
        return response.json()

    async def send_message(
        self,
        text: str,
        persona: str = "general",
        history: Sequence[dict[str, str]] | None = None,
        user_id: str | None = None,
    ) -> dict[str, Any]:
        """Non-streaming request; returns the JSON body."""
        return await self._post_chat(
            text, persona, history, user_id or self.user_id, stream=False
        )

    async def stream_message(
        self,
        text: str,
        persona: str,
        history: Sequence[dict[str, str]] | None,
        on_chunk: ChunkCallback,
        user_id: str | None = None,
    ) -> StreamResult:
        """Send *text* and render the answer incrementally through *on_chunk*.

        ``on_chunk(text, meta)`` receives tokens in order.  After a
        provider switch that invalidates earlier tokens it is called with
        ``""`` and ``meta["reset"] = True``; the caller should clear what
        it rendered.

        Raises
        ------
        ClientStreamTimeout
            No terminal event within ``hard_timeout``.
        StreamConnectionError
            The POST or the subscription failed to connect.
        StreamFailed
            The server answered with an error.
        """
        user_id = user_id or self.user_id
        try:
            async with asyncio.timeout(self.config.hard_timeout):
                ack = await self._post_chat(text, persona, history, user_id, stream=True)
                return await self._consume(ack, user_id, on_chunk)
        except TimeoutError as e:
            raise ClientStreamTimeout(
                f"No response within {self.config.hard_timeout:g}s"
            ) from e

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    async def _read_events(
        self, response: httpx.Response, queue: asyncio.Queue
    ) -> None:
        try:
            async for event in iter_sse(response):
                await queue.put(event)
        except httpx.HTTPError as e:
            await queue.put(StreamConnectionError(f"Subscription failed: {e}"))
            return
        await queue.put(_CLOSED)

    async def _synthesize(
        self, trace_id: str, text: str, on_chunk: ChunkCallback
    ) -> None:
        for word in split_words(text):
            await _call(on_chunk, word, {"traceId": trace_id, "synthesized": True})
            await asyncio.sleep(self.config.word_delay)

    async def _consume(
        self, ack: dict[str, Any], user_id: str, on_chunk: ChunkCallback
    ) -> StreamResult:
        trace_id = ack["traceId"]
        snapshot = ack.get("response") or ""
        result = StreamResult(
            trace_id=trace_id,
            content=snapshot,
            provider=ack.get("llmProvider"),
            model=ack.get("model"),
            provider_used=ack.get("providerUsed"),
            tokens_used=ack.get("tokensUsed"),
        )

        try:
            async with self.client.stream(
                "GET",
                self.config.events_url,
                params={"userId": user_id, "traceId": trace_id},
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.status_code != 200:
                    raise StreamConnectionError(
                        f"Subscription rejected: HTTP {response.status_code}"
                    )
                outcome = await self._follow(response, result, on_chunk)
        except httpx.TransportError as e:
            raise StreamConnectionError(f"Subscription failed: {e}") from e

        if outcome in ("grace_expired", "resync"):
            logger.debug("trace=%s simulating stream (%s)", trace_id, outcome)
            result.synthesized = True
            await self._synthesize(trace_id, result.content, on_chunk)
        return result

    async def _follow(
        self,
        response: httpx.Response,
        result: StreamResult,
        on_chunk: ChunkCallback,
    ) -> str:
        """Consume live messages until completion or grace expiry."""
        loop = asyncio.get_running_loop()
        grace_deadline = loop.time() + self.config.grace_period
        parts: list[str] = []
        got_token = False

        queue: asyncio.Queue = asyncio.Queue()
        reader = asyncio.create_task(self._read_events(response, queue))
        try:
            while True:
                timeout = None
                if not got_token:
                    timeout = grace_deadline - loop.time()
                    if timeout <= 0 and result.content:
                        return "grace_expired"
                    if timeout <= 0:
                        # Nothing to simulate from; keep waiting for live tokens.
                        timeout = None
                try:
                    item = await asyncio.wait_for(queue.get(), timeout)
                except TimeoutError:
                    continue

                if item is _CLOSED:
                    if got_token:
                        raise StreamConnectionError(
                            "Subscription closed before the response completed"
                        )
                    return "grace_expired" if result.content else "closed"
                if isinstance(item, Exception):
                    raise item

                if item.get("traceId") != result.trace_id:
                    continue
                kind = item.get("type")
                meta = {
                    "traceId": result.trace_id,
                    "provider": item.get("provider"),
                    "model": item.get("model"),
                }
                if kind == "token":
                    got_token = True
                    content = item.get("content") or ""
                    parts.append(content)
                    await _call(on_chunk, content, meta)
                elif kind == "provider_switch":
                    switch = item.get("metadata") or {}
                    result.switches.append(switch)
                    if switch.get("reset"):
                        parts.clear()
                        await _call(on_chunk, "", {**meta, **switch, "reset": True})
                elif kind == "complete":
                    metadata = item.get("metadata") or {}
                    result.provider = item.get("provider") or result.provider
                    result.model = item.get("model") or result.model
                    result.provider_used = metadata.get("providerUsed", result.provider_used)
                    result.tokens_used = metadata.get("tokensUsed", result.tokens_used)
                    if got_token:
                        rendered = "".join(parts)
                        authoritative = item.get("response") or rendered
                        result.content = authoritative
                        if rendered == authoritative:
                            return "complete"
                        # Tokens were lost before the subscription caught up;
                        # discard what was shown and replay the full answer.
                        logger.warning(
                            "trace=%s live tokens do not match the response; replaying",
                            result.trace_id,
                        )
                        await _call(on_chunk, "", {**meta, "reset": True, "resync": True})
                        return "resync"
                    result.content = item.get("response") or result.content
                    # Completed without live tokens: still render incrementally.
                    return "grace_expired" if result.content else "complete"
                elif kind == "error":
                    raise StreamFailed(
                        item.get("error") or "The response failed",
                        (item.get("metadata") or {}).get("code"),
                    )
        finally:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
