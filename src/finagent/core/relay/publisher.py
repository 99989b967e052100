"""Best-effort publisher for the durable ``sse:chat:stream`` channel.

``publish`` only enqueues; a single background task drains the outbox
into Redis pub/sub.  The connection is opened lazily on the first drain
with capped exponential backoff.  After ``max_connect_attempts`` failed
attempts the publisher gives up for the rest of the process lifetime
and every later ``publish`` is a no-op.  Nothing here ever raises into
the completion path: a Redis outage only shows up in logs and metrics.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import timedelta

from redis.asyncio import Redis
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential,
)

from finagent.configs.system import RelayConfig
from finagent.core.service.metrics import RELAY_OUTBOX_DEPTH, RELAY_PUBLISH_TOTAL
from finagent.core.service.models import StreamMessage
from finagent.infra.telemetry import SPAN_REDIS_CONNECT, tracer

logger = logging.getLogger(__name__)

RedisFactory = Callable[[str], Redis]


class StreamTransportError(Exception):
    """Publishing to the durable channel failed (always swallowed)."""


def _default_factory(uri: str) -> Redis:
    return Redis.from_url(uri, decode_responses=True)


class RedisPublisher:
    """Non-blocking outbox in front of Redis ``PUBLISH``."""

    def __init__(
        self,
        redis_uri: str,
        channel: str = "sse:chat:stream",
        *,
        max_size: int = 1000,
        max_connect_attempts: int = 10,
        connect_backoff: timedelta = timedelta(milliseconds=50),
        connect_backoff_max: timedelta = timedelta(seconds=2),
        connect_timeout: timedelta = timedelta(seconds=5),
        client_factory: RedisFactory | None = None,
    ) -> None:
        self._redis_uri = redis_uri
        self._channel = channel
        self._max_size = max_size
        self._max_connect_attempts = max_connect_attempts
        self._connect_backoff = connect_backoff.total_seconds()
        self._connect_backoff_max = connect_backoff_max.total_seconds()
        self._connect_timeout = connect_timeout.total_seconds()
        self._client_factory = client_factory or _default_factory

        self._queue: asyncio.Queue[str] | None = None
        self._task: asyncio.Task[None] | None = None
        self._client: Redis | None = None
        self._gave_up = False
        self._closed = False

    @classmethod
    def from_config(
        cls,
        redis_uri: str,
        config: RelayConfig,
        client_factory: RedisFactory | None = None,
    ) -> RedisPublisher:
        return cls(
            redis_uri,
            config.channel,
            max_size=config.outbox_max_size,
            max_connect_attempts=config.max_connect_attempts,
            connect_backoff=config.connect_backoff,
            connect_backoff_max=config.connect_backoff_max,
            connect_timeout=config.connect_timeout,
            client_factory=client_factory,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._redis_uri) and not self._gave_up and not self._closed

    @property
    def gave_up(self) -> bool:
        return self._gave_up

    @property
    def channel(self) -> str:
        return self._channel

    def publish(self, message: StreamMessage) -> None:
        """Enqueue *message*; never blocks and never raises."""
        if not self.enabled:
            RELAY_PUBLISH_TOTAL.labels(outcome="disabled").inc()
            return

        if self._task is None:
            self._queue = asyncio.Queue(maxsize=self._max_size)
            self._task = asyncio.create_task(
                self._drain(), name="redis-stream-publisher"
            )

        assert self._queue is not None
        try:
            self._queue.put_nowait(message.to_json())
        except asyncio.QueueFull:
            RELAY_PUBLISH_TOTAL.labels(outcome="dropped").inc()
            logger.warning(
                "Redis outbox full (%d); dropped %s message for trace %s",
                self._max_size,
                message.type,
                message.trace_id,
            )
            return
        RELAY_OUTBOX_DEPTH.set(self._queue.qsize())

    async def _open(self) -> Redis:
        client = self._client_factory(self._redis_uri)
        try:
            async with asyncio.timeout(self._connect_timeout):
                await client.ping()
        except BaseException:
            await client.aclose()
            raise
        return client

    async def _connect(self) -> Redis:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_connect_attempts),
            wait=wait_exponential(
                multiplier=self._connect_backoff, max=self._connect_backoff_max
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        with tracer.start_as_current_span(SPAN_REDIS_CONNECT):
            async for attempt in retrying:
                with attempt:
                    client = await self._open()
        logger.info("Connected to Redis for channel %s", self._channel)
        return client

    async def _publish_one(self, payload: str) -> None:
        assert self._client is not None
        try:
            await self._client.publish(self._channel, payload)
        except Exception as exc:
            raise StreamTransportError(
                f"publish to {self._channel} failed: {type(exc).__name__}"
            ) from exc

    def _discard_pending(self) -> None:
        assert self._queue is not None
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        RELAY_OUTBOX_DEPTH.set(0)

    async def _drain(self) -> None:
        assert self._queue is not None
        while True:
            payload = await self._queue.get()
            try:
                if self._client is None:
                    try:
                        self._client = await self._connect()
                    except Exception:
                        self._gave_up = True
                        logger.error(
                            "Giving up on Redis after %d connect attempts; "
                            "durable stream publishing disabled until restart.",
                            self._max_connect_attempts,
                            exc_info=True,
                        )
                        RELAY_PUBLISH_TOTAL.labels(outcome="dropped").inc()
                        self._discard_pending()
                        return
                try:
                    await self._publish_one(payload)
                    RELAY_PUBLISH_TOTAL.labels(outcome="ok").inc()
                except StreamTransportError as exc:
                    RELAY_PUBLISH_TOTAL.labels(outcome="error").inc()
                    logger.warning("%s", exc, exc_info=exc.__cause__ is not None)
            finally:
                self._queue.task_done()
                RELAY_OUTBOX_DEPTH.set(self._queue.qsize())

    async def flush(self, timeout: timedelta = timedelta(seconds=2)) -> bool:
        """Wait until the outbox is empty; ``False`` on timeout."""
        if self._queue is None or self._task is None:
            return True
        try:
            async with asyncio.timeout(timeout.total_seconds()):
                await self._queue.join()
        except TimeoutError:
            return False
        return True

    async def aclose(self, timeout: timedelta = timedelta(seconds=2)) -> None:
        """Flush what can be flushed in *timeout*, then stop and disconnect."""
        if not await self.flush(timeout):
            logger.warning("Redis outbox not drained before shutdown.")
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._client is not None:
            await self._client.aclose()
            self._client = None
