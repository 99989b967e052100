"""In-process multiplexed broadcast of relayed stream messages.

Messages are keyed by ``user:<userId>``; every subscriber of a key sees
every trace of that user and filters by ``traceId`` itself.  Replay is
kept per trace: the last ``replay_traces`` traces of a user, each
holding up to ``replay_trace_messages`` messages, until the trace has
been idle for ``replay_ttl``.  A client that subscribes after its POST
returned therefore still receives the whole answer from its first
token.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections import OrderedDict, deque
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import timedelta

from finagent.core.service.metrics import HUB_SUBSCRIBERS
from finagent.core.service.models import StreamMessage

logger = logging.getLogger(__name__)

_SWEEP_INTERVAL_SECONDS = 60.0


def channel_for(user_id: str) -> str:
    return f"user:{user_id}"


class HubSubscription:
    """Live view of one channel, pre-filled with the replay buffer."""

    def __init__(self, channel: str, queue_size: int) -> None:
        self.channel = channel
        self._queue: asyncio.Queue[StreamMessage] = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0

    def _offer(self, message: StreamMessage) -> None:
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Hub subscriber on %s is not keeping up; dropped message %s",
                self.channel,
                message.id,
            )

    async def get(self) -> StreamMessage:
        return await self._queue.get()

    def __aiter__(self) -> AsyncIterator[StreamMessage]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[StreamMessage]:
        while True:
            yield await self._queue.get()


class _TraceBuffer:
    __slots__ = ("messages", "last_seen")

    def __init__(self, max_messages: int) -> None:
        self.messages: deque[tuple[int, StreamMessage]] = deque(maxlen=max_messages)
        self.last_seen = 0.0


class StreamHub:
    """Keyed fan-out with a per-trace, time-limited replay buffer.

    ``publish`` is synchronous, so per-trace ordering is exactly the
    order of ``publish`` calls.
    """

    def __init__(
        self,
        replay_traces: int = 20,
        replay_trace_messages: int = 10_000,
        replay_ttl: timedelta = timedelta(hours=1),
        subscriber_queue_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._replay_traces = replay_traces
        self._replay_trace_messages = replay_trace_messages
        self._replay_ttl = replay_ttl.total_seconds()
        self._subscriber_queue_size = subscriber_queue_size
        self._clock = clock
        self._sequence = itertools.count()
        # channel -> trace id -> buffer, oldest trace first
        self._buffers: dict[str, OrderedDict[str, _TraceBuffer]] = {}
        self._subscribers: dict[str, set[HubSubscription]] = {}
        self._last_sweep = clock()

    @property
    def subscriber_count(self) -> int:
        return sum(len(subs) for subs in self._subscribers.values())

    def publish(self, message: StreamMessage) -> None:
        channel = channel_for(message.user_id)
        now = self._clock()
        if self._replay_traces > 0 and self._replay_trace_messages > 0:
            self._remember(channel, message, now)
        for subscription in self._subscribers.get(channel, ()):
            subscription._offer(message)
        if now - self._last_sweep >= _SWEEP_INTERVAL_SECONDS:
            self._sweep(now)

    def _remember(self, channel: str, message: StreamMessage, now: float) -> None:
        traces = self._buffers.setdefault(channel, OrderedDict())
        buffer = traces.get(message.trace_id)
        if buffer is None:
            buffer = traces[message.trace_id] = _TraceBuffer(self._replay_trace_messages)
            while len(traces) > self._replay_traces:
                evicted, _ = traces.popitem(last=False)
                logger.debug("Hub replay on %s evicted trace %s", channel, evicted)
        elif len(buffer.messages) == buffer.messages.maxlen:
            logger.warning(
                "Hub replay of trace %s exceeds %d messages; oldest dropped",
                message.trace_id,
                self._replay_trace_messages,
            )
        buffer.messages.append((next(self._sequence), message))
        buffer.last_seen = now

    def replay(self, user_id: str, trace_id: str | None = None) -> list[StreamMessage]:
        """Buffered messages of *user_id* in publish order.

        Traces idle for longer than the TTL are skipped; *trace_id*
        restricts the result to one trace.
        """
        traces = self._buffers.get(channel_for(user_id))
        if not traces:
            return []
        cutoff = self._clock() - self._replay_ttl
        if trace_id is not None:
            buffer = traces.get(trace_id)
            if buffer is None or buffer.last_seen < cutoff:
                return []
            return [message for _, message in buffer.messages]
        kept = [
            entry
            for buffer in traces.values()
            if buffer.last_seen >= cutoff
            for entry in buffer.messages
        ]
        kept.sort(key=lambda entry: entry[0])
        return [message for _, message in kept]

    def _sweep(self, now: float) -> None:
        cutoff = now - self._replay_ttl
        for channel in list(self._buffers):
            traces = self._buffers[channel]
            for trace_id in [t for t, b in traces.items() if b.last_seen < cutoff]:
                del traces[trace_id]
            if not traces:
                del self._buffers[channel]
        self._last_sweep = now

    @asynccontextmanager
    async def subscribe(
        self, user_id: str, trace_id: str | None = None
    ) -> AsyncIterator[HubSubscription]:
        """Subscribe to *user_id*'s channel for the duration of the block.

        The subscription starts with the replay (of *trace_id* only, when
        given); live messages of every trace of the user follow.
        """
        channel = channel_for(user_id)
        backlog = self.replay(user_id, trace_id)
        subscription = HubSubscription(
            channel, self._subscriber_queue_size + len(backlog)
        )
        for message in backlog:
            subscription._offer(message)
        self._subscribers.setdefault(channel, set()).add(subscription)
        HUB_SUBSCRIBERS.inc()
        logger.debug("Hub subscriber added on %s", channel)
        try:
            yield subscription
        finally:
            subs = self._subscribers.get(channel)
            if subs is not None:
                subs.discard(subscription)
                if not subs:
                    del self._subscribers[channel]
            HUB_SUBSCRIBERS.dec()
            logger.debug("Hub subscriber removed from %s", channel)
