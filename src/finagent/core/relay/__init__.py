"""Relay of completion events to the in-process hub and Redis."""

from .deps import build_relay, get_stream_hub, get_stream_relay
from .hub import HubSubscription, StreamHub, channel_for
from .publisher import RedisPublisher, StreamTransportError
from .relay import RelayTarget, StreamRelay, to_stream_message

__all__ = [
    "HubSubscription",
    "RedisPublisher",
    "RelayTarget",
    "StreamHub",
    "StreamRelay",
    "StreamTransportError",
    "build_relay",
    "channel_for",
    "get_stream_hub",
    "get_stream_relay",
    "to_stream_message",
]
