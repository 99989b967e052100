"""Lifespan and request dependencies for the stream relay."""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, FastAPI, Request

from finagent.configs.config import AppConfig, get_app_config
from finagent.infra.lifespan import get_app

from .hub import StreamHub
from .publisher import RedisPublisher
from .relay import StreamRelay

logger = logging.getLogger(__name__)


async def build_relay(
    app: Annotated[FastAPI, Depends(get_app)],
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> AsyncGenerator[StreamRelay, None]:
    """Create hub, publisher and relay on ``app.state``; drain on shutdown."""
    rc = config.relay
    hub = StreamHub(
        replay_traces=rc.replay_traces,
        replay_trace_messages=rc.replay_trace_messages,
        replay_ttl=rc.replay_ttl,
    )

    publisher: RedisPublisher | None = None
    if config.third_party.redis_uri:
        publisher = RedisPublisher.from_config(config.third_party.redis_uri, rc)
        logger.info("Stream relay: hub + Redis channel %s", rc.channel)
    else:
        logger.info("Stream relay: in-process hub only (Redis disabled)")

    relay = StreamRelay(hub, publisher)
    app.state.stream_hub = hub
    app.state.stream_relay = relay
    yield relay

    if publisher is not None:
        await publisher.aclose()


def get_stream_relay(request: Request) -> StreamRelay:
    """Return the ``StreamRelay`` from ``app.state``."""
    return request.app.state.stream_relay


def get_stream_hub(request: Request) -> StreamHub:
    """Return the ``StreamHub`` from ``app.state``."""
    return request.app.state.stream_hub
