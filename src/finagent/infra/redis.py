"""Async Redis client lifespan dependency.

``build_redis`` yields the shared client used by the Redis user-lock
backend, or ``None`` when ``third_party.redis_uri`` is empty or the
server does not answer a ping.  The relay publisher does not use this
client: it connects lazily on its own so that a Redis outage at startup
never delays serving requests.
"""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from redis.asyncio import Redis

from finagent.configs.config import AppConfig, get_app_config

logger = logging.getLogger(__name__)


async def build_redis(
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> AsyncGenerator[Redis | None, None]:
    """Create a Redis client; yield ``None`` if disabled or unreachable."""
    uri = config.third_party.redis_uri
    if not uri:
        logger.info("Redis disabled (third_party.redis_uri is empty).")
        yield None
        return

    client = Redis.from_url(uri, decode_responses=True)
    verified: Redis | None = None
    try:
        await client.ping()
        verified = client
    except Exception:
        logger.warning("Redis unavailable; falling back to local user locks.")
        await client.aclose()

    yield verified

    if verified is not None:
        await verified.aclose()
