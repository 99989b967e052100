"""Distributed user-lock backend on top of ``redis.asyncio`` locks."""

from __future__ import annotations

import logging
from datetime import timedelta

from redis.asyncio import Redis
from redis.asyncio.lock import Lock
from redis.exceptions import LockError

from .base import UserLockBackend

logger = logging.getLogger(__name__)


class RedisUserLockBackend(UserLockBackend):
    """One Redis lock per user.

    Keys expire after ``ttl`` so a crashed worker cannot block a user
    forever.
    """

    def __init__(self, redis: Redis, key_prefix: str, ttl: timedelta) -> None:
        self._redis = redis
        self._key_prefix = key_prefix
        self._ttl_seconds = ttl.total_seconds()

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    async def acquire(self, key: str, timeout: float) -> Lock | None:
        lock = self._redis.lock(
            self._key(key),
            timeout=self._ttl_seconds,
            blocking=True,
            blocking_timeout=timeout,
        )
        if await lock.acquire():
            return lock
        return None

    async def release(self, key: str, token: Lock) -> None:
        try:
            await token.release()
        except LockError:
            logger.warning("User lock %s expired before it was released.", self._key(key))

    async def aclose(self) -> None:
        # Redis client lifecycle is managed by infra/redis.py.
        pass
