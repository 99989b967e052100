"""UserLock: at most one running completion per ``userId`` (opt-in)."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Request
from redis.asyncio import Redis

from finagent.configs.config import AppConfig, get_app_config
from finagent.core.service.metrics import USER_LOCK_REJECTIONS_TOTAL
from finagent.infra.lifespan import get_app
from finagent.infra.redis import build_redis
from finagent.infra.telemetry import SPAN_USER_LOCK, tracer

from .base import CompletionInProgress, UserLockBackend
from .local_backend import LocalUserLockBackend
from .redis_backend import RedisUserLockBackend

logger = logging.getLogger(__name__)

_KEY_PREFIX = "finagent:user_lock"


class UserLease:
    """A held user lock; ``release`` is idempotent."""

    def __init__(
        self, backend: UserLockBackend | None, user_id: str, token: Any
    ) -> None:
        self._backend = backend
        self._user_id = user_id
        self._token = token
        self._acquired_at = time.monotonic()
        self._released = False

    async def release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._backend is not None:
            await self._backend.release(self._user_id, self._token)
            logger.debug(
                "User lock for %s released after %.3fs",
                self._user_id,
                time.monotonic() - self._acquired_at,
            )


class UserLock:
    """Keyed mutex over a ``UserLockBackend``.

    With no backend (``single_flight_per_user`` off) every acquire
    succeeds immediately, so concurrent requests of one user run
    independently.

    Usage::

        async with user_lock.hold(user_id):
            result = await orchestrator.complete(request)
    """

    def __init__(
        self, backend: UserLockBackend | None, acquire_timeout: timedelta
    ) -> None:
        self._backend = backend
        self._acquire_timeout = acquire_timeout.total_seconds()

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    async def acquire(self, user_id: str) -> UserLease:
        """Claim *user_id*'s lock.

        Raises:
            CompletionInProgress: if the lock stays held for the whole
                acquire timeout.
        """
        if self._backend is None:
            return UserLease(None, user_id, None)
        with tracer.start_as_current_span(SPAN_USER_LOCK) as span:
            token = await self._backend.acquire(user_id, self._acquire_timeout)
            span.set_attribute("user_lock.acquired", token is not None)
        if token is None:
            USER_LOCK_REJECTIONS_TOTAL.inc()
            logger.info("Rejected request: completion already running for %s", user_id)
            raise CompletionInProgress(user_id)
        return UserLease(self._backend, user_id, token)

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncGenerator[UserLease, None]:
        lease = await self.acquire(user_id)
        try:
            yield lease
        finally:
            await lease.release()

    async def aclose(self) -> None:
        if self._backend is not None:
            await self._backend.aclose()


# ---------------------------------------------------------------------------
# Lifespan dependency
# ---------------------------------------------------------------------------


async def build_user_lock(
    app: Annotated[FastAPI, Depends(get_app)],
    redis_client: Annotated[Redis | None, Depends(build_redis)],
    config: Annotated[AppConfig, Depends(get_app_config)],
) -> AsyncGenerator[UserLock, None]:
    """Create the ``UserLock``, attach to ``app.state``; close on shutdown."""
    cc = config.concurrency
    backend: UserLockBackend | None = None
    if not cc.single_flight_per_user:
        logger.info("UserLock: disabled (concurrent requests per user allowed)")
    elif redis_client is not None:
        backend = RedisUserLockBackend(redis_client, _KEY_PREFIX, ttl=cc.lock_ttl)
        logger.info("UserLock: Redis backend (prefix=%s)", _KEY_PREFIX)
    else:
        backend = LocalUserLockBackend()
        logger.info("UserLock: local backend")

    user_lock = UserLock(backend, acquire_timeout=cc.acquire_timeout)
    app.state.user_lock = user_lock
    yield user_lock
    await user_lock.aclose()


# ---------------------------------------------------------------------------
# Per-request dependency
# ---------------------------------------------------------------------------


def get_user_lock(request: Request) -> UserLock:
    """Return the ``UserLock`` from ``app.state``."""
    return request.app.state.user_lock
