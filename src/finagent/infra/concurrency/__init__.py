"""Per-user single-flight control for completions.

Off by default: concurrent requests of one user get independent
``traceId``s and run independently.  When
``concurrency.single_flight_per_user`` is set, a second request waits up
to ``acquire_timeout`` for the first to finish and is otherwise
rejected with ``CompletionInProgress`` (HTTP 409).

Two backends:

* Redis: ``redis.asyncio`` lock per user, with a TTL for crash safety.
* Local: ``asyncio.Lock`` per user.  Used when Redis is unavailable.
"""

from .base import CompletionInProgress, UserLockBackend
from .local_backend import LocalUserLockBackend
from .redis_backend import RedisUserLockBackend
from .user_lock import UserLease, UserLock, build_user_lock, get_user_lock

__all__ = [
    "CompletionInProgress",
    "LocalUserLockBackend",
    "RedisUserLockBackend",
    "UserLease",
    "UserLock",
    "UserLockBackend",
    "build_user_lock",
    "get_user_lock",
]
