"""Single-process user-lock backend using ``asyncio.Lock`` per key."""

from __future__ import annotations

import asyncio

from .base import UserLockBackend


class LocalUserLockBackend(UserLockBackend):
    """One ``asyncio.Lock`` per user, dropped once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    def _unref(self, key: str) -> None:
        self._refs[key] -= 1
        if self._refs[key] == 0:
            del self._refs[key]
            del self._locks[key]

    async def acquire(self, key: str, timeout: float) -> asyncio.Lock | None:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with asyncio.timeout(timeout):
                await lock.acquire()
        except TimeoutError:
            self._unref(key)
            return None
        except BaseException:
            self._unref(key)
            raise
        return lock

    async def release(self, key: str, token: asyncio.Lock) -> None:
        token.release()
        self._unref(key)

    async def aclose(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._locks)
