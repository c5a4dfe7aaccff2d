"""Per-conversation lock.

Ensures that messages for the same conversation are handled strictly one
at a time for the whole handle cycle.  In-process ``asyncio.Lock``s are
used by default; when a Redis client is supplied the lock is taken in
Redis too, so several service instances also serialize.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from redis.asyncio import Redis


class ConversationLockTimeout(RuntimeError):
    """Raised when lock acquisition times out."""


class ConversationLock:
    def __init__(self, redis: Redis | None = None, ttl_seconds: int = 180) -> None:
        self._redis = redis
        self._ttl = ttl_seconds
        self._local: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def is_locked(self, key: str) -> bool:
        lock = self._local.get(key)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def acquire(self, key: str, timeout: float = 120.0) -> AsyncIterator[None]:
        # asyncio.Lock wakes waiters in FIFO order, which keeps
        # platform delivery order within one conversation.
        local = self._local.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(local.acquire(), timeout=timeout)
            except TimeoutError as exc:
                raise ConversationLockTimeout(f"lock timeout: {key}") from exc
        finally:
            self._waiters[key] -= 1

        try:
            if self._redis is None:
                yield
                return
            async with self._redis_lock(key, timeout):
                yield
        finally:
            local.release()
            if self._waiters.get(key) == 0:
                self._waiters.pop(key, None)
                self._local.pop(key, None)

    @asynccontextmanager
    async def _redis_lock(self, key: str, timeout: float) -> AsyncIterator[None]:
        rlock = self._redis.lock(f"amana:lock:{key}", timeout=self._ttl)
        acquired = await rlock.acquire(blocking=True, blocking_timeout=timeout)
        if not acquired:
            raise ConversationLockTimeout(f"redis lock timeout: {key}")
        try:
            yield
        finally:
            try:
                await rlock.release()
            except Exception as exc:
                # Lock TTL expired mid-cycle; another instance may own it now.
                logger.warning(f"Redis lock release failed for {key}: {exc}")
