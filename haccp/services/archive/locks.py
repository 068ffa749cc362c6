from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import Any, AsyncIterator, Hashable
from uuid import uuid4

from redis.asyncio import Redis
from redis.exceptions import RedisError

from haccp.core.config import Settings
from haccp.core.errors import PersistError


logger = logging.getLogger(__name__)

ARCHIVE_LOCK_PREFIX = "haccp:archive:lock:"


class KeyedLocks:
    """Mutual exclusion scoped to one key; different keys never block each other.

    Locks are created on first use and dropped once no task holds or waits on
    them, so the registry stays bounded by the number of in-flight keys.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users[key] - 1
            if remaining:
                self._users[key] = remaining
            else:
                self._users.pop(key, None)
                self._locks.pop(key, None)

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


class RedisKeyedLocks(KeyedLocks):
    """Per-key exclusion shared by every process publishing into the same archive.

    Local waiters queue on the in-process lock; the holder then claims a Redis
    key with a random token (``SET NX EX``), polling until it is free. The key
    expires after ``ttl_s`` so a crashed holder cannot wedge the archive.
    """

    def __init__(
        self,
        redis: Any,
        *,
        ttl_s: float = 900.0,
        poll_s: float = 0.1,
        prefix: str = ARCHIVE_LOCK_PREFIX,
    ) -> None:
        super().__init__()
        self._redis = redis
        self._ttl_s = max(1, int(ttl_s))
        self._poll_s = max(0.01, float(poll_s))
        self._prefix = prefix

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        async with super().hold(key):
            name = f"{self._prefix}{key}"
            token = uuid4().hex
            await self._acquire(name, token)
            try:
                yield
            finally:
                await self._release(name, token)

    async def _acquire(self, name: str, token: str) -> None:
        while True:
            try:
                acquired = await self._redis.set(name, token, nx=True, ex=self._ttl_s)
            except RedisError as exc:
                raise PersistError(f"archive lock unavailable: {name}") from exc
            if acquired:
                return
            await asyncio.sleep(self._poll_s)

    async def _release(self, name: str, token: str) -> None:
        # Release only while this holder still owns the token; an expired lock may have a new owner.
        try:
            current = await self._redis.get(name)
            value = current.decode("utf-8") if isinstance(current, (bytes, bytearray)) else str(current or "")
            if value == token:
                await self._redis.delete(name)
        except RedisError as exc:
            logger.warning("archive_lock_release_failed name=%s ttl_s=%s", name, self._ttl_s, exc_info=exc)


def build_archive_locks(settings: Settings, *, shared: bool = False) -> tuple[KeyedLocks, Redis | None]:
    """Pick the lock scope for the deployment mode.

    In ``worker`` mode the arq worker and the API both publish reports, so the
    per-key lock lives in Redis; ``shared`` forces that for processes that are
    never alone. The returned client is owned by the caller.
    """
    if not shared and settings.retention_scheduler_mode != "worker":
        return KeyedLocks(), None
    redis = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    # A holder must never outlive its lock, so the TTL covers a whole timed-out step.
    ttl_s = max(float(settings.archive_lock_ttl_s), float(settings.report_cycle_timeout_s) * 2)
    locks = RedisKeyedLocks(redis, ttl_s=ttl_s, poll_s=settings.archive_lock_poll_s)
    return locks, redis
