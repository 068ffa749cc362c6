from __future__ import annotations

import asyncio

import pytest

from haccp.core.errors import PersistError
from haccp.services.archive import KeyedLocks, RedisKeyedLocks, build_archive_locks
from haccp.services.archive.locks import ARCHIVE_LOCK_PREFIX
from haccp.tests.utils.redis import FakeRedis


@pytest.mark.asyncio
async def test_same_key_writers_are_serialized() -> None:
    locks = KeyedLocks()
    order: list[str] = []
    release = asyncio.Event()

    async def first() -> None:
        async with locks.hold("t1/2024-01"):
            order.append("first-start")
            await release.wait()
            order.append("first-end")

    async def second() -> None:
        async with locks.hold("t1/2024-01"):
            order.append("second")

    first_task = asyncio.create_task(first())
    await asyncio.sleep(0)
    second_task = asyncio.create_task(second())
    await asyncio.sleep(0.01)
    assert order == ["first-start"]
    assert locks.locked("t1/2024-01")

    release.set()
    await asyncio.gather(first_task, second_task)
    assert order == ["first-start", "first-end", "second"]


@pytest.mark.asyncio
async def test_different_keys_do_not_block_each_other() -> None:
    locks = KeyedLocks()
    async with locks.hold("t1/2024-01"):
        async def other() -> str:
            async with locks.hold("t2/2024-01"):
                return "done"

        assert await asyncio.wait_for(other(), timeout=1.0) == "done"


@pytest.mark.asyncio
async def test_registry_drops_unused_locks() -> None:
    locks = KeyedLocks()
    async with locks.hold("a"):
        assert len(locks) == 1
    assert len(locks) == 0
    assert not locks.locked("a")


@pytest.mark.asyncio
async def test_lock_is_released_when_holder_raises() -> None:
    locks = KeyedLocks()
    with pytest.raises(RuntimeError):
        async with locks.hold("a"):
            raise RuntimeError("boom")
    async with locks.hold("a"):
        pass
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_redis_locks_exclude_holders_in_other_processes() -> None:
    redis = FakeRedis()
    # Two registries stand for the API process and the arq worker.
    api_locks = RedisKeyedLocks(redis, poll_s=0.01)
    worker_locks = RedisKeyedLocks(redis, poll_s=0.01)
    order: list[str] = []

    async def worker_publish() -> None:
        async with worker_locks.hold("t1/2024-01"):
            order.append("worker")

    async with api_locks.hold("t1/2024-01"):
        assert set(redis.values) == {f"{ARCHIVE_LOCK_PREFIX}t1/2024-01"}
        blocked = asyncio.create_task(worker_publish())
        async with worker_locks.hold("t2/2024-01"):
            order.append("other-key")
        await asyncio.sleep(0.05)
        assert order == ["other-key"]
        order.append("api")

    await asyncio.wait_for(blocked, timeout=1.0)
    assert order == ["other-key", "api", "worker"]
    assert redis.values == {}


@pytest.mark.asyncio
async def test_redis_lock_release_leaves_a_newer_owner_alone() -> None:
    redis = FakeRedis()
    locks = RedisKeyedLocks(redis)
    name = f"{ARCHIVE_LOCK_PREFIX}t1/2024-01"

    async with locks.hold("t1/2024-01"):
        # The lock lapsed and another process claimed it.
        redis.values[name] = "someone-else"

    assert redis.values == {name: "someone-else"}
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_unreachable_redis_is_a_persist_error() -> None:
    locks = RedisKeyedLocks(FakeRedis(available=False))
    with pytest.raises(PersistError):
        async with locks.hold("t1/2024-01"):
            pass
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_lock_scope_follows_the_scheduler_mode(settings) -> None:
    locks, redis = build_archive_locks(settings)
    assert type(locks) is KeyedLocks
    assert redis is None

    worker_settings = settings.model_copy(update={"retention_scheduler_mode": "worker"})
    for candidate, shared in ((worker_settings, False), (settings, True)):
        # Clients connect lazily, so nothing here reaches a Redis server.
        locks, redis = build_archive_locks(candidate, shared=shared)
        assert isinstance(locks, RedisKeyedLocks)
        assert redis is not None
        await redis.aclose()
