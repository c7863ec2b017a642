import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockNotOwnedError

from catalog_filter import CatalogFilterAgent
from catalog_filter.errors import PersistenceError
from catalog_filter.session import RedisSessionStore

from conftest import TokenMatchService


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def __getattr__(self, name):
        def queue(*args):
            self.ops.append((name, args))
        return queue

    async def execute(self):
        return [await getattr(self.client, name)(*args) for name, args in self.ops]


class FakeLock:
    """Named lock shared by every store using the same FakeRedis, like a Redis lock across workers."""

    def __init__(self, redis, name, timeout, blocking_timeout):
        self.redis = redis
        self.name = name
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    async def acquire(self):
        lock = self.redis.named_locks.setdefault(self.name, asyncio.Lock())
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout)
        except asyncio.TimeoutError:
            return False
        self.redis.lock_log.append(self.name)
        return True

    async def release(self):
        self.redis.named_locks[self.name].release()


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the session store."""

    def __init__(self):
        self.data = {}
        self.ttls = {}
        self.named_locks = {}
        self.lock_log = []

    def lock(self, name, timeout=None, blocking_timeout=None):
        return FakeLock(self, name, timeout, blocking_timeout)

    def pipeline(self, transaction=True):
        return FakePipeline(self)

    async def rpush(self, key, *values):
        self.data.setdefault(key, []).extend(values)

    async def lrange(self, key, start, end):
        return list(self.data.get(key, []))

    async def sadd(self, key, *values):
        self.data.setdefault(key, set()).update(values)

    async def smembers(self, key):
        return set(self.data.get(key, set()))

    async def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)

    async def expire(self, key, seconds):
        self.ttls[key] = seconds


class BrokenRedis(FakeRedis):
    async def lrange(self, key, start, end):
        raise RedisConnectionError("refused")


@pytest.mark.asyncio
async def test_prompts_and_seen_ids_round_trip():
    fake = FakeRedis()
    store = RedisSessionStore(client=fake, prefix="cf", ttl_seconds=60)

    await store.append_prompt("u1", "fall")
    await store.append_prompt("u1", "")
    await store.append_prompt("u1", "men")
    await store.write_seen_ids("u1", {"a", "b"})
    await store.write_seen_ids("u1", {"c"})

    assert await store.read_prompts("u1") == ["fall", "men"]
    assert await store.read_seen_ids("u1") == {"c"}
    assert fake.ttls == {"cf:u1:prompts": 60, "cf:u1:seen": 60}


@pytest.mark.asyncio
async def test_writing_empty_seen_set_removes_key():
    fake = FakeRedis()
    store = RedisSessionStore(client=fake, prefix="cf")
    await store.write_seen_ids("u1", {"a"})
    await store.write_seen_ids("u1", set())
    assert "cf:u1:seen" not in fake.data


@pytest.mark.asyncio
async def test_clear_only_touches_owner():
    fake = FakeRedis()
    store = RedisSessionStore(client=fake, prefix="cf")
    await store.append_prompt("u1", "fall")
    await store.append_prompt("u2", "men")
    await store.write_seen_ids("u1", {"a"})

    await store.clear("u1")

    assert (await store.read_state("u1")).is_empty
    assert await store.read_prompts("u2") == ["men"]


@pytest.mark.asyncio
async def test_redis_errors_become_persistence_errors():
    store = RedisSessionStore(client=BrokenRedis())
    with pytest.raises(PersistenceError):
        await store.read_prompts("u1")


class SlowTokenMatchService(TokenMatchService):
    """Yields to the event loop mid-call so two requests overlap."""

    async def complete(self, messages, response_format, tools):
        await asyncio.sleep(0.01)
        return await super().complete(messages, response_format, tools)


@pytest.mark.asyncio
async def test_workers_sharing_redis_do_not_lose_updates(catalog):
    fake = FakeRedis()
    # Two agents with their own stores stand in for two server workers
    worker_a = CatalogFilterAgent(service=SlowTokenMatchService(), store=RedisSessionStore(client=fake, prefix="cf"))
    worker_b = CatalogFilterAgent(service=SlowTokenMatchService(), store=RedisSessionStore(client=fake, prefix="cf"))

    await asyncio.gather(
        worker_a.filter_catalog("u1", catalog, "fall"),
        worker_b.filter_catalog("u1", catalog, "men"),
    )

    store = RedisSessionStore(client=fake, prefix="cf")
    assert sorted(await store.read_prompts("u1")) == ["fall", "men"]
    # Whichever ran second refined the first one's result
    assert await store.read_seen_ids("u1") == {"fall-jacket"}
    assert fake.lock_log == ["cf:u1:lock", "cf:u1:lock"]


@pytest.mark.asyncio
async def test_lock_timeout_becomes_persistence_error():
    fake = FakeRedis()
    store = RedisSessionStore(client=fake, prefix="cf", lock_wait=0.01)
    async with store.lock("u1"):
        with pytest.raises(PersistenceError):
            async with store.lock("u1"):
                pass


class ExpiredLockRedis(FakeRedis):
    def lock(self, name, timeout=None, blocking_timeout=None):
        lock = super().lock(name, timeout, blocking_timeout)

        async def release():
            raise LockNotOwnedError("expired")

        lock.release = release
        return lock


@pytest.mark.asyncio
async def test_expired_lock_release_is_not_fatal():
    store = RedisSessionStore(client=ExpiredLockRedis(), prefix="cf")
    async with store.lock("u1"):
        await store.append_prompt("u1", "fall")
    assert await store.read_prompts("u1") == ["fall"]


@pytest.mark.asyncio
async def test_close_closes_client():
    class ClosingRedis(FakeRedis):
        closed = False

        async def aclose(self):
            self.closed = True

    fake = ClosingRedis()
    await RedisSessionStore(client=fake).close()
    assert fake.closed
