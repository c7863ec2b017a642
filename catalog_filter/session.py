"""Per-owner session storage.

Provides:
- AbstractSessionStore: the six operations the agent relies on
- InMemorySessionStore: process-local store for tests and the CLI
- RedisSessionStore: shared store backed by redis.asyncio
- OwnerLocks: in-process per-owner locks, dropped once idle

Every store also hands out `lock(owner_id)`, which the agent holds around the
read -> call -> write pipeline so requests for one owner never interleave."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncContextManager, AsyncIterator, Dict, Iterator, List, Optional, Set

import redis.asyncio as redis
from redis.exceptions import RedisError

from .config import (
    REDIS_KEY_PREFIX,
    REDIS_LOCK_TIMEOUT_SECONDS,
    REDIS_LOCK_WAIT_SECONDS,
    REDIS_URL,
    SESSION_TTL_SECONDS,
)
from .errors import PersistenceError
from .models import SessionState

logger = logging.getLogger(__name__)


class AbstractSessionStore:
    """Interface for session stores. Every call is scoped to one owner."""

    async def read_prompts(self, owner_id: str) -> List[str]:
        raise NotImplementedError

    async def append_prompt(self, owner_id: str, prompt: str) -> None:
        raise NotImplementedError

    async def clear_prompts(self, owner_id: str) -> None:
        raise NotImplementedError

    async def read_seen_ids(self, owner_id: str) -> Set[str]:
        raise NotImplementedError

    async def write_seen_ids(self, owner_id: str, ids: Set[str]) -> None:
        #Replace the whole seen set
        raise NotImplementedError

    async def clear_seen_ids(self, owner_id: str) -> None:
        raise NotImplementedError

    async def read_state(self, owner_id: str) -> SessionState:
        return SessionState(
            active_prompts=await self.read_prompts(owner_id),
            seen_item_ids=await self.read_seen_ids(owner_id),
        )

    async def clear(self, owner_id: str) -> None:
        await self.clear_prompts(owner_id)
        await self.clear_seen_ids(owner_id)

    def lock(self, owner_id: str) -> AsyncContextManager[None]:
        #Exclusive hold on the owner's session; raise PersistenceError when it cannot be taken
        raise NotImplementedError

    async def close(self) -> None:
        pass


class InMemorySessionStore(AbstractSessionStore):
    """Sessions kept in a dict; state is created on first write."""

    def __init__(self) -> None:
        self._sessions: Dict[str, SessionState] = {}
        self.locks = OwnerLocks()

    def lock(self, owner_id: str) -> AsyncContextManager[None]:
        return self.locks.hold(owner_id)

    def _get_or_create(self, owner_id: str) -> SessionState:
        if owner_id not in self._sessions:
            self._sessions[owner_id] = SessionState()
        return self._sessions[owner_id]

    async def read_prompts(self, owner_id: str) -> List[str]:
        state = self._sessions.get(owner_id)
        return list(state.active_prompts) if state else []

    async def append_prompt(self, owner_id: str, prompt: str) -> None:
        if not prompt or not prompt.strip():
            return
        self._get_or_create(owner_id).active_prompts.append(prompt)

    async def clear_prompts(self, owner_id: str) -> None:
        state = self._sessions.get(owner_id)
        if state:
            state.active_prompts = []
            self._drop_if_empty(owner_id)

    async def read_seen_ids(self, owner_id: str) -> Set[str]:
        state = self._sessions.get(owner_id)
        return set(state.seen_item_ids) if state else set()

    async def write_seen_ids(self, owner_id: str, ids: Set[str]) -> None:
        self._get_or_create(owner_id).seen_item_ids = set(ids)

    async def clear_seen_ids(self, owner_id: str) -> None:
        state = self._sessions.get(owner_id)
        if state:
            state.seen_item_ids = set()
            self._drop_if_empty(owner_id)

    def _drop_if_empty(self, owner_id: str) -> None:
        if self._sessions[owner_id].is_empty:
            del self._sessions[owner_id]

    def __contains__(self, owner_id: str) -> bool:
        return owner_id in self._sessions


@contextmanager
def _persistence_errors(action: str, owner_id: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        raise PersistenceError(f"{action} failed for {owner_id}: {e}") from e


class RedisSessionStore(AbstractSessionStore):
    """Prompts live in a Redis list, seen ids in a Redis set.

    Keys: `{prefix}:{owner_id}:prompts` and `{prefix}:{owner_id}:seen`.
    A positive `ttl_seconds` expires idle sessions.
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        url: str = REDIS_URL,
        prefix: str = REDIS_KEY_PREFIX,
        ttl_seconds: int = SESSION_TTL_SECONDS,
        lock_timeout: float = REDIS_LOCK_TIMEOUT_SECONDS,
        lock_wait: float = REDIS_LOCK_WAIT_SECONDS,
    ) -> None:
        self._client = client or redis.from_url(url, decode_responses=True)
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds
        self.lock_timeout = lock_timeout
        self.lock_wait = lock_wait

    def _prompts_key(self, owner_id: str) -> str:
        return f"{self.prefix}:{owner_id}:prompts"

    def _seen_key(self, owner_id: str) -> str:
        return f"{self.prefix}:{owner_id}:seen"

    def _lock_key(self, owner_id: str) -> str:
        return f"{self.prefix}:{owner_id}:lock"

    @asynccontextmanager
    async def lock(self, owner_id: str) -> AsyncIterator[None]:
        """Redis lock shared by every worker; it expires after `lock_timeout` if a holder dies."""
        lock = self._client.lock(
            self._lock_key(owner_id), timeout=self.lock_timeout, blocking_timeout=self.lock_wait
        )
        with _persistence_errors("lock", owner_id):
            acquired = await lock.acquire()
        if not acquired:
            raise PersistenceError(f"lock for {owner_id} not acquired within {self.lock_wait:g}s")
        try:
            yield
        finally:
            try:
                await lock.release()
            except RedisError as e:
                logger.warning("Could not release session lock for %s: %s", owner_id, e)

    async def read_prompts(self, owner_id: str) -> List[str]:
        with _persistence_errors("read_prompts", owner_id):
            return list(await self._client.lrange(self._prompts_key(owner_id), 0, -1))

    async def append_prompt(self, owner_id: str, prompt: str) -> None:
        if not prompt or not prompt.strip():
            return
        key = self._prompts_key(owner_id)
        with _persistence_errors("append_prompt", owner_id):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.rpush(key, prompt)
                if self.ttl_seconds > 0:
                    pipe.expire(key, self.ttl_seconds)
                await pipe.execute()

    async def clear_prompts(self, owner_id: str) -> None:
        with _persistence_errors("clear_prompts", owner_id):
            await self._client.delete(self._prompts_key(owner_id))

    async def read_seen_ids(self, owner_id: str) -> Set[str]:
        with _persistence_errors("read_seen_ids", owner_id):
            return set(await self._client.smembers(self._seen_key(owner_id)))

    async def write_seen_ids(self, owner_id: str, ids: Set[str]) -> None:
        key = self._seen_key(owner_id)
        with _persistence_errors("write_seen_ids", owner_id):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if ids:
                    pipe.sadd(key, *sorted(ids))
                    if self.ttl_seconds > 0:
                        pipe.expire(key, self.ttl_seconds)
                await pipe.execute()

    async def clear_seen_ids(self, owner_id: str) -> None:
        with _persistence_errors("clear_seen_ids", owner_id):
            await self._client.delete(self._seen_key(owner_id))

    async def clear(self, owner_id: str) -> None:
        with _persistence_errors("clear", owner_id):
            await self._client.delete(self._prompts_key(owner_id), self._seen_key(owner_id))

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Closed Redis session store")


class OwnerLocks:
    """One asyncio.Lock per owner, dropped once nobody holds or waits for it."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, owner_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(owner_id)
        if lock is None:
            lock = self._locks[owner_id] = asyncio.Lock()
        self._users[owner_id] = self._users.get(owner_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[owner_id] -= 1
            if not self._users[owner_id]:
                del self._users[owner_id]
                del self._locks[owner_id]

    def __len__(self) -> int:
        return len(self._locks)
