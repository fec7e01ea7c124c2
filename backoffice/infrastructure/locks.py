"""
Locks.

``DistributedLock`` (Redis) is used by the notification worker so that
only one API instance runs the daily checks.  Implementation uses SET NX EX
for acquire and a Lua script for atomic check-and-delete on release.

``KeyedLock`` is an in-process ``asyncio.Lock`` per key.  The booking
writer holds ``car_locks[car_id]`` across conflict check, write and
commit, so coroutines in one worker can never both pass the check for the
same car.  Across processes the row lock and the database exclusion
constraint take over.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable

import redis.asyncio as aioredis


class DistributedLock:
    def __init__(
        self, client: aioredis.Redis, key: str, ttl_seconds: int = 30
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.token = str(uuid.uuid4())

    async def acquire(self) -> bool:
        """Try to acquire. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        lua = """
        if redis.call("get", KEYS[1]) == ARGV[1] then
            return redis.call("del", KEYS[1])
        else
            return 0
        end
        """
        await self.redis.eval(lua, 1, self.key, self.token)

    # context-manager support
    async def __aenter__(self):
        acquired = await self.acquire()
        if not acquired:
            raise RuntimeError(f"Could not acquire lock: {self.key}")
        return self

    async def __aexit__(self, *args):
        await self.release()


class KeyedLock:
    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._waiters: dict[Hashable, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, *keys: Hashable) -> AsyncIterator[None]:
        """Hold the locks for *keys*, taken in sorted order to avoid deadlock."""
        ordered = sorted(set(keys))
        for key in ordered:
            self._waiters[key] += 1
        acquired = []
        try:
            for key in ordered:
                await self._locks[key].acquire()
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
            for key in ordered:
                self._waiters[key] -= 1
                if not self._waiters[key]:
                    # nobody queued: drop the entry so the map stays small
                    del self._waiters[key]
                    self._locks.pop(key, None)

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


car_locks = KeyedLock()
