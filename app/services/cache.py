"""Read-through cache for per-user points ledgers.

points_history asks the cache first; on a miss it builds the ledger from
the activity tables and stores it as JSON under "ledger:{user_id}".
Entries leave the cache two ways:

  - activity writes delete the affected user's key (schedule_recompute),
    and a challenge edit drops every ledger with delete_pattern;
  - otherwise the TTL expires them, which bounds staleness when an
    invalidation is missed.

Hits and misses feed cache_operations_total.
"""

from __future__ import annotations

import fnmatch
import time
from typing import Protocol, runtime_checkable

from app.core.metrics import CACHE_OPERATIONS
from app.db.redis import redis_pool


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def delete_pattern(self, pattern: str) -> None:
        """Drop every key matching a glob such as "ledger:*"."""
        ...


def _record(value: str | None) -> str | None:
    CACHE_OPERATIONS.labels(operation="miss" if value is None else "hit").inc()
    return value


class InMemoryCacheService:
    def __init__(self) -> None:
        # key -> (value, monotonic expiry)
        self._store: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is not None and entry[1] <= time.monotonic():
            del self._store[key]
            entry = None
        return _record(entry[0] if entry else None)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = (value, time.monotonic() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def delete_pattern(self, pattern: str) -> None:
        for key in fnmatch.filter(list(self._store), pattern):
            del self._store[key]


class RedisCacheService:
    """Shared by every API instance; keys live under "cache:"."""

    def __init__(self, redis_client, prefix: str = "cache:") -> None:
        self._redis = redis_client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return self._prefix + key

    async def get(self, key: str) -> str | None:
        return _record(await self._redis.get(self._key(key)))

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.set(self._key(key), value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._key(key))

    async def delete_pattern(self, pattern: str) -> None:
        # SCAN in batches; KEYS would block Redis for the whole keyspace.
        batch: list[str] = []
        async for key in self._redis.scan_iter(match=self._key(pattern), count=100):
            batch.append(key)
            if len(batch) >= 100:
                await self._redis.delete(*batch)
                batch.clear()
        if batch:
            await self._redis.delete(*batch)


cache_service: CacheService = (
    RedisCacheService(redis_pool) if redis_pool is not None else InMemoryCacheService()
)
