"""Redis-backed cache storage.

Lets several processes share one cache. Values are pickled; expiry uses the
native PX option of SET so Redis drops expired keys itself.

Data Structures:
- {prefix}{cache_key} (STRING): pickled value, PX = ttl in milliseconds

Design: Adapter Pattern
Implements CacheStorage for Redis.
"""

from __future__ import annotations

import pickle
from typing import Any

import redis.asyncio as redis

from pagewhisper.storage.base import CacheStorage, StorageError

DEFAULT_PREFIX = "pagewhisper:cache:"


class RedisCacheStorage(CacheStorage):
    """Redis cache storage using connection pooling.

    Either give a URL and call connect(), or hand over an existing client.

    Usage:
        storage = RedisCacheStorage("redis://localhost:6379")
        await storage.connect()
        store = CacheStore(storage)
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        max_connections: int = 16,
        prefix: str = DEFAULT_PREFIX,
        client: redis.Redis | None = None,
    ):
        """Initialize Redis cache storage.

        Args:
            redis_url: Redis connection URL
            max_connections: Maximum pool size
            prefix: Namespace prepended to every key
            client: Already configured client, used instead of redis_url
        """
        self._redis_url = redis_url
        self._max_connections = max_connections
        self._prefix = prefix
        self._redis: redis.Redis | None = client
        self._owns_client = client is None

    def __repr__(self) -> str:
        return f"RedisCacheStorage({self._redis_url}, prefix={self._prefix!r})"

    async def connect(self) -> None:
        """Establish Redis connection pool."""
        if self._redis is not None:
            return
        self._redis = redis.from_url(
            self._redis_url,
            decode_responses=False,
            max_connections=self._max_connections,
        )

    async def close(self) -> None:
        """Close the connection pool if this instance created it."""
        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
        self._redis = None

    def _check_connected(self) -> redis.Redis:
        if self._redis is None:
            raise StorageError("Not connected. Call connect() first.")
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _strip(self, raw: bytes | str) -> str:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return raw[len(self._prefix) :]

    async def get(self, key: str) -> Any | None:
        client = self._check_connected()
        data = await client.get(self._key(key))
        if data is None:
            return None
        return pickle.loads(data)

    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        client = self._check_connected()
        px = max(1, int(ttl_seconds * 1000)) if ttl_seconds is not None else None
        await client.set(self._key(key), pickle.dumps(value), px=px)

    async def delete(self, key: str) -> bool:
        client = self._check_connected()
        return await client.delete(self._key(key)) > 0

    async def clear(self) -> None:
        client = self._check_connected()
        keys = [k async for k in client.scan_iter(match=f"{self._prefix}*")]
        if keys:
            await client.delete(*keys)

    async def keys(self) -> list[str]:
        client = self._check_connected()
        return [self._strip(k) async for k in client.scan_iter(match=f"{self._prefix}*")]

    async def size(self) -> int:
        return len(await self.keys())
