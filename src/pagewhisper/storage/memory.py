"""In-memory cache storage.

Design Pattern: Adapter Pattern
InMemoryCacheStorage adapts a plain dictionary to the CacheStorage interface.

Instance is immediately usable after __init__.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

from pagewhisper.storage.base import CacheStorage


class InMemoryCacheStorage(CacheStorage):
    """In-memory storage for tests and single-process use.

    Can be substituted for SqliteCacheStorage without changing client code.
    Keys written with a TTL are dropped lazily when read after expiry.

    Usage:
        storage = InMemoryCacheStorage()
        await storage.set("k", value, ttl_seconds=60)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        # {key: (value, expires_at or None)}
        self._data: dict[str, tuple[Any, float | None]] = {}
        self._clock = clock
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"InMemoryCacheStorage(size={len(self._data)})"

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
        async with self._lock:
            self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()

    async def keys(self) -> list[str]:
        async with self._lock:
            return list(self._data)

    async def size(self) -> int:
        async with self._lock:
            return len(self._data)
