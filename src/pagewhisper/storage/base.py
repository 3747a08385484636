"""
CacheStorage - abstract interface for cache persistence backends.

Design Pattern: Adapter Pattern
CacheStorage defines the target interface that every persistence adapter
implements. CacheStore (pagewhisper.core.cache) owns the cache policy (LRU,
TTL, statistics) and depends only on this abstraction, so backends can be
swapped without touching it: in-memory for tests and single processes, SQLite
for a local persistent cache, Redis for a cache shared between processes.

Backends store opaque values. TTL passed to ``set`` is advisory: CacheStore
checks expiry itself on every read, backends may additionally drop expired
keys on their own.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pagewhisper.models.errors import PageWhisperError


class StorageError(PageWhisperError):
    """
    Storage operation failed.

    Raised for backend failures and for use of an unconnected backend.
    """

    pass


class CacheStorage(ABC):
    """
    Abstract persistence interface for CacheStore.

    Usage:
        storage = SqliteCacheStorage("cache.db")
        await storage.connect()
        store = CacheStore(storage)
    """

    async def connect(self) -> None:
        """Open resources. Backends that need none inherit this no-op."""
        return None

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the stored value or None when absent."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Store value under key, replacing any previous value."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove key. Returns True if something was removed."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Remove every key owned by this backend."""
        ...

    @abstractmethod
    async def keys(self) -> list[str]:
        """Return all stored keys."""
        ...

    @abstractmethod
    async def size(self) -> int:
        """Return the number of stored keys."""
        ...

    async def close(self) -> None:
        """Release resources. Backends that hold none inherit this no-op."""
        return None
