"""
CacheStore - TTL-bounded, size-bounded LRU cache over a CacheStorage backend.

The store owns cache policy; the backend only persists. The store keeps an
in-process LRU index (key → expires_at, least recently used first) that
decides eviction and lets expired keys be swept without touching the backend.

Guarantees:
    - An entry read at or after its expires_at is treated as absent and
      removed from the backend. Lazy removal on read and purge_expired()
      agree on the same rule, so neither ever returns stale data.
    - After every set() returns, the number of indexed keys is at most
      max_size. Reads refresh recency; the least recently used key is
      evicted first.
    - get/set/delete are atomic per key (one asyncio.Lock per key). No lock
      spans several keys. A key's lock lives as long as some operation
      holds or awaits it.
    - Statistics are advisory.
"""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from pagewhisper.models.cache import CacheEntry, CacheStats
from pagewhisper.models.config import CacheConfig
from pagewhisper.storage.base import CacheStorage
from pagewhisper.storage.memory import InMemoryCacheStorage

logger = logging.getLogger(__name__)


class CacheStore:
    """LRU + TTL cache shared by any number of concurrent flows.

    The store is always constructed and injected; nothing in pagewhisper
    keeps a module-level cache.

    Usage:
        store = CacheStore(InMemoryCacheStorage(), max_size=100, default_ttl=3600)
        await store.set(key, result)
        entry = await store.get(key)
    """

    def __init__(
        self,
        storage: CacheStorage | None = None,
        *,
        max_size: int = 100,
        default_ttl: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the store.

        Args:
            storage: Persistence backend, in-memory when omitted
            max_size: Maximum number of entries kept
            default_ttl: TTL in seconds used when set() gets none
            clock: Returns the current time in seconds
        """
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if default_ttl <= 0:
            raise ValueError(f"default_ttl must be > 0, got {default_ttl}")
        self._storage = storage if storage is not None else InMemoryCacheStorage()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._index: OrderedDict[str, float] = OrderedDict()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._stats = CacheStats()

    @classmethod
    def from_config(
        cls,
        config: CacheConfig,
        storage: CacheStorage | None = None,
        clock: Callable[[], float] = time.time,
    ) -> CacheStore:
        return cls(
            storage,
            max_size=config.max_size,
            default_ttl=config.ttl_seconds,
            clock=clock,
        )

    def __repr__(self) -> str:
        return f"CacheStore(size={len(self._index)}, max_size={self._max_size}, storage={self._storage!r})"

    @property
    def storage(self) -> CacheStorage:
        return self._storage

    @property
    def max_size(self) -> int:
        return self._max_size

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    # =========================================================================
    # Core operations
    # =========================================================================

    async def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for key, or None if absent or expired."""
        async with self._lock_for(key):
            stored = await self._storage.get(key)
            if not isinstance(stored, CacheEntry):
                if stored is not None:
                    logger.warning(f"Ignoring foreign value under cache key {key[:16]}")
                self._index.pop(key, None)
                self._stats.misses += 1
                return None

            now = self._clock()
            if stored.is_expired(now):
                await self._storage.delete(key)
                self._index.pop(key, None)
                self._stats.expirations += 1
                self._stats.misses += 1
                logger.debug(f"Cache entry expired on read: {key[:16]}")
                return None

            # Entries written by another process sharing the backend join the index here
            self._index[key] = stored.expires_at
            self._index.move_to_end(key)
            self._stats.hits += 1
            victims = self._pop_victims(keep=key)

        await self._evict(victims)
        return stored

    async def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CacheEntry:
        """Store value under key, replacing any previous entry.

        Args:
            key: Cache key
            value: Value to cache (must be picklable for persistent backends)
            ttl: Lifetime in seconds, default_ttl when None
            metadata: Free-form data kept alongside the value

        Returns:
            The stored CacheEntry
        """
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise ValueError(f"ttl must be > 0, got {ttl}")

        now = self._clock()
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=now,
            expires_at=now + ttl,
            metadata=dict(metadata or {}),
        )
        async with self._lock_for(key):
            await self._storage.set(key, entry, ttl)
            self._index[key] = entry.expires_at
            self._index.move_to_end(key)
            victims = self._pop_victims(keep=key)

        await self._evict(victims)
        return entry

    async def delete(self, key: str) -> bool:
        """Remove key. Returns True if the backend held it."""
        async with self._lock_for(key):
            self._index.pop(key, None)
            removed = await self._storage.delete(key)
        return removed

    async def invalidate(self, key: str) -> bool:
        """Drop a key whose source content is known to have changed."""
        removed = await self.delete(key)
        if removed:
            logger.info(f"Invalidated cache entry {key[:16]}")
        return removed

    async def clear(self) -> None:
        await self._storage.clear()
        self._index.clear()
        logger.debug("Cache cleared")

    def size(self) -> int:
        """Number of entries currently indexed. Never exceeds max_size."""
        return len(self._index)

    def keys(self) -> list[str]:
        """Indexed keys, least recently used first."""
        return list(self._index)

    # =========================================================================
    # Eviction and expiry
    # =========================================================================

    def _pop_victims(self, keep: str) -> list[str]:
        """Remove least recently used keys from the index until it fits."""
        victims = []
        while len(self._index) > self._max_size:
            oldest = next(iter(self._index))
            if oldest == keep:
                self._index.move_to_end(oldest)
                continue
            self._index.popitem(last=False)
            victims.append(oldest)
        return victims

    async def _evict(self, victims: list[str]) -> None:
        for victim in victims:
            async with self._lock_for(victim):
                # Re-set concurrently: it is live again, keep it
                if victim in self._index:
                    continue
                await self._storage.delete(victim)
            self._stats.evictions += 1
            logger.debug(f"Evicted least recently used entry {victim[:16]}")

    async def purge_expired(self, now: float | None = None) -> int:
        """Remove every indexed entry past its expiry. Returns how many were removed."""
        now = self._clock() if now is None else now
        expired = [key for key, expires_at in self._index.items() if now >= expires_at]
        removed = 0
        for key in expired:
            async with self._lock_for(key):
                expires_at = self._index.get(key)
                if expires_at is None or now < expires_at:
                    continue
                del self._index[key]
                await self._storage.delete(key)
            removed += 1
        self._stats.expirations += removed
        self._stats.last_purged_at = now
        if removed:
            logger.debug(f"Purged {removed} expired cache entries")
        return removed

    async def load(self) -> int:
        """Index entries already present in the backend. Returns how many were indexed."""
        now = self._clock()
        loaded = 0
        for key in await self._storage.keys():
            stored = await self._storage.get(key)
            if not isinstance(stored, CacheEntry):
                continue
            if stored.is_expired(now):
                await self._storage.delete(key)
                continue
            self._index[key] = stored.expires_at
            loaded += 1
        # Oldest entries first so the newest survive the bound
        ordered = sorted(self._index.items(), key=lambda item: item[1])
        self._index = OrderedDict(ordered)
        victims = []
        while len(self._index) > self._max_size:
            victims.append(self._index.popitem(last=False)[0])
        await self._evict(victims)
        return loaded - len(victims)

    # =========================================================================
    # Statistics
    # =========================================================================

    def stats(self) -> CacheStats:
        """Snapshot of the advisory counters."""
        return replace(self._stats, size=len(self._index))

    def reset_stats(self) -> None:
        self._stats = CacheStats()
