"""Persistence backends for the cache store.

Provides multiple storage implementations behind a common interface:
    - CacheStorage: Abstract interface
    - InMemoryCacheStorage: In-memory storage for tests and single processes
    - SqliteCacheStorage: SQLite-backed persistent storage
    - RedisCacheStorage: Redis-backed shared storage

Design: Adapter Pattern + Dependency Inversion
    CacheStore depends on CacheStorage, never on a concrete backend.
"""

from pagewhisper.storage.base import CacheStorage, StorageError

# Backends are imported lazily so aiosqlite and redis load only when used


def __getattr__(name: str):
    """Lazy import storage implementations."""
    if name == "InMemoryCacheStorage":
        from pagewhisper.storage.memory import InMemoryCacheStorage

        return InMemoryCacheStorage
    elif name == "RedisCacheStorage":
        from pagewhisper.storage.redis import RedisCacheStorage

        return RedisCacheStorage
    elif name == "SqliteCacheStorage":
        from pagewhisper.storage.sqlite import SqliteCacheStorage

        return SqliteCacheStorage
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "CacheStorage",
    "StorageError",
    "InMemoryCacheStorage",
    "SqliteCacheStorage",
    "RedisCacheStorage",
]
