"""SQLite-backed cache storage.

Design Pattern: Adapter Pattern
SqliteCacheStorage adapts an SQLite table to the CacheStorage interface, so a
cache survives process restarts without any server.

Implementation details:
- aiosqlite for async operations
- WAL mode for concurrent reads
- Values pickled into a BLOB column
- expires_at stored as INTEGER milliseconds since the epoch (NULL = no TTL)
"""

from __future__ import annotations

import asyncio
import pickle
import time
from pathlib import Path
from typing import Any

import aiosqlite

from pagewhisper.storage.base import CacheStorage, StorageError


class SqliteCacheStorage(CacheStorage):
    """SQLite-backed persistent cache storage.

    After __init__, the instance is not yet usable. Call connect() first.

    Usage:
        storage = SqliteCacheStorage("cache.db")
        await storage.connect()
        try:
            await storage.set("k", value, ttl_seconds=3600)
        finally:
            await storage.close()
    """

    def __init__(self, db_path: str):
        """Initialize storage (connection not opened yet).

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @classmethod
    async def in_memory(cls) -> SqliteCacheStorage:
        """
        Create a connected in-memory SQLite storage for testing.

        Example:
            storage = await SqliteCacheStorage.in_memory()
        """
        instance = cls(":memory:")
        await instance.connect()
        return instance

    def __repr__(self) -> str:
        if self.db_path == ":memory:":
            return "SqliteCacheStorage(in-memory)"
        return f"SqliteCacheStorage({self.db_path})"

    async def connect(self) -> None:
        """Open database connection and initialize schema."""
        if self._connection is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            timeout=5.0,
            isolation_level=None,
        )

        # In-memory databases report "memory" and don't support WAL
        cursor = await self._connection.execute("PRAGMA journal_mode=WAL")
        result = await cursor.fetchone()
        await cursor.close()
        if result:
            mode = result[0].upper()
            if mode not in ("WAL", "MEMORY"):
                raise StorageError(f"Failed to enable WAL mode, got: {result[0]}")

        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA busy_timeout=5000")
        await self._create_schema()
        await self._connection.commit()

    async def _create_schema(self) -> None:
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS cache_entries (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                created_at INTEGER NOT NULL,
                expires_at INTEGER
            )
        """)
        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_cache_entries_expires
            ON cache_entries(expires_at)
        """)

    def _check_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise StorageError("Not connected. Call connect() first.")
        return self._connection

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    async def get(self, key: str) -> Any | None:
        conn = self._check_connected()
        async with self._lock:
            cursor = await conn.execute(
                "SELECT value, expires_at FROM cache_entries WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            await cursor.close()
            if row is None:
                return None
            value, expires_at = row
            if expires_at is not None and self._now_ms() >= expires_at:
                await conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
                return None
        return pickle.loads(value)

    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        conn = self._check_connected()
        now_ms = self._now_ms()
        expires_at = now_ms + int(ttl_seconds * 1000) if ttl_seconds is not None else None
        blob = pickle.dumps(value)
        async with self._lock:
            await conn.execute(
                """
                INSERT INTO cache_entries (key, value, created_at, expires_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    created_at = excluded.created_at,
                    expires_at = excluded.expires_at
                """,
                (key, blob, now_ms, expires_at),
            )

    async def delete(self, key: str) -> bool:
        conn = self._check_connected()
        async with self._lock:
            cursor = await conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            removed = cursor.rowcount
            await cursor.close()
        return removed > 0

    async def clear(self) -> None:
        conn = self._check_connected()
        async with self._lock:
            await conn.execute("DELETE FROM cache_entries")

    async def keys(self) -> list[str]:
        conn = self._check_connected()
        async with self._lock:
            cursor = await conn.execute("SELECT key FROM cache_entries ORDER BY created_at")
            rows = await cursor.fetchall()
            await cursor.close()
        return [row[0] for row in rows]

    async def size(self) -> int:
        conn = self._check_connected()
        async with self._lock:
            cursor = await conn.execute("SELECT COUNT(*) FROM cache_entries")
            row = await cursor.fetchone()
            await cursor.close()
        return row[0] if row else 0

    async def purge_expired(self) -> int:
        """Delete rows whose backend TTL has passed. Returns rows removed."""
        conn = self._check_connected()
        async with self._lock:
            cursor = await conn.execute(
                "DELETE FROM cache_entries WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (self._now_ms(),),
            )
            removed = cursor.rowcount
            await cursor.close()
        return removed

    async def close(self) -> None:
        """Close the connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
