"""Background expiry sweep for a CacheStore.

Lazy removal on read already guarantees no stale entry is ever returned. The
sweeper only reclaims space held by entries nobody reads again.
"""

from __future__ import annotations

import asyncio
import logging

from pagewhisper.core.cache import CacheStore
from pagewhisper.models.config import CacheConfig
from pagewhisper.storage.base import StorageError

logger = logging.getLogger(__name__)


class CacheSweeper:
    """Periodically calls CacheStore.purge_expired().

    Usage:
        handle = await CacheSweeper(store).with_interval(300).start()
        ...
        await handle.shutdown()
    """

    def __init__(self, store: CacheStore, interval: float = 300.0):
        self._store = store
        self._interval = interval
        self._shutdown_event = asyncio.Event()
        self._sweeps = 0

    @classmethod
    def from_config(cls, store: CacheStore, config: CacheConfig) -> CacheSweeper:
        return cls(store, interval=config.cleanup_interval_seconds)

    def with_interval(self, interval: float) -> CacheSweeper:
        """Set seconds between sweeps. Returns self for chaining."""
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self._interval = interval
        return self

    @property
    def sweeps(self) -> int:
        """Number of completed sweeps."""
        return self._sweeps

    async def start(self) -> SweeperHandle:
        """Start the sweep loop and return a handle immediately."""
        self._shutdown_event.clear()
        task = asyncio.create_task(self._run())
        return SweeperHandle(self, task)

    async def shutdown(self) -> None:
        """Signal the loop to stop after the current sweep."""
        self._shutdown_event.set()

    async def _run(self) -> None:
        logger.info(f"Cache sweeper started (interval={self._interval}s)")
        try:
            while not self._shutdown_event.is_set():
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=self._interval)
                    break
                except TimeoutError:
                    pass
                try:
                    removed = await self._store.purge_expired()
                    self._sweeps += 1
                    if removed:
                        logger.info(f"Cache sweep removed {removed} expired entries")
                except StorageError as e:
                    logger.error(f"Cache sweep failed: {e}")
        finally:
            logger.info("Cache sweeper stopped")


class SweeperHandle:
    """Handle for controlling a running sweeper.

    Usage:
        handle = await sweeper.start()
        await handle.shutdown()
    """

    def __init__(self, sweeper: CacheSweeper, task: asyncio.Task):
        self._sweeper = sweeper
        self._task = task

    def is_running(self) -> bool:
        return not self._task.done()

    async def shutdown(self) -> None:
        """Stop the sweeper and wait for the loop to exit."""
        await self._sweeper.shutdown()
        await self._task

    def abort(self) -> None:
        """Cancel the sweep loop without waiting."""
        self._task.cancel()
