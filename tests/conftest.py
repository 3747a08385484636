"""
Pytest configuration and fixtures for pagewhisper tests.

Provides storage backends, a controllable clock, scripted remote clients and
fast retry configurations.
"""

import asyncio
import shutil
import tempfile
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from pagewhisper.core import CacheStore
from pagewhisper.models import (
    FlowConfig,
    RemoteRequest,
    RemoteResponse,
    RetryConfig,
    TokenUsage,
)
from pagewhisper.storage import InMemoryCacheStorage, SqliteCacheStorage


def pytest_sessionfinish(session, exitstatus):
    """Force cleanup after all tests complete to prevent CI hanging."""
    import os

    if os.getenv("CI") or os.getenv("GITHUB_ACTIONS"):
        os._exit(exitstatus)


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedClient:
    """RemoteClient whose answers are scripted per target.

    Each script item is an exception instance (raised), a RemoteResponse or a
    string (returned as content). Once a target's script runs out, every call
    returns the default content.
    """

    def __init__(self, script=None, default="export default function Component() {}", delay=0.0):
        self._script = {target: list(items) for target, items in (script or {}).items()}
        self.default = default
        self.delay = delay
        self.calls: list[RemoteRequest] = []

    @property
    def targets(self) -> list[str]:
        return [request.target for request in self.calls]

    async def generate(self, request: RemoteRequest) -> RemoteResponse:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        queue = self._script.get(request.target)
        item = queue.pop(0) if queue else None
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, RemoteResponse):
            return item
        content = item if isinstance(item, str) else self.default
        return RemoteResponse(
            content=content,
            model=f"{request.target}-model",
            usage=TokenUsage(prompt_tokens=10, completion_tokens=20),
        )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Three attempts with millisecond delays and no jitter."""
    return RetryConfig(
        max_attempts=3,
        initial_delay_ms=1,
        max_delay_ms=5,
        backoff_multiplier=2.0,
        jitter_factor=0.0,
    )


@pytest.fixture
def flow_config(fast_retry: RetryConfig) -> FlowConfig:
    return FlowConfig(primary_target="primary", retry=fast_retry)


@pytest.fixture
def memory_storage() -> InMemoryCacheStorage:
    return InMemoryCacheStorage()


@pytest.fixture
async def sqlite_memory_storage() -> AsyncGenerator[SqliteCacheStorage, None]:
    """Async SQLite in-memory storage fixture with automatic cleanup."""
    storage = SqliteCacheStorage(":memory:")
    await storage.connect()
    yield storage
    await storage.close()


@pytest.fixture
def temp_db_path():
    """Temporary database file path with automatic cleanup."""
    tmpdir = Path(tempfile.mkdtemp())
    db_path = tmpdir / "cache.db"
    yield db_path
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
async def sqlite_file_storage(temp_db_path: Path) -> AsyncGenerator[SqliteCacheStorage, None]:
    """Async SQLite file-based storage fixture with automatic cleanup."""
    storage = SqliteCacheStorage(str(temp_db_path))
    await storage.connect()
    yield storage
    await storage.close()


@pytest.fixture
def cache_store(memory_storage: InMemoryCacheStorage, clock: FakeClock) -> CacheStore:
    return CacheStore(memory_storage, max_size=100, default_ttl=3600, clock=clock)
