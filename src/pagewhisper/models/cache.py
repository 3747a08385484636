"""Cache key, cache entry and cache statistics value types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class CacheKey:
    """Deterministic cache key derived from content, context and options.

    ``key`` is a hash over the three facet hashes, so two keys are equal
    exactly when all three facets are equal.
    """

    key: str
    algorithm: str
    component_hash: str
    context_hash: str
    options_hash: str

    def changed_facets(self, other: CacheKey) -> list[str]:
        """Name the facets (component, context, options) that differ from other."""
        changed = []
        if self.component_hash != other.component_hash:
            changed.append("component")
        if self.context_hash != other.context_hash:
            changed.append("context")
        if self.options_hash != other.options_hash:
            changed.append("options")
        return changed

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class CacheEntry:
    """A stored value with its lifetime.

    Timestamps are seconds on the owning store's clock. An entry is expired
    once ``now >= expires_at``.
    """

    key: str
    value: Any
    created_at: float
    expires_at: float
    metadata: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def ttl_remaining(self, now: float) -> float:
        return max(0.0, self.expires_at - now)


@dataclass
class CacheStats:
    """Advisory counters kept by CacheStore.

    Counters are updated without locking across keys and are not exact under
    concurrent use.
    """

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    size: int = 0
    last_purged_at: float | None = None

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0
