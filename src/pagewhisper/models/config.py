"""Configuration values for hashing, caching and flows.

All configs are frozen dataclasses. Change them with the ``with_*`` methods,
which return modified copies.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from pagewhisper.models.retry import RetryConfig


class HashAlgorithm(Enum):
    """Digest used by CacheKeyGenerator.

    SHA256, SHA1 and MD5 come from hashlib. XXH64 and XXH3_128 come from
    xxhash and are much faster, at the cost of not being cryptographic.
    """

    SHA256 = "sha256"
    SHA1 = "sha1"
    MD5 = "md5"
    XXH64 = "xxh64"
    XXH3_128 = "xxh3_128"

    def __str__(self) -> str:
        return self.value


class HashEncoding(Enum):
    HEX = "hex"
    BASE64 = "base64"
    BASE64URL = "base64url"


@dataclass(frozen=True)
class HashConfig:
    algorithm: HashAlgorithm = HashAlgorithm.SHA256
    encoding: HashEncoding = HashEncoding.HEX
    normalize_whitespace: bool = True
    """Collapse whitespace runs and inter-tag whitespace before hashing markup."""


@dataclass(frozen=True)
class CacheConfig:
    """CacheStore limits."""

    enabled: bool = True
    ttl_seconds: float = 3600.0
    max_size: int = 100
    cleanup_interval_seconds: float = 300.0

    def __post_init__(self) -> None:
        if self.max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {self.max_size}")
        if self.ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {self.ttl_seconds}")
        if self.cleanup_interval_seconds <= 0:
            raise ValueError(
                f"cleanup_interval_seconds must be > 0, got {self.cleanup_interval_seconds}"
            )


@dataclass(frozen=True)
class FlowConfig:
    """
    Per-orchestrator flow behavior.

    Example:
        config = (
            FlowConfig(primary_target="gpt-4o")
            .with_fallbacks("claude-sonnet", "gpt-4o-mini")
            .with_retry(RetryConfig.with_max_attempts(2))
        )
    """

    primary_target: str = "default"
    fallback_targets: tuple[str, ...] = ()
    enable_fallback: bool = True
    enable_cache: bool = True
    cache_ttl_seconds: float = 3600.0
    extraction_timeout_ms: int = 5000
    remote_timeout_ms: int = 30000
    allow_cancellation: bool = True
    retry: RetryConfig = field(default_factory=lambda: RetryConfig.STANDARD)

    def __post_init__(self) -> None:
        if not self.primary_target:
            raise ValueError("primary_target must not be empty")
        if self.extraction_timeout_ms <= 0 or self.remote_timeout_ms <= 0:
            raise ValueError("timeouts must be > 0")
        if self.cache_ttl_seconds <= 0:
            raise ValueError(f"cache_ttl_seconds must be > 0, got {self.cache_ttl_seconds}")
        if not isinstance(self.fallback_targets, tuple):
            object.__setattr__(self, "fallback_targets", tuple(self.fallback_targets))

    def with_fallbacks(self, *targets: str) -> FlowConfig:
        return replace(self, fallback_targets=tuple(targets))

    def with_retry(self, retry: RetryConfig) -> FlowConfig:
        return replace(self, retry=retry)

    def with_timeouts(
        self, *, extraction_ms: int | None = None, remote_ms: int | None = None
    ) -> FlowConfig:
        return replace(
            self,
            extraction_timeout_ms=extraction_ms or self.extraction_timeout_ms,
            remote_timeout_ms=remote_ms or self.remote_timeout_ms,
        )

    def with_cache(self, cache: CacheConfig) -> FlowConfig:
        """Take cache switch and entry lifetime from a CacheConfig."""
        return replace(self, enable_cache=cache.enabled, cache_ttl_seconds=cache.ttl_seconds)

    def without_cache(self) -> FlowConfig:
        return replace(self, enable_cache=False)

    @property
    def active_fallbacks(self) -> tuple[str, ...]:
        """Fallback targets in effect, empty when fallback is disabled."""
        return self.fallback_targets if self.enable_fallback else ()
