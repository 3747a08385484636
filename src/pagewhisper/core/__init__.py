"""
Core resilience and caching components.

- ErrorClassifier: raised failure → classified FlowError
- CacheKeyGenerator: deterministic cache keys
- CacheStore: LRU + TTL cache over a CacheStorage backend
- RetryPolicyEngine: backoff with jitter and the retry loop
- FallbackChainManager: one attempt per alternate target
"""

from pagewhisper.core.cache import CacheStore
from pagewhisper.core.classifier import (
    ErrorClassifier,
    is_network_message,
    is_rate_limit_message,
    is_timeout_message,
)
from pagewhisper.core.fallback import FallbackChain, FallbackChainManager, FallbackResult
from pagewhisper.core.hashing import CacheKeyGenerator, canonical_json, normalize_whitespace
from pagewhisper.core.retry import (
    AttemptRecord,
    RetryPolicyEngine,
    RetryResult,
    retry,
    with_retry,
)

__all__ = [
    "AttemptRecord",
    "CacheKeyGenerator",
    "CacheStore",
    "ErrorClassifier",
    "FallbackChain",
    "FallbackChainManager",
    "FallbackResult",
    "RetryPolicyEngine",
    "RetryResult",
    "canonical_json",
    "is_network_message",
    "is_rate_limit_message",
    "is_timeout_message",
    "normalize_whitespace",
    "retry",
    "with_retry",
]
