"""
Retry configuration for the remote-call phase.

Design Pattern: Strategy Pattern
RetryConfig is a value describing how attempts are spaced and which failures
qualify; RetryPolicyEngine (pagewhisper.core.retry) applies it. Flows pick a
preset or build their own without touching the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, cast

from pagewhisper.models.errors import ErrorKind

DEFAULT_RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.TIMEOUT,
        ErrorKind.RATE_LIMITED,
        ErrorKind.NETWORK_ERROR,
        ErrorKind.API_ERROR,
    }
)


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for remote-call retry behavior.

    Examples:
        # Named preset
        config = RetryConfig.STANDARD

        # Just change the attempt count
        config = RetryConfig.with_max_attempts(5)

        # Full control
        config = RetryConfig(
            max_attempts=4,
            initial_delay_ms=500,
            max_delay_ms=8000,
            backoff_multiplier=2.0,
            jitter_factor=0.0,
        )
    """

    max_attempts: int = 3
    """Maximum number of attempts against one target, including the first.

    For example, max_attempts = 3 means:
    - Attempt 1: immediate
    - Attempt 2: after initial_delay
    - Attempt 3: after initial_delay * backoff_multiplier
    """

    initial_delay_ms: int = 1000
    """Delay before the first retry in milliseconds."""

    max_delay_ms: int = 30000
    """Upper bound on any single delay in milliseconds."""

    backoff_multiplier: float = 2.0
    """Growth factor between consecutive delays."""

    jitter_factor: float = 0.1
    """Relative jitter. 0.1 spreads each delay uniformly over ±10%."""

    retryable_kinds: frozenset[ErrorKind] = DEFAULT_RETRYABLE_KINDS
    """Error kinds that may be retried at all."""

    retry_on_4xx: bool = False
    """Retry remote client errors (4xx other than 429)."""

    retry_on_5xx: bool = True
    """Retry remote server errors (5xx)."""

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay_ms < 0:
            raise ValueError(f"initial_delay_ms must be >= 0, got {self.initial_delay_ms}")
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= "
                f"initial_delay_ms ({self.initial_delay_ms})"
            )
        if self.backoff_multiplier < 1:
            raise ValueError(f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError(f"jitter_factor must be within [0, 1], got {self.jitter_factor}")
        # Accept any iterable of kinds but store a frozenset
        if not isinstance(self.retryable_kinds, frozenset):
            object.__setattr__(self, "retryable_kinds", frozenset(self.retryable_kinds))

    # =========================================================================
    # Predefined Configs
    # =========================================================================

    if TYPE_CHECKING:
        NONE: RetryConfig
        STANDARD: RetryConfig
        AGGRESSIVE: RetryConfig
    else:
        NONE = cast("RetryConfig", None)
        STANDARD = cast("RetryConfig", None)
        AGGRESSIVE = cast("RetryConfig", None)

    @classmethod
    def with_max_attempts(cls, max_attempts: int) -> RetryConfig:
        """
        Create a config with custom max_attempts and standard delays.

        Example:
            config = RetryConfig.with_max_attempts(5)
        """
        return cls(max_attempts=max_attempts)

    def without_jitter(self) -> RetryConfig:
        """Return a copy with jitter disabled (deterministic delays)."""
        return replace(self, jitter_factor=0.0)

    def base_delay_ms(self, attempt: int) -> float:
        """Un-jittered, uncapped delay after the given 1-indexed attempt."""
        return self.initial_delay_ms * self.backoff_multiplier ** (attempt - 1)

    def __repr__(self) -> str:
        return (
            f"RetryConfig(max_attempts={self.max_attempts}, "
            f"initial_delay_ms={self.initial_delay_ms}, "
            f"max_delay_ms={self.max_delay_ms}, "
            f"backoff_multiplier={self.backoff_multiplier}, "
            f"jitter_factor={self.jitter_factor})"
        )


RetryConfig.NONE = RetryConfig(
    max_attempts=1, initial_delay_ms=0, max_delay_ms=0, backoff_multiplier=1.0, jitter_factor=0.0
)

RetryConfig.STANDARD = RetryConfig(
    max_attempts=3,
    initial_delay_ms=1000,  # 1 second
    max_delay_ms=30000,  # 30 seconds
    backoff_multiplier=2.0,
    jitter_factor=0.1,
)

RetryConfig.AGGRESSIVE = RetryConfig(
    max_attempts=10,
    initial_delay_ms=100,  # 100 milliseconds
    max_delay_ms=10000,  # 10 seconds
    backoff_multiplier=1.5,
    jitter_factor=0.1,
)
