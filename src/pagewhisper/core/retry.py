"""
Retry policy engine.

Design Pattern: Strategy Pattern
RetryConfig (pagewhisper.models.retry) says what to do; RetryPolicyEngine
does it. The engine is stateless apart from its random source, so a single
instance is shared by every flow.

Delay after attempt n (1-indexed):

    base  = initial_delay × backoff_multiplier^(n-1)
    delay = clamp(base + uniform(-base×jitter, +base×jitter), 0, max_delay)

A RATE_LIMITED error carrying a retry-after hint waits at least that long,
still capped at max_delay.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Generic, TypeVar

from pagewhisper.core.classifier import ErrorClassifier
from pagewhisper.models.errors import ErrorKind, FlowError, PageWhisperError
from pagewhisper.models.retry import RetryConfig
from pagewhisper.models.state import FlowState

logger = logging.getLogger(__name__)

T = TypeVar("T")

Classify = Callable[[BaseException], FlowError]
OnRetry = Callable[[int, FlowError, timedelta], Any]
Wait = Callable[[timedelta], Awaitable[None]]


@dataclass(frozen=True)
class AttemptRecord:
    """What happened on one attempt.

    Attributes:
        attempt: 1-indexed attempt number
        error: Classified failure, None on success
        delay: Wait scheduled after this attempt (zero for the last one)
    """

    attempt: int
    error: FlowError | None
    delay: timedelta = timedelta(0)


@dataclass(frozen=True)
class RetryResult(Generic[T]):
    """Outcome of RetryPolicyEngine.run."""

    success: bool
    value: T | None
    error: FlowError | None
    attempts: int
    total_delay: timedelta
    attempt_details: tuple[AttemptRecord, ...]
    exception: BaseException | None = None


async def _sleep(delay: timedelta) -> None:
    await asyncio.sleep(delay.total_seconds())


class RetryPolicyEngine:
    """Backoff calculator and retry loop.

    Usage:
        engine = RetryPolicyEngine()
        if engine.should_retry(error, attempt, config):
            await asyncio.sleep(engine.next_delay(attempt, config).total_seconds())

        # Deterministic jitter in tests
        engine = RetryPolicyEngine(random.Random(42))
    """

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def should_retry(self, error: FlowError, attempt: int, config: RetryConfig) -> bool:
        """Decide whether another attempt follows attempt number ``attempt``."""
        if attempt >= config.max_attempts:
            return False
        if not error.retryable:
            return False
        return error.kind in config.retryable_kinds

    def next_delay(
        self, attempt: int, config: RetryConfig, error: FlowError | None = None
    ) -> timedelta:
        """Delay to wait after the given 1-indexed attempt failed."""
        try:
            base = config.base_delay_ms(attempt)
        except OverflowError:
            base = float(config.max_delay_ms)
        base = min(base, float(config.max_delay_ms))

        jitter = 0.0
        if config.jitter_factor > 0 and base > 0:
            spread = base * config.jitter_factor
            jitter = self._rng.uniform(-spread, spread)
        delay_ms = max(0.0, min(float(config.max_delay_ms), base + jitter))

        if error is not None and error.kind is ErrorKind.RATE_LIMITED:
            delay_ms = self.rate_limit_delay_ms(delay_ms, error, config)

        return timedelta(milliseconds=delay_ms)

    @staticmethod
    def rate_limit_delay_ms(delay_ms: float, error: FlowError, config: RetryConfig) -> float:
        """Wait at least the server's retry-after hint, capped at max_delay."""
        hint = error.retry_after_ms
        if hint is None:
            return delay_ms
        return min(float(config.max_delay_ms), max(delay_ms, float(hint)))

    async def run(
        self,
        call: Callable[[], Awaitable[T]],
        config: RetryConfig,
        classify: Classify,
        *,
        on_retry: OnRetry | None = None,
        wait: Wait | None = None,
    ) -> RetryResult[T]:
        """Call ``call`` until it succeeds or should_retry says stop.

        Args:
            call: Zero-argument coroutine function, one invocation per attempt
            config: Retry configuration
            classify: Maps a raised exception to a FlowError
            on_retry: Called with (attempt, error, delay) before each wait;
                may be sync or async
            wait: Awaits the delay, asyncio.sleep by default. Exceptions it
                raises (e.g. cancellation) propagate.

        Returns:
            RetryResult with the value or the last classified error
        """
        wait = wait or _sleep
        records: list[AttemptRecord] = []
        total = timedelta(0)
        attempt = 0

        while True:
            attempt += 1
            try:
                value = await call()
            except Exception as e:
                error = classify(e)
                if not self.should_retry(error, attempt, config):
                    records.append(AttemptRecord(attempt, error))
                    if error.retryable and attempt >= config.max_attempts:
                        logger.warning(f"Retries exhausted after {attempt} attempts: {error}")
                    return RetryResult(
                        success=False,
                        value=None,
                        error=error,
                        attempts=attempt,
                        total_delay=total,
                        attempt_details=tuple(records),
                        exception=e,
                    )

                delay = self.next_delay(attempt, config, error)
                records.append(AttemptRecord(attempt, error, delay))
                logger.warning(
                    f"Attempt {attempt}/{config.max_attempts} failed with {error.kind}, "
                    f"retrying in {delay.total_seconds():.3f}s"
                )
                if on_retry is not None:
                    maybe = on_retry(attempt, error, delay)
                    if inspect.isawaitable(maybe):
                        await maybe
                await wait(delay)
                total += delay
            else:
                records.append(AttemptRecord(attempt, None))
                return RetryResult(
                    success=True,
                    value=value,
                    error=None,
                    attempts=attempt,
                    total_delay=total,
                    attempt_details=tuple(records),
                )


def _remote_classifier(config: RetryConfig) -> Classify:
    classifier = ErrorClassifier(config)
    return lambda exc: classifier.classify(exc, FlowState.CALLING_REMOTE)


async def retry(
    call: Callable[[], Awaitable[T]],
    config: RetryConfig = RetryConfig.STANDARD,
    engine: RetryPolicyEngine | None = None,
) -> T:
    """Run ``call`` under ``config`` and return its value or re-raise the last failure.

    Example:
        response = await retry(lambda: client.generate(request), RetryConfig.STANDARD)
    """
    engine = engine or RetryPolicyEngine()
    result = await engine.run(call, config, _remote_classifier(config))
    if result.success:
        return result.value  # type: ignore[return-value]
    if result.exception is None:
        raise PageWhisperError(f"Retry failed without an exception: {result.error}")
    raise result.exception


def with_retry(
    config: RetryConfig = RetryConfig.STANDARD, engine: RetryPolicyEngine | None = None
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator applying retry() to an async function.

    Example:
        @with_retry(RetryConfig.with_max_attempts(5))
        async def fetch(url):
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"with_retry requires an async function, got {func!r}")

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry(lambda: func(*args, **kwargs), config, engine)

        return wrapper

    return decorator
