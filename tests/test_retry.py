"""Tests for RetryConfig, RetryPolicyEngine and the retry helpers."""

import random
from datetime import timedelta

import pytest

from pagewhisper.core.classifier import ErrorClassifier
from pagewhisper.core.retry import RetryPolicyEngine, RetryResult, retry, with_retry
from pagewhisper.models import (
    ErrorKind,
    FlowError,
    FlowState,
    PageWhisperError,
    RateLimitError,
    RemoteConnectionError,
    RemoteStatusError,
    RetryConfig,
)


def _error(kind=ErrorKind.TIMEOUT, retryable=True, **details) -> FlowError:
    return FlowError(
        kind=kind,
        message="failure",
        phase="calling_remote",
        recoverable=retryable,
        retryable=retryable,
        fallback_eligible=True,
        details=details,
    )


def _classify(exc):
    return ErrorClassifier().classify(exc, FlowState.CALLING_REMOTE)


class _Flaky:
    """Fails ``failures`` times with the given exception, then returns ``value``."""

    def __init__(self, failures, exc_factory=lambda: RemoteConnectionError("reset"), value="ok"):
        self.failures = failures
        self.exc_factory = exc_factory
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc_factory()
        return self.value


async def _no_wait(delay):
    return None


# ==============================================================================
# RetryConfig
# ==============================================================================


def test_presets():
    assert RetryConfig.NONE.max_attempts == 1
    assert RetryConfig.STANDARD.max_attempts == 3
    assert RetryConfig.STANDARD.initial_delay_ms == 1000
    assert RetryConfig.STANDARD.max_delay_ms == 30000
    assert RetryConfig.AGGRESSIVE.max_attempts == 10
    assert RetryConfig.with_max_attempts(7).max_attempts == 7


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"initial_delay_ms": -1},
        {"initial_delay_ms": 100, "max_delay_ms": 50},
        {"backoff_multiplier": 0.5},
        {"jitter_factor": 1.5},
        {"jitter_factor": -0.1},
    ],
)
def test_invalid_config_rejected(kwargs):
    with pytest.raises(ValueError):
        RetryConfig(**kwargs)


def test_retryable_kinds_coerced_to_frozenset():
    config = RetryConfig(retryable_kinds={ErrorKind.TIMEOUT})

    assert config.retryable_kinds == frozenset({ErrorKind.TIMEOUT})
    assert isinstance(config.retryable_kinds, frozenset)


def test_without_jitter():
    assert RetryConfig.STANDARD.without_jitter().jitter_factor == 0.0


# ==============================================================================
# should_retry
# ==============================================================================


def test_should_retry_stops_at_max_attempts():
    engine = RetryPolicyEngine()
    config = RetryConfig(max_attempts=3)

    assert engine.should_retry(_error(), 1, config)
    assert engine.should_retry(_error(), 2, config)
    assert not engine.should_retry(_error(), 3, config)
    assert not engine.should_retry(_error(), 4, config)


def test_should_retry_requires_retryable_error():
    engine = RetryPolicyEngine()

    assert not engine.should_retry(_error(retryable=False), 1, RetryConfig())


def test_should_retry_requires_kind_in_config():
    engine = RetryPolicyEngine()
    config = RetryConfig(retryable_kinds=frozenset({ErrorKind.TIMEOUT}))

    assert engine.should_retry(_error(ErrorKind.TIMEOUT), 1, config)
    assert not engine.should_retry(_error(ErrorKind.NETWORK_ERROR), 1, config)


# ==============================================================================
# next_delay
# ==============================================================================


def test_exponential_backoff_without_jitter():
    engine = RetryPolicyEngine()
    config = RetryConfig(
        initial_delay_ms=1000, max_delay_ms=5000, backoff_multiplier=2.0, jitter_factor=0.0
    )

    delays = [engine.next_delay(n, config) for n in range(1, 6)]

    assert delays == [
        timedelta(milliseconds=1000),
        timedelta(milliseconds=2000),
        timedelta(milliseconds=4000),
        timedelta(milliseconds=5000),
        timedelta(milliseconds=5000),
    ]


def test_jitter_stays_within_factor():
    engine = RetryPolicyEngine(random.Random(7))
    config = RetryConfig(initial_delay_ms=1000, max_delay_ms=30000, jitter_factor=0.1)

    for _ in range(200):
        delay_ms = engine.next_delay(1, config).total_seconds() * 1000
        assert 900 <= delay_ms <= 1100


def test_seeded_rng_is_deterministic():
    config = RetryConfig(jitter_factor=0.5)

    a = [RetryPolicyEngine(random.Random(1)).next_delay(n, config) for n in range(1, 4)]
    b = [RetryPolicyEngine(random.Random(1)).next_delay(n, config) for n in range(1, 4)]

    assert a == b


def test_huge_attempt_number_is_capped():
    engine = RetryPolicyEngine()
    config = RetryConfig(max_delay_ms=2000, jitter_factor=0.0)

    assert engine.next_delay(5000, config) == timedelta(milliseconds=2000)


def test_rate_limit_waits_for_retry_after():
    engine = RetryPolicyEngine()
    config = RetryConfig(initial_delay_ms=100, max_delay_ms=10000, jitter_factor=0.0)

    hinted = engine.next_delay(1, config, _error(ErrorKind.RATE_LIMITED, retry_after_ms=3000))
    capped = engine.next_delay(1, config, _error(ErrorKind.RATE_LIMITED, retry_after_ms=60000))
    unhinted = engine.next_delay(1, config, _error(ErrorKind.RATE_LIMITED))

    assert hinted == timedelta(milliseconds=3000)
    assert capped == timedelta(milliseconds=10000)
    assert unhinted == timedelta(milliseconds=100)


# ==============================================================================
# run
# ==============================================================================


@pytest.mark.asyncio
async def test_run_succeeds_after_failures():
    engine = RetryPolicyEngine()
    config = RetryConfig(max_attempts=3, initial_delay_ms=10, max_delay_ms=100, jitter_factor=0.0)
    call = _Flaky(failures=2)
    waits = []

    async def wait(delay):
        waits.append(delay)

    result = await engine.run(call, config, _classify, wait=wait)

    assert result.success
    assert result.value == "ok"
    assert result.attempts == 3
    assert waits == [timedelta(milliseconds=10), timedelta(milliseconds=20)]
    assert result.total_delay == timedelta(milliseconds=30)
    assert [r.error is None for r in result.attempt_details] == [False, False, True]


@pytest.mark.asyncio
async def test_run_exhausts_attempts():
    engine = RetryPolicyEngine()
    call = _Flaky(failures=10)

    result = await engine.run(call, RetryConfig(max_attempts=4), _classify, wait=_no_wait)

    assert not result.success
    assert result.attempts == 4
    assert call.calls == 4
    assert result.error.kind is ErrorKind.NETWORK_ERROR
    assert isinstance(result.exception, RemoteConnectionError)


@pytest.mark.asyncio
async def test_run_stops_on_non_retryable():
    engine = RetryPolicyEngine()
    call = _Flaky(failures=10, exc_factory=lambda: RemoteStatusError("bad request", 400))

    result = await engine.run(call, RetryConfig(max_attempts=5), _classify, wait=_no_wait)

    assert not result.success
    assert result.attempts == 1
    assert result.error.kind is ErrorKind.API_ERROR


@pytest.mark.asyncio
@pytest.mark.parametrize("use_async", [False, True])
async def test_on_retry_receives_attempt_error_delay(use_async):
    engine = RetryPolicyEngine()
    config = RetryConfig(max_attempts=3, initial_delay_ms=5, max_delay_ms=50, jitter_factor=0.0)
    seen = []

    def sync_hook(attempt, error, delay):
        seen.append((attempt, error.kind, delay))

    async def async_hook(attempt, error, delay):
        seen.append((attempt, error.kind, delay))

    await engine.run(
        _Flaky(failures=2, exc_factory=lambda: RateLimitError()),
        config,
        _classify,
        on_retry=async_hook if use_async else sync_hook,
        wait=_no_wait,
    )

    assert seen == [
        (1, ErrorKind.RATE_LIMITED, timedelta(milliseconds=5)),
        (2, ErrorKind.RATE_LIMITED, timedelta(milliseconds=10)),
    ]


@pytest.mark.asyncio
async def test_run_uses_asyncio_sleep_by_default():
    engine = RetryPolicyEngine()
    config = RetryConfig(max_attempts=2, initial_delay_ms=1, max_delay_ms=1, jitter_factor=0.0)

    result = await engine.run(_Flaky(failures=1), config, _classify)

    assert result.success


# ==============================================================================
# retry() and with_retry
# ==============================================================================


@pytest.mark.asyncio
async def test_retry_helper_returns_value():
    config = RetryConfig(max_attempts=3, initial_delay_ms=1, max_delay_ms=1, jitter_factor=0.0)
    call = _Flaky(failures=2, value=42)

    assert await retry(call, config) == 42


@pytest.mark.asyncio
async def test_retry_helper_reraises_last_failure():
    config = RetryConfig(max_attempts=2, initial_delay_ms=1, max_delay_ms=1, jitter_factor=0.0)

    with pytest.raises(RemoteConnectionError):
        await retry(_Flaky(failures=5), config)


@pytest.mark.asyncio
async def test_with_retry_decorator():
    calls = []

    @with_retry(RetryConfig(max_attempts=3, initial_delay_ms=1, max_delay_ms=1, jitter_factor=0.0))
    async def fetch(name):
        calls.append(name)
        if len(calls) < 3:
            raise TimeoutError()
        return f"hello {name}"

    assert await fetch("world") == "hello world"
    assert calls == ["world", "world", "world"]
    assert fetch.__name__ == "fetch"


def test_with_retry_rejects_sync_functions():
    with pytest.raises(TypeError):

        @with_retry()
        def not_async():
            return 1


class _FailsWithoutException(RetryPolicyEngine):
    async def run(self, call, config, classify, **kwargs):
        return RetryResult(
            success=False,
            value=None,
            error=_error(),
            attempts=1,
            total_delay=timedelta(0),
            attempt_details=(),
        )


@pytest.mark.asyncio
async def test_retry_helper_raises_when_failure_has_no_exception():
    with pytest.raises(PageWhisperError):
        await retry(_Flaky(failures=0), RetryConfig(), engine=_FailsWithoutException())
