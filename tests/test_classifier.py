"""Tests for ErrorClassifier priority order and degraded message matching."""

import asyncio

import pytest

from pagewhisper.core.classifier import (
    ErrorClassifier,
    is_network_message,
    is_rate_limit_message,
    is_timeout_message,
)
from pagewhisper.models import (
    ErrorKind,
    FlowCancelledError,
    FlowState,
    RateLimitError,
    RemoteConnectionError,
    RemoteStatusError,
    RemoteTimeoutError,
    RetryConfig,
    ValidationError,
)

REMOTE = FlowState.CALLING_REMOTE


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier(RetryConfig.STANDARD)


# ==============================================================================
# Typed exceptions
# ==============================================================================


@pytest.mark.parametrize("raw", [FlowCancelledError("stop"), asyncio.CancelledError()])
def test_cancellation_is_never_recoverable(classifier, raw):
    """Test cancellation maps to CANCELLED with every recovery flag off."""
    error = classifier.classify(raw, REMOTE)

    assert error.kind is ErrorKind.CANCELLED
    assert not error.recoverable
    assert not error.retryable
    assert not error.fallback_eligible


def test_validation_error_keeps_field(classifier):
    """Test validation failures carry the offending field name."""
    error = classifier.classify(ValidationError("bad language", "language"), FlowState.SELECTING)

    assert error.kind is ErrorKind.VALIDATION_ERROR
    assert error.phase == "selecting"
    assert error.details["field"] == "language"
    assert not error.recoverable


@pytest.mark.parametrize("raw", [RemoteTimeoutError("slow"), TimeoutError()])
def test_timeout_is_retryable_and_fallback_eligible(classifier, raw):
    error = classifier.classify(raw, REMOTE)

    assert error.kind is ErrorKind.TIMEOUT
    assert error.recoverable and error.retryable and error.fallback_eligible


def test_rate_limit_carries_retry_after(classifier):
    """Test 429 keeps the server's retry-after hint."""
    error = classifier.classify(RateLimitError(retry_after_ms=1500), REMOTE)

    assert error.kind is ErrorKind.RATE_LIMITED
    assert error.retry_after_ms == 1500
    assert error.status_code == 429
    assert error.retryable and error.fallback_eligible


def test_server_error_follows_retry_on_5xx():
    """Test 5xx retryability is taken from the config."""
    raw = RemoteStatusError("unavailable", 503)

    default = ErrorClassifier(RetryConfig()).classify(raw, REMOTE)
    strict = ErrorClassifier(RetryConfig(retry_on_5xx=False)).classify(raw, REMOTE)

    assert default.kind is ErrorKind.API_ERROR
    assert default.retryable
    assert strict.kind is ErrorKind.API_ERROR
    assert not strict.retryable
    assert strict.fallback_eligible
    assert strict.recoverable


def test_client_error_follows_retry_on_4xx():
    """Test 4xx is fallback eligible but only retried when configured."""
    raw = RemoteStatusError("not found", 404)

    default = ErrorClassifier(RetryConfig()).classify(raw, REMOTE)
    lenient = ErrorClassifier(RetryConfig(retry_on_4xx=True)).classify(raw, REMOTE)

    assert default.kind is ErrorKind.API_ERROR
    assert not default.retryable
    assert default.fallback_eligible
    assert default.status_code == 404
    assert lenient.retryable


def test_status_429_wins_over_4xx(classifier):
    error = classifier.classify(RemoteStatusError("slow down", 429), REMOTE)

    assert error.kind is ErrorKind.RATE_LIMITED


@pytest.mark.parametrize(
    "raw", [RemoteConnectionError("refused"), ConnectionRefusedError(), ConnectionResetError()]
)
def test_connectivity_is_network_error(classifier, raw):
    error = classifier.classify(raw, REMOTE)

    assert error.kind is ErrorKind.NETWORK_ERROR
    assert error.retryable and error.fallback_eligible


def test_unknown_is_not_recoverable(classifier):
    error = classifier.classify(ValueError("boom"), REMOTE)

    assert error.kind is ErrorKind.UNKNOWN
    assert not error.recoverable
    assert error.message == "boom"
    assert error.details["exception_type"] == "ValueError"


def test_cancellation_has_priority_over_timeout(classifier):
    """Test the first matching rule wins when an exception fits several."""

    class CancelledTimeout(FlowCancelledError, RemoteTimeoutError):
        pass

    error = classifier.classify(CancelledTimeout("both"), REMOTE)

    assert error.kind is ErrorKind.CANCELLED


# ==============================================================================
# Duck-typed attributes and message fallback
# ==============================================================================


class _StatusError(Exception):
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class _CodedError(Exception):
    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


def test_status_code_attribute_is_honored(classifier):
    assert classifier.classify(_StatusError("x", 429), REMOTE).kind is ErrorKind.RATE_LIMITED
    assert classifier.classify(_StatusError("x", 502), REMOTE).kind is ErrorKind.API_ERROR


@pytest.mark.parametrize(
    ("code", "kind"),
    [
        ("ECONNRESET", ErrorKind.NETWORK_ERROR),
        ("ENOTFOUND", ErrorKind.NETWORK_ERROR),
        ("ETIMEDOUT", ErrorKind.TIMEOUT),
        ("RATE_LIMIT", ErrorKind.RATE_LIMITED),
    ],
)
def test_string_code_attribute_is_honored(classifier, code, kind):
    assert classifier.classify(_CodedError("x", code), REMOTE).kind is kind


@pytest.mark.parametrize(
    ("message", "kind"),
    [
        ("Request timed out", ErrorKind.TIMEOUT),
        ("Too many requests", ErrorKind.RATE_LIMITED),
        ("HTTP 502 bad gateway", ErrorKind.API_ERROR),
        ("network unreachable", ErrorKind.NETWORK_ERROR),
        ("something odd", ErrorKind.UNKNOWN),
    ],
)
def test_message_matching_is_last_resort(classifier, message, kind):
    error = classifier.classify(Exception(message), REMOTE)

    assert error.kind is kind
    if kind is not ErrorKind.UNKNOWN:
        assert error.details["matched"] == "message"


def test_message_status_keeps_code(classifier):
    error = classifier.classify(Exception("upstream status 503"), REMOTE)

    assert error.status_code == 503
    assert error.retryable


def test_message_helpers():
    assert is_timeout_message("deadline exceeded")
    assert is_rate_limit_message("Rate limit reached for requests")
    assert is_network_message("ECONNREFUSED 127.0.0.1:443")
    assert not is_timeout_message("all good")


# ==============================================================================
# Phase handling
# ==============================================================================


@pytest.mark.parametrize(
    "phase", [FlowState.EXTRACTING, FlowState.DETECTING, FlowState.HASHING, FlowState.STORING]
)
def test_local_phase_failures_never_recover(classifier, phase):
    """Test a transient-looking failure in a local phase is not retried."""
    error = classifier.classify(RemoteTimeoutError("slow"), phase)

    assert error.kind is ErrorKind.TIMEOUT
    assert error.phase == phase.value
    assert not error.retryable
    assert not error.fallback_eligible
    assert not error.recoverable


@pytest.mark.parametrize("phase", [FlowState.RETRYING, FlowState.FALLBACK, "calling_remote"])
def test_remote_phases_allow_recovery(classifier, phase):
    error = classifier.classify(RemoteConnectionError("reset"), phase)

    assert error.retryable


def test_classification_is_deterministic(classifier):
    raw = RateLimitError(retry_after_ms=10)

    assert classifier.classify(raw, REMOTE) == classifier.classify(raw, REMOTE)
