"""
Failure classification.

ErrorClassifier maps any raised failure to a FlowError. The mapping is total
and priority ordered; the first matching rule wins:

    1. cancellation          → CANCELLED         (never recovers)
    2. validation            → VALIDATION_ERROR  (never recovers)
    3. timeout               → TIMEOUT           (retry, fallback)
    4. rate limit / 429      → RATE_LIMITED      (retry, fallback)
    5. 5xx                   → API_ERROR         (retry if retry_on_5xx, fallback)
    6. other 4xx             → API_ERROR         (retry if retry_on_4xx, fallback)
    7. connectivity          → NETWORK_ERROR     (retry, fallback)
    8. anything else         → UNKNOWN           (never recovers)

Typed exceptions (pagewhisper.models.errors and the builtin timeout and
connection errors) are matched first. Failures that only expose a ``code`` or
``status_code`` attribute are matched next, and message text last. Message
matching is a degraded mode for clients that raise bare exceptions.

A failure raised outside a remote phase keeps its kind but is never retryable
or fallback eligible.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from pagewhisper.models.errors import (
    ErrorKind,
    FlowCancelledError,
    FlowError,
    RateLimitError,
    RemoteConnectionError,
    RemoteStatusError,
    RemoteTimeoutError,
    ValidationError,
)
from pagewhisper.models.retry import RetryConfig
from pagewhisper.models.state import FlowState

logger = logging.getLogger(__name__)

_NETWORK_CODES = frozenset({"ECONNREFUSED", "ENOTFOUND", "ECONNRESET", "ETIMEDOUT", "EPIPE"})
_TIMEOUT_CODES = frozenset({"ETIMEDOUT", "TIMEOUT"})
_RATE_LIMIT_CODES = frozenset({"RATE_LIMIT", "RATE_LIMITED", "429"})

_TIMEOUT_RE = re.compile(r"time[d ]?\s?out|deadline exceeded", re.IGNORECASE)
_RATE_LIMIT_RE = re.compile(r"rate.?limit|too many requests|\b429\b|quota exceeded", re.IGNORECASE)
_NETWORK_RE = re.compile(
    r"network|connection (refused|reset|closed)|econnrefused|enotfound|econnreset|dns",
    re.IGNORECASE,
)
_STATUS_RE = re.compile(r"\b(?:status|http)[ :=]*([45]\d\d)\b", re.IGNORECASE)


def is_timeout_message(message: str) -> bool:
    return bool(_TIMEOUT_RE.search(message))


def is_rate_limit_message(message: str) -> bool:
    return bool(_RATE_LIMIT_RE.search(message))


def is_network_message(message: str) -> bool:
    return bool(_NETWORK_RE.search(message))


class ErrorClassifier:
    """Pure, deterministic failure → FlowError mapping.

    The retry config decides whether 4xx and 5xx API errors count as
    retryable; everything else is fixed by the taxonomy.

    Usage:
        classifier = ErrorClassifier(RetryConfig.STANDARD)
        error = classifier.classify(exc, FlowState.CALLING_REMOTE)
    """

    def __init__(self, retry_config: RetryConfig | None = None):
        self._config = retry_config or RetryConfig.STANDARD

    @property
    def config(self) -> RetryConfig:
        return self._config

    def classify(self, raw: BaseException, phase: FlowState | str) -> FlowError:
        """Classify a failure raised while the flow was in ``phase``."""
        phase_state = phase if isinstance(phase, FlowState) else FlowState(phase)
        kind, retryable, fallback, details = self._match(raw)

        if not phase_state.is_remote:
            retryable = False
            fallback = False

        details.setdefault("exception_type", type(raw).__name__)
        error = FlowError(
            kind=kind,
            message=_message_of(raw),
            phase=phase_state.value,
            recoverable=retryable or fallback,
            retryable=retryable,
            fallback_eligible=fallback,
            details=details,
        )
        logger.debug(f"Classified {type(raw).__name__} in {phase_state} as {error.kind}")
        return error

    def _match(self, raw: BaseException) -> tuple[ErrorKind, bool, bool, dict[str, Any]]:
        # Typed exceptions
        if isinstance(raw, FlowCancelledError | asyncio.CancelledError):
            return ErrorKind.CANCELLED, False, False, {}
        if isinstance(raw, ValidationError):
            return ErrorKind.VALIDATION_ERROR, False, False, _field_details(raw)
        if isinstance(raw, RemoteTimeoutError | TimeoutError):
            return ErrorKind.TIMEOUT, True, True, {}
        if isinstance(raw, RateLimitError):
            return self._rate_limited(raw.retry_after_ms)
        if isinstance(raw, RemoteStatusError):
            return self._by_status(raw.status_code, raw)
        if isinstance(raw, RemoteConnectionError | ConnectionError):
            return ErrorKind.NETWORK_ERROR, True, True, {}

        # Duck-typed attributes
        status = getattr(raw, "status_code", None) or getattr(raw, "status", None)
        if isinstance(status, int) and 400 <= status < 600:
            return self._by_status(status, raw)
        code = getattr(raw, "code", None)
        if isinstance(code, int) and 400 <= code < 600:
            return self._by_status(code, raw)
        if isinstance(code, str):
            upper = code.upper()
            if upper in _TIMEOUT_CODES:
                return ErrorKind.TIMEOUT, True, True, {"code": code}
            if upper in _RATE_LIMIT_CODES:
                return self._rate_limited(_retry_after_of(raw))
            if upper in _NETWORK_CODES:
                return ErrorKind.NETWORK_ERROR, True, True, {"code": code}

        # Degraded mode: message text
        message = _message_of(raw)
        if is_timeout_message(message):
            return ErrorKind.TIMEOUT, True, True, {"matched": "message"}
        if is_rate_limit_message(message):
            kind, retryable, fallback, details = self._rate_limited(_retry_after_of(raw))
            details["matched"] = "message"
            return kind, retryable, fallback, details
        status_match = _STATUS_RE.search(message)
        if status_match:
            kind, retryable, fallback, details = self._by_status(int(status_match.group(1)), raw)
            details["matched"] = "message"
            return kind, retryable, fallback, details
        if is_network_message(message):
            return ErrorKind.NETWORK_ERROR, True, True, {"matched": "message"}

        return ErrorKind.UNKNOWN, False, False, {}

    def _rate_limited(
        self, retry_after_ms: int | None
    ) -> tuple[ErrorKind, bool, bool, dict[str, Any]]:
        details: dict[str, Any] = {"status_code": 429}
        if retry_after_ms is not None:
            details["retry_after_ms"] = retry_after_ms
        return ErrorKind.RATE_LIMITED, True, True, details

    def _by_status(
        self, status: int, raw: BaseException
    ) -> tuple[ErrorKind, bool, bool, dict[str, Any]]:
        if status == 429:
            return self._rate_limited(_retry_after_of(raw))
        details: dict[str, Any] = {"status_code": status}
        if status == 408:
            return ErrorKind.TIMEOUT, True, True, details
        if status >= 500:
            return ErrorKind.API_ERROR, self._config.retry_on_5xx, True, details
        return ErrorKind.API_ERROR, self._config.retry_on_4xx, True, details


def _message_of(raw: BaseException) -> str:
    message = str(raw)
    if not message:
        return type(raw).__name__
    return message


def _retry_after_of(raw: BaseException) -> int | None:
    value = getattr(raw, "retry_after_ms", None)
    if isinstance(value, int | float):
        return int(value)
    return None


def _field_details(raw: ValidationError) -> dict[str, Any]:
    if raw.field_name:
        return {"field": raw.field_name}
    return {}
