"""Error taxonomy and exception hierarchy.

Two layers:
    - Exceptions raised by collaborators (remote clients, processors) and by
      the orchestrator itself. Remote clients should raise the typed
      RemoteCallError subclasses so the classifier does not have to guess.
    - FlowError, the classified value carried by a failed FlowOutcome.
      Failed flows return a value, they do not raise.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Closed failure taxonomy."""

    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    API_ERROR = "api_error"
    NETWORK_ERROR = "network_error"
    VALIDATION_ERROR = "validation_error"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class FlowError:
    """A classified failure.

    Attributes:
        kind: Taxonomy entry
        message: Description of the failure
        phase: Name of the state the failure originated in
        recoverable: retryable or fallback_eligible
        retryable: Another attempt against the same target may succeed
        fallback_eligible: An attempt against another target may succeed
        details: Extra data (status_code, retry_after_ms, exception type)
        attempts: Remote attempts made before the flow gave up
        retry_attempted: At least one retry happened
        fallback_attempted: At least one fallback target was tried
    """

    kind: ErrorKind
    message: str
    phase: str
    recoverable: bool = False
    retryable: bool = False
    fallback_eligible: bool = False
    details: dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    retry_attempted: bool = False
    fallback_attempted: bool = False

    @property
    def retry_after_ms(self) -> int | None:
        """Server-provided wait hint for RATE_LIMITED errors."""
        return self.details.get("retry_after_ms")

    @property
    def status_code(self) -> int | None:
        return self.details.get("status_code")

    def annotate(
        self, *, attempts: int, retry_attempted: bool, fallback_attempted: bool
    ) -> FlowError:
        """Return a copy carrying the attempt bookkeeping of a finished run."""
        return replace(
            self,
            attempts=attempts,
            retry_attempted=retry_attempted,
            fallback_attempted=fallback_attempted,
        )

    def __str__(self) -> str:
        return f"[{self.kind}] {self.message} (phase={self.phase})"


# =============================================================================
# Exceptions
# =============================================================================


class PageWhisperError(Exception):
    """Base class for errors raised by this package."""

    pass


class InvalidTransitionError(PageWhisperError):
    """A state transition not present in the transition table was requested."""

    def __init__(self, source: Any, target: Any):
        super().__init__(f"Invalid transition {source} -> {target}")
        self.source = source
        self.target = target


class OrchestratorBusyError(PageWhisperError):
    """execute() was called while the orchestrator is already running a flow."""

    pass


class ValidationError(PageWhisperError):
    """Input rejected before any remote call was made."""

    def __init__(self, message: str, field_name: str | None = None):
        super().__init__(message)
        self.field_name = field_name


class FlowCancelledError(PageWhisperError):
    """Raised inside a flow when cancellation was requested."""

    pass


class RemoteCallError(PageWhisperError):
    """Base class for failures of the outbound remote generation call."""

    def __init__(self, message: str, target: str | None = None):
        super().__init__(message)
        self.target = target


class RemoteTimeoutError(RemoteCallError):
    """The remote call did not answer in time."""

    pass


class RemoteConnectionError(RemoteCallError):
    """The remote endpoint could not be reached."""

    pass


class RemoteStatusError(RemoteCallError):
    """The remote endpoint answered with an error status."""

    def __init__(self, message: str, status_code: int, target: str | None = None):
        super().__init__(message, target)
        self.status_code = status_code

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status_code < 600

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


class RateLimitError(RemoteStatusError):
    """The remote endpoint throttled the request (HTTP 429 equivalent)."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after_ms: int | None = None,
        target: str | None = None,
    ):
        super().__init__(message, 429, target)
        self.retry_after_ms = retry_after_ms
