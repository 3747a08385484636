"""Flow states, transition table and per-transition metadata.

A flow moves through a closed set of states. Each entry into a state is
recorded as one immutable FlowStateMetadata record; the ordered list of
records is the flow's history.

Lifecycle:
    IDLE → SELECTING → EXTRACTING → DETECTING → CLEANING → HASHING
         → CHECKING_CACHE → CACHE_HIT → COMPLETED
                          → GENERATING_PROMPT → CALLING_REMOTE
                                                ↔ RETRYING / FALLBACK
                                                → PROCESSING_RESPONSE
                                                → STORING → COMPLETED

Any non-terminal state may move to FAILED or CANCELLED.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pagewhisper.models.errors import FlowError


class FlowState(Enum):
    """Lifecycle state of a single flow run."""

    IDLE = "idle"
    """Created, not yet started."""

    SELECTING = "selecting"
    """Resolving the component and validating generation options."""

    EXTRACTING = "extracting"
    """Extracting markup and styles from the source."""

    DETECTING = "detecting"
    """Detecting frameworks and libraries in the extracted unit."""

    CLEANING = "cleaning"
    """Removing unused styles and noise."""

    HASHING = "hashing"
    """Deriving the cache key."""

    CHECKING_CACHE = "checking_cache"
    """Looking the key up in the cache store."""

    CACHE_HIT = "cache_hit"
    """A fresh cached result was found."""

    GENERATING_PROMPT = "generating_prompt"
    """Rendering the prompt for the remote call."""

    CALLING_REMOTE = "calling_remote"
    """A remote generation attempt is in flight."""

    RETRYING = "retrying"
    """Waiting out the backoff delay before the next attempt."""

    FALLBACK = "fallback"
    """Advancing to the next fallback target."""

    PROCESSING_RESPONSE = "processing_response"
    """Turning the remote response into a result."""

    STORING = "storing"
    """Writing the result to the cache store."""

    COMPLETED = "completed"
    """Finished successfully."""

    FAILED = "failed"
    """Finished with an error."""

    CANCELLED = "cancelled"
    """Stopped on request."""

    @property
    def is_terminal(self) -> bool:
        """Check if no transition may leave this state."""
        return self in (FlowState.COMPLETED, FlowState.FAILED, FlowState.CANCELLED)

    @property
    def is_remote(self) -> bool:
        """Check if failures raised in this state come from a remote call."""
        return self in (FlowState.CALLING_REMOTE, FlowState.RETRYING, FlowState.FALLBACK)

    @property
    def nominal_progress(self) -> int:
        """Progress percentage reported when entering this state."""
        return _NOMINAL_PROGRESS[self]

    def can_transition_to(self, target: FlowState) -> bool:
        """Check the transition table for an edge from this state to target."""
        return target in TRANSITIONS[self]

    def __str__(self) -> str:
        return self.value


_NOMINAL_PROGRESS: dict[FlowState, int] = {
    FlowState.IDLE: 0,
    FlowState.SELECTING: 5,
    FlowState.EXTRACTING: 10,
    FlowState.DETECTING: 20,
    FlowState.CLEANING: 30,
    FlowState.HASHING: 40,
    FlowState.CHECKING_CACHE: 45,
    FlowState.CACHE_HIT: 95,
    FlowState.GENERATING_PROMPT: 50,
    FlowState.RETRYING: 60,
    FlowState.CALLING_REMOTE: 70,
    FlowState.FALLBACK: 75,
    FlowState.PROCESSING_RESPONSE: 85,
    FlowState.STORING: 90,
    FlowState.COMPLETED: 100,
    FlowState.FAILED: 0,
    FlowState.CANCELLED: 0,
}

_ABORT = frozenset({FlowState.FAILED, FlowState.CANCELLED})

TRANSITIONS: dict[FlowState, frozenset[FlowState]] = {
    FlowState.IDLE: frozenset({FlowState.SELECTING}) | _ABORT,
    FlowState.SELECTING: frozenset({FlowState.EXTRACTING}) | _ABORT,
    FlowState.EXTRACTING: frozenset({FlowState.DETECTING}) | _ABORT,
    FlowState.DETECTING: frozenset({FlowState.CLEANING}) | _ABORT,
    FlowState.CLEANING: frozenset({FlowState.HASHING}) | _ABORT,
    # Cache disabled: hashing goes straight to prompt generation
    FlowState.HASHING: frozenset({FlowState.CHECKING_CACHE, FlowState.GENERATING_PROMPT})
    | _ABORT,
    FlowState.CHECKING_CACHE: frozenset({FlowState.CACHE_HIT, FlowState.GENERATING_PROMPT})
    | _ABORT,
    FlowState.CACHE_HIT: frozenset({FlowState.COMPLETED}) | _ABORT,
    FlowState.GENERATING_PROMPT: frozenset({FlowState.CALLING_REMOTE}) | _ABORT,
    FlowState.CALLING_REMOTE: frozenset(
        {FlowState.PROCESSING_RESPONSE, FlowState.RETRYING, FlowState.FALLBACK}
    )
    | _ABORT,
    FlowState.RETRYING: frozenset({FlowState.CALLING_REMOTE}) | _ABORT,
    FlowState.FALLBACK: frozenset({FlowState.CALLING_REMOTE}) | _ABORT,
    FlowState.PROCESSING_RESPONSE: frozenset({FlowState.STORING, FlowState.COMPLETED}) | _ABORT,
    FlowState.STORING: frozenset({FlowState.COMPLETED}) | _ABORT,
    FlowState.COMPLETED: frozenset(),
    FlowState.FAILED: frozenset(),
    FlowState.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class StateDetails:
    """Optional detail attached to a transition record."""

    step: str | None = None
    eta_ms: int | None = None
    retry_count: int | None = None
    fallback_index: int | None = None
    target: str | None = None


@dataclass(frozen=True)
class FlowStateMetadata:
    """One entry in a flow's history.

    Attributes:
        state: State entered by this transition
        timestamp: When the transition happened (UTC)
        progress: Percentage 0-100
        message: Human-readable description
        details: Optional step/eta/retry/fallback detail
        error: Set on FAILED and CANCELLED records
        result: Set on COMPLETED records
    """

    state: FlowState
    progress: int
    message: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    details: StateDetails | None = None
    error: FlowError | None = None
    result: Any = None

    def __post_init__(self) -> None:
        if not 0 <= self.progress <= 100:
            raise ValueError(f"progress must be within 0-100, got {self.progress}")
