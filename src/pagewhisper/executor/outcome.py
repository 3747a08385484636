"""
Flow execution outcome.

A failed or cancelled flow is a value, not an exception: execute() always
returns a FlowOutcome and the caller inspects it.

Example:
    ```python
    outcome = await orchestrator.execute(flow_input)

    match outcome.final.state:
        case FlowState.COMPLETED:
            print(outcome.result.content)
        case FlowState.FAILED:
            print(f"{outcome.error.kind} in {outcome.error.phase}")
        case FlowState.CANCELLED:
            print("cancelled")
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from pagewhisper.models.cache import CacheKey
from pagewhisper.models.errors import FlowError
from pagewhisper.models.state import FlowState, FlowStateMetadata
from pagewhisper.models.unit import FlowResult

__all__ = ["FlowOutcome"]


@dataclass(frozen=True)
class FlowOutcome:
    """Final state, full history and result or error of one flow run."""

    flow_id: str
    final: FlowStateMetadata
    history: tuple[FlowStateMetadata, ...]
    result: FlowResult | None = None
    error: FlowError | None = None
    cache_key: CacheKey | None = None

    @property
    def success(self) -> bool:
        return self.final.state is FlowState.COMPLETED

    @property
    def cancelled(self) -> bool:
        return self.final.state is FlowState.CANCELLED

    @property
    def cache_hit(self) -> bool:
        return any(record.state is FlowState.CACHE_HIT for record in self.history)

    @property
    def duration(self) -> timedelta:
        """Time between the first and the last history record."""
        if not self.history:
            return timedelta(0)
        return self.history[-1].timestamp - self.history[0].timestamp

    def states(self) -> list[FlowState]:
        """States in the order they were entered."""
        return [record.state for record in self.history]

    def count(self, state: FlowState) -> int:
        """How many times the flow entered ``state``."""
        return sum(1 for record in self.history if record.state is state)
