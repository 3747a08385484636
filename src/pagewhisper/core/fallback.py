"""Fallback chain: alternate targets tried once each after retries run out."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pagewhisper.models.errors import ErrorKind, FlowError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Kinds that end the chain immediately instead of moving to the next target
_CHAIN_STOPPERS = frozenset({ErrorKind.CANCELLED, ErrorKind.VALIDATION_ERROR})


@dataclass(frozen=True)
class FallbackChain:
    """Ordered candidate targets. Immutable for the duration of a run."""

    targets: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.targets, tuple):
            object.__setattr__(self, "targets", tuple(self.targets))

    def __len__(self) -> int:
        return len(self.targets)

    def __iter__(self) -> Iterator[str]:
        return iter(self.targets)

    def __bool__(self) -> bool:
        return bool(self.targets)


@dataclass(frozen=True)
class FallbackResult(Generic[T]):
    """Outcome of FallbackChainManager.run.

    Attributes:
        success: Some target succeeded
        value: Value of the successful call
        error: Last classified failure when no target succeeded
        target: Target that succeeded
        tried: Targets attempted, in order
        exception: Raw exception behind ``error``
    """

    success: bool
    value: T | None = None
    error: FlowError | None = None
    target: str | None = None
    tried: tuple[str, ...] = ()
    exception: BaseException | None = None

    @property
    def attempts(self) -> int:
        return len(self.tried)


class FallbackChainManager:
    """Walks a FallbackChain, one attempt per target, first success wins.

    Usage:
        manager = FallbackChainManager()
        if manager.should_fallback(error, chain):
            result = await manager.run(chain, call_target, classify)
    """

    @staticmethod
    def should_fallback(error: FlowError, chain: FallbackChain) -> bool:
        """Check if a failed primary should hand over to the chain."""
        return bool(chain) and error.fallback_eligible and error.kind not in _CHAIN_STOPPERS

    async def run(
        self,
        chain: FallbackChain,
        call: Callable[[str], Awaitable[T]],
        classify: Callable[[BaseException], FlowError],
        *,
        on_advance: Callable[[int, str], Any] | None = None,
    ) -> FallbackResult[T]:
        """Try each target in order.

        Args:
            chain: Targets to try
            call: Makes one attempt against the given target
            classify: Maps a raised exception to a FlowError
            on_advance: Called with (index, target) before each attempt;
                may be sync or async

        Returns:
            FallbackResult for the first success, or carrying the last error
        """
        tried: list[str] = []
        last_error: FlowError | None = None
        last_exception: BaseException | None = None

        for index, target in enumerate(chain):
            if on_advance is not None:
                maybe = on_advance(index, target)
                if inspect.isawaitable(maybe):
                    await maybe
            tried.append(target)
            logger.info(f"Falling back to target {target!r} ({index + 1}/{len(chain)})")
            try:
                value = await call(target)
            except Exception as e:
                last_error = classify(e)
                last_exception = e
                logger.warning(f"Fallback target {target!r} failed: {last_error}")
                if last_error.kind in _CHAIN_STOPPERS:
                    break
                continue
            return FallbackResult(success=True, value=value, target=target, tried=tuple(tried))

        return FallbackResult(
            success=False, error=last_error, tried=tuple(tried), exception=last_exception
        )
