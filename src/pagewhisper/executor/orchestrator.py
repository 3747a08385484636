"""
FlowOrchestrator - the flow state machine.

Sequences the pipeline phases, brackets the remote call with cache lookup and
cache write, and wraps the remote call with retry and fallback:

    idle → selecting → extracting → detecting → cleaning → hashing
         → checking_cache ─ hit ─→ cache_hit → completed
                          └ miss → generating_prompt → calling_remote
    calling_remote ─ ok ──→ processing_response → storing → completed
                   ├ retry → retrying → calling_remote
                   ├ retries exhausted, fallback eligible
                   │       → fallback → calling_remote (one attempt per target)
                   └ otherwise → failed

Any non-terminal state moves to cancelled when cancellation is observed, or
to failed on an unrecoverable error. Terminal states have no outgoing edges;
the transition table in pagewhisper.models.state enforces this.

Concurrency model:
    One flow runs as one asyncio task and runs its phases strictly in
    sequence. The remote call runs in its own task so cancel() can cancel
    it directly. Backoff waits wake up immediately on cancel(). Synchronous
    local phases are not preempted; cancellation is observed at the next
    phase boundary.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import replace
from datetime import timedelta
from typing import Any

from uuid_extensions import uuid7

from pagewhisper.core.cache import CacheStore
from pagewhisper.core.classifier import ErrorClassifier
from pagewhisper.core.fallback import FallbackChain, FallbackChainManager
from pagewhisper.core.hashing import CacheKeyGenerator
from pagewhisper.core.retry import RetryPolicyEngine
from pagewhisper.executor.collaborators import (
    ComponentProcessor,
    PassthroughProcessor,
    PromptBuilder,
    RemoteClient,
    TemplatePromptBuilder,
)
from pagewhisper.executor.outcome import FlowOutcome
from pagewhisper.models.cache import CacheKey
from pagewhisper.models.config import FlowConfig
from pagewhisper.models.errors import (
    ErrorKind,
    FlowCancelledError,
    FlowError,
    InvalidTransitionError,
    OrchestratorBusyError,
    PageWhisperError,
    RemoteTimeoutError,
)
from pagewhisper.models.state import FlowState, FlowStateMetadata, StateDetails
from pagewhisper.models.unit import (
    Component,
    DetectionContext,
    FlowInput,
    FlowResult,
    GenerationOptions,
    ProcessedUnit,
    RemoteRequest,
    RemoteResponse,
    RenderedPrompt,
)
from pagewhisper.storage.base import StorageError

logger = logging.getLogger(__name__)

StateObserver = Callable[[FlowStateMetadata], Any]


class _FlowFailed(Exception):
    """Internal: carries a classified error out of nested phases."""

    def __init__(self, error: FlowError):
        super().__init__(error.message)
        self.error = error


class FlowOrchestrator:
    """Runs flows against one remote client.

    All collaborators are injected; anything omitted gets a default. Share one
    CacheStore between orchestrators to share cached results.

    One orchestrator runs one flow at a time. Use one orchestrator per
    concurrent flow.

    Usage:
        store = CacheStore(InMemoryCacheStorage())
        orchestrator = FlowOrchestrator(
            client,
            config=FlowConfig(primary_target="gpt-4o").with_fallbacks("claude-sonnet"),
            cache_store=store,
        )
        outcome = await orchestrator.execute(
            FlowInput(source="<div>Hi</div>", options={"framework": "react"}),
            on_state_change=lambda record: print(record.state, record.progress),
        )
    """

    def __init__(
        self,
        remote_client: RemoteClient,
        *,
        config: FlowConfig | None = None,
        cache_store: CacheStore | None = None,
        processor: ComponentProcessor | None = None,
        prompt_builder: PromptBuilder | None = None,
        key_generator: CacheKeyGenerator | None = None,
        retry_engine: RetryPolicyEngine | None = None,
        fallback_manager: FallbackChainManager | None = None,
        classifier: ErrorClassifier | None = None,
    ):
        self._client = remote_client
        self._config = config or FlowConfig()
        if cache_store is None and self._config.enable_cache:
            cache_store = CacheStore(default_ttl=self._config.cache_ttl_seconds)
        self._cache = cache_store
        self._processor = processor or PassthroughProcessor()
        self._prompts = prompt_builder or TemplatePromptBuilder()
        self._keys = key_generator or CacheKeyGenerator()
        self._retry = retry_engine or RetryPolicyEngine()
        self._fallback = fallback_manager or FallbackChainManager()
        self._classifier = classifier or ErrorClassifier(self._config.retry)

        self._running = False
        self._reset(None)

    def _reset(self, observer: StateObserver | None) -> None:
        self._flow_id = str(uuid7())
        self._state = FlowState.IDLE
        self._progress = 0
        self._history: list[FlowStateMetadata] = []
        self._observer = observer
        self._cancel_event = asyncio.Event()
        self._remote_task: asyncio.Task | None = None
        self._attempts = 0
        self._retry_attempted = False
        self._fallback_attempted = False
        self._cache_key: CacheKey | None = None

    def __repr__(self) -> str:
        return f"FlowOrchestrator(flow_id={self._flow_id}, state={self._state})"

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def flow_id(self) -> str:
        return self._flow_id

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def history(self) -> tuple[FlowStateMetadata, ...]:
        return tuple(self._history)

    @property
    def config(self) -> FlowConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    async def execute(
        self,
        flow_input: FlowInput,
        on_state_change: StateObserver | None = None,
    ) -> FlowOutcome:
        """Run one flow to a terminal state.

        Args:
            flow_input: Source, options and optional detection hint
            on_state_change: Optional observer called with every new history
                record. May be sync or async. Exceptions it raises are logged
                and never affect the flow.

        Returns:
            FlowOutcome; failures and cancellation are reported in it, not raised

        Raises:
            OrchestratorBusyError: A flow is already running on this instance
        """
        if self._running:
            raise OrchestratorBusyError(f"Flow {self._flow_id} is still running")
        self._running = True
        self._reset(on_state_change)
        try:
            return await self._run(flow_input)
        finally:
            self._running = False
            self._remote_task = None

    def cancel(self) -> bool:
        """Request cooperative cancellation of the running flow.

        Returns True if the request was accepted.
        """
        if not self._config.allow_cancellation:
            logger.warning(f"Flow {self._flow_id}: cancellation disabled by config")
            return False
        if not self._running or self._state.is_terminal:
            return False
        logger.info(f"Flow {self._flow_id}: cancellation requested in {self._state}")
        self._cancel_event.set()
        task = self._remote_task
        if task is not None and not task.done():
            task.cancel()
        return True

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _run(self, flow_input: FlowInput) -> FlowOutcome:
        started = time.monotonic()
        logger.info(f"Flow {self._flow_id} started")
        await self._record(FlowState.IDLE, "Flow created")

        try:
            await self._enter(FlowState.SELECTING, "Selecting component", step="select")
            options = self._validate_options(flow_input.options)
            hint = self._validate_context(flow_input.context)
            selected = await self._local(self._processor.select, flow_input.source)

            await self._enter(FlowState.EXTRACTING, "Extracting markup and styles", step="extract")
            component: Component = await self._local(
                self._processor.extract,
                selected,
                timeout_ms=self._config.extraction_timeout_ms,
            )

            await self._enter(FlowState.DETECTING, "Detecting frameworks", step="detect")
            context: DetectionContext = await self._local(self._processor.detect, component, hint)

            await self._enter(FlowState.CLEANING, "Cleaning styles", step="clean")
            component = await self._local(self._processor.clean, component, context)
            unit = ProcessedUnit(component=component, context=context, options=options)

            await self._enter(FlowState.HASHING, "Computing cache key", step="hash")
            cache_key = self._keys.for_unit(unit)
            self._cache_key = cache_key
            cache = self._cache if self._config.enable_cache else None

            if cache is not None:
                await self._enter(FlowState.CHECKING_CACHE, "Checking cache", step="cache")
                entry = await cache.get(cache_key.key)
                if entry is not None:
                    logger.debug(f"Flow {self._flow_id}: cache hit {cache_key.key[:16]}")
                    await self._enter(FlowState.CACHE_HIT, "Using cached result")
                    result = replace(
                        entry.value,
                        from_cache=True,
                        attempts=0,
                        processing_time_ms=_elapsed_ms(started),
                    )
                    return await self._complete(result)
                logger.debug(f"Flow {self._flow_id}: cache miss {cache_key.key[:16]}")

            await self._enter(FlowState.GENERATING_PROMPT, "Building prompt", step="prompt")
            prompt: RenderedPrompt = await self._local(self._prompts.build, unit)

            response, target = await self._call_with_recovery(unit, prompt)

            await self._enter(FlowState.PROCESSING_RESPONSE, "Processing response", target=target)
            result = FlowResult(
                content=response.content,
                model=response.model or target,
                target=target,
                usage=response.usage,
                attempts=self._attempts,
                cache_key=cache_key.key,
                processing_time_ms=_elapsed_ms(started),
            )

            if cache is not None:
                await self._enter(FlowState.STORING, "Caching result", step="store")
                await self._store(cache, cache_key, result)

            return await self._complete(result)

        except FlowCancelledError:
            return await self._finish_cancelled()
        except asyncio.CancelledError:
            if self._cancel_event.is_set() and not _being_cancelled():
                return await self._finish_cancelled()
            # The task running execute() was cancelled from outside
            if not self._state.is_terminal:
                await self._finish_cancelled()
            raise
        except _FlowFailed as e:
            return await self._finish_failed(e.error)
        except InvalidTransitionError:
            raise
        except Exception as e:
            error = self._classifier.classify(e, self._state)
            if error.kind is ErrorKind.CANCELLED:
                return await self._finish_cancelled()
            return await self._finish_failed(error)

    def _validate_options(self, options: GenerationOptions | Mapping[str, Any]) -> GenerationOptions:
        if isinstance(options, GenerationOptions):
            options.validate()
            return options
        return GenerationOptions.from_mapping(options)

    @staticmethod
    def _validate_context(context: DetectionContext | Mapping[str, Any] | None) -> DetectionContext:
        if isinstance(context, DetectionContext):
            return context
        return DetectionContext.from_mapping(context)

    async def _local(self, func: Callable[..., Any], *args: Any, timeout_ms: int | None = None) -> Any:
        """Run a local phase step, awaiting it if it returns an awaitable."""
        value = func(*args)
        if inspect.isawaitable(value):
            if timeout_ms is not None:
                return await asyncio.wait_for(value, timeout=timeout_ms / 1000)
            return await value
        return value

    async def _store(self, cache: CacheStore, cache_key: CacheKey, result: FlowResult) -> None:
        try:
            await cache.set(
                cache_key.key,
                result,
                ttl=self._config.cache_ttl_seconds,
                metadata={"flow_id": self._flow_id, "target": result.target},
            )
        except StorageError as e:
            # The result is already in hand; a failed write only costs a future miss
            logger.warning(f"Flow {self._flow_id}: failed to cache result: {e}")

    # =========================================================================
    # Remote call, retry and fallback
    # =========================================================================

    async def _call_with_recovery(
        self, unit: ProcessedUnit, prompt: RenderedPrompt
    ) -> tuple[RemoteResponse, str]:
        primary = self._config.primary_target
        retry_config = self._config.retry

        async def on_retry(attempt: int, error: FlowError, delay: timedelta) -> None:
            self._retry_attempted = True
            await self._enter(
                FlowState.RETRYING,
                f"Retrying after {error.kind} (attempt {attempt + 1}/{retry_config.max_attempts})",
                retry_count=attempt,
                eta_ms=delay // timedelta(milliseconds=1),
                target=primary,
            )

        outcome = await self._retry.run(
            lambda: self._attempt(primary, unit, prompt),
            retry_config,
            self._classify_remote,
            on_retry=on_retry,
            wait=self._wait,
        )
        if outcome.success:
            return outcome.value, primary

        error = outcome.error
        if error is None:
            raise PageWhisperError(f"Retry loop for {primary} ended without value or error")
        if error.kind is ErrorKind.CANCELLED:
            raise FlowCancelledError(error.message)

        chain = FallbackChain(self._config.active_fallbacks)
        if not self._fallback.should_fallback(error, chain):
            raise _FlowFailed(error)

        async def on_advance(index: int, target: str) -> None:
            self._fallback_attempted = True
            await self._enter(
                FlowState.FALLBACK,
                f"Falling back to {target}",
                fallback_index=index,
                target=target,
            )

        fallback = await self._fallback.run(
            chain,
            lambda target: self._attempt(target, unit, prompt),
            self._classify_remote,
            on_advance=on_advance,
        )
        if fallback.success:
            return fallback.value, fallback.target

        error = fallback.error
        if error is None:
            raise PageWhisperError("Fallback chain ended without value or error")
        if error.kind is ErrorKind.CANCELLED:
            raise FlowCancelledError(error.message)
        raise _FlowFailed(error)

    async def _attempt(
        self, target: str, unit: ProcessedUnit, prompt: RenderedPrompt
    ) -> RemoteResponse:
        """One remote call against one target, bounded by remote_timeout_ms."""
        await self._enter(
            FlowState.CALLING_REMOTE,
            f"Calling {target}",
            target=target,
            retry_count=self._attempts,
        )
        self._attempts += 1
        request = RemoteRequest(prompt=prompt, target=target, options=unit.options)
        task = asyncio.create_task(self._client.generate(request))
        self._remote_task = task
        timeout_ms = self._config.remote_timeout_ms
        try:
            return await asyncio.wait_for(task, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            if self._cancel_event.is_set() and not _being_cancelled():
                raise FlowCancelledError(f"Cancelled during call to {target}") from None
            raise
        except TimeoutError as e:
            raise RemoteTimeoutError(
                f"Call to {target} timed out after {timeout_ms} ms", target
            ) from e
        finally:
            self._remote_task = None

    def _classify_remote(self, exc: BaseException) -> FlowError:
        return self._classifier.classify(exc, self._state)

    async def _wait(self, delay: timedelta) -> None:
        """Backoff wait that returns early by raising on cancellation."""
        seconds = delay.total_seconds()
        if seconds > 0:
            try:
                await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)
            except TimeoutError:
                return
        if self._cancel_event.is_set():
            raise FlowCancelledError("Cancelled during backoff")

    # =========================================================================
    # Transitions
    # =========================================================================

    async def _enter(self, state: FlowState, message: str = "", **details: Any) -> None:
        """Move to a non-terminal state, observing cancellation first."""
        if self._cancel_event.is_set():
            raise FlowCancelledError(f"Cancelled before {state}")
        await self._transition(state, message, details=StateDetails(**details) if details else None)

    async def _transition(
        self,
        state: FlowState,
        message: str,
        *,
        details: StateDetails | None = None,
        error: FlowError | None = None,
        result: FlowResult | None = None,
    ) -> FlowStateMetadata:
        if not self._state.can_transition_to(state):
            raise InvalidTransitionError(self._state, state)
        logger.debug(f"Flow {self._flow_id}: {self._state} -> {state}")
        self._state = state
        if state not in (FlowState.FAILED, FlowState.CANCELLED):
            self._progress = max(self._progress, state.nominal_progress)
        return await self._record(state, message, details=details, error=error, result=result)

    async def _record(
        self,
        state: FlowState,
        message: str,
        *,
        details: StateDetails | None = None,
        error: FlowError | None = None,
        result: FlowResult | None = None,
    ) -> FlowStateMetadata:
        record = FlowStateMetadata(
            state=state,
            progress=self._progress,
            message=message,
            details=details,
            error=error,
            result=result,
        )
        self._history.append(record)
        await self._notify(record)
        return record

    async def _notify(self, record: FlowStateMetadata) -> None:
        if self._observer is None:
            return
        try:
            maybe = self._observer(record)
            if inspect.isawaitable(maybe):
                await maybe
        except Exception as e:
            logger.warning(f"Flow {self._flow_id}: state observer raised {e!r}")

    # =========================================================================
    # Terminal states
    # =========================================================================

    def _outcome(self, result: FlowResult | None = None, error: FlowError | None = None) -> FlowOutcome:
        return FlowOutcome(
            flow_id=self._flow_id,
            final=self._history[-1],
            history=tuple(self._history),
            result=result,
            error=error,
            cache_key=self._cache_key,
        )

    async def _complete(self, result: FlowResult) -> FlowOutcome:
        await self._transition(FlowState.COMPLETED, "Completed", result=result)
        logger.info(
            f"Flow {self._flow_id} completed via {result.target} "
            f"(attempts={result.attempts}, from_cache={result.from_cache})"
        )
        return self._outcome(result=result)

    async def _finish_failed(self, error: FlowError) -> FlowOutcome:
        error = error.annotate(
            attempts=self._attempts,
            retry_attempted=self._retry_attempted,
            fallback_attempted=self._fallback_attempted,
        )
        await self._transition(FlowState.FAILED, error.message, error=error)
        logger.error(f"Flow {self._flow_id} failed: {error}")
        return self._outcome(error=error)

    async def _finish_cancelled(self) -> FlowOutcome:
        error = FlowError(
            kind=ErrorKind.CANCELLED,
            message="Flow cancelled",
            phase=self._state.value,
            attempts=self._attempts,
            retry_attempted=self._retry_attempted,
            fallback_attempted=self._fallback_attempted,
        )
        await self._transition(FlowState.CANCELLED, "Cancelled", error=error)
        logger.info(f"Flow {self._flow_id} cancelled in phase {error.phase}")
        return self._outcome(error=error)


def _elapsed_ms(started: float) -> float:
    return (time.monotonic() - started) * 1000


def _being_cancelled() -> bool:
    """Check if the current task itself has a pending cancellation request."""
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0
