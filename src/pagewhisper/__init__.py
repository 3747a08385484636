"""
PageWhisper: resilient, cached orchestration of page-component code generation.

Turns an extracted page component into generated framework code through a
remote generation service, with a deterministic result cache, retry with
exponential backoff and jitter, a fallback chain of alternate targets, and a
cancellable, observable flow state machine.

Design Pattern: Façade Pattern
This module re-exports the pieces most callers need.

Example:
    ```python
    import asyncio
    from pagewhisper import (
        CacheStore,
        FlowConfig,
        FlowInput,
        FlowOrchestrator,
        RemoteResponse,
    )

    class EchoClient:
        async def generate(self, request):
            return RemoteResponse(content=f"// {request.target}", model=request.target)

    async def main():
        store = CacheStore()
        orchestrator = FlowOrchestrator(
            EchoClient(),
            config=FlowConfig(primary_target="primary").with_fallbacks("backup"),
            cache_store=store,
        )
        outcome = await orchestrator.execute(
            FlowInput(source="<button>Buy</button>", options={"framework": "react"})
        )
        print(outcome.final.state, outcome.result.content)

    asyncio.run(main())
    ```
"""

# Models
from pagewhisper.models import (
    CacheConfig,
    CacheEntry,
    CacheKey,
    CacheStats,
    Component,
    DetectionContext,
    ErrorKind,
    FlowCancelledError,
    FlowConfig,
    FlowError,
    FlowInput,
    FlowResult,
    FlowState,
    FlowStateMetadata,
    GenerationOptions,
    HashAlgorithm,
    HashConfig,
    HashEncoding,
    InvalidTransitionError,
    OrchestratorBusyError,
    PageWhisperError,
    ProcessedUnit,
    RateLimitError,
    RemoteCallError,
    RemoteConnectionError,
    RemoteRequest,
    RemoteResponse,
    RemoteStatusError,
    RemoteTimeoutError,
    RenderedPrompt,
    RetryConfig,
    StateDetails,
    TokenUsage,
    ValidationError,
)

# Core components
from pagewhisper.core import (
    CacheKeyGenerator,
    CacheStore,
    ErrorClassifier,
    FallbackChain,
    FallbackChainManager,
    RetryPolicyEngine,
    retry,
    with_retry,
)

# Storage (Adapter pattern)
from pagewhisper.storage import CacheStorage, InMemoryCacheStorage, StorageError

# Execution
from pagewhisper.executor import (
    CacheSweeper,
    FlowOrchestrator,
    FlowOutcome,
    PassthroughProcessor,
    SweeperHandle,
    TemplatePromptBuilder,
)

__version__ = "0.1.0"

__all__ = [
    # Models
    "CacheConfig",
    "CacheEntry",
    "CacheKey",
    "CacheStats",
    "Component",
    "DetectionContext",
    "ErrorKind",
    "FlowConfig",
    "FlowError",
    "FlowInput",
    "FlowResult",
    "FlowState",
    "FlowStateMetadata",
    "GenerationOptions",
    "HashAlgorithm",
    "HashConfig",
    "HashEncoding",
    "ProcessedUnit",
    "RemoteRequest",
    "RemoteResponse",
    "RenderedPrompt",
    "RetryConfig",
    "StateDetails",
    "TokenUsage",

    # Exceptions
    "FlowCancelledError",
    "InvalidTransitionError",
    "OrchestratorBusyError",
    "PageWhisperError",
    "RateLimitError",
    "RemoteCallError",
    "RemoteConnectionError",
    "RemoteStatusError",
    "RemoteTimeoutError",
    "StorageError",
    "ValidationError",

    # Core
    "CacheKeyGenerator",
    "CacheStore",
    "ErrorClassifier",
    "FallbackChain",
    "FallbackChainManager",
    "RetryPolicyEngine",
    "retry",
    "with_retry",

    # Storage
    "CacheStorage",
    "InMemoryCacheStorage",

    # Execution
    "CacheSweeper",
    "FlowOrchestrator",
    "FlowOutcome",
    "PassthroughProcessor",
    "SweeperHandle",
    "TemplatePromptBuilder",

    # Metadata
    "__version__",
]
