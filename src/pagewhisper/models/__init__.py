"""Value types shared across pagewhisper."""

from pagewhisper.models.cache import CacheEntry, CacheKey, CacheStats
from pagewhisper.models.config import (
    CacheConfig,
    FlowConfig,
    HashAlgorithm,
    HashConfig,
    HashEncoding,
)
from pagewhisper.models.errors import (
    ErrorKind,
    FlowCancelledError,
    FlowError,
    InvalidTransitionError,
    OrchestratorBusyError,
    PageWhisperError,
    RateLimitError,
    RemoteCallError,
    RemoteConnectionError,
    RemoteStatusError,
    RemoteTimeoutError,
    ValidationError,
)
from pagewhisper.models.retry import RetryConfig
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
    TokenUsage,
)

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "CacheKey",
    "CacheStats",
    "Component",
    "DetectionContext",
    "ErrorKind",
    "FlowCancelledError",
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
    "InvalidTransitionError",
    "OrchestratorBusyError",
    "PageWhisperError",
    "ProcessedUnit",
    "RateLimitError",
    "RemoteCallError",
    "RemoteConnectionError",
    "RemoteRequest",
    "RemoteResponse",
    "RemoteStatusError",
    "RemoteTimeoutError",
    "RenderedPrompt",
    "RetryConfig",
    "StateDetails",
    "TokenUsage",
    "ValidationError",
]
