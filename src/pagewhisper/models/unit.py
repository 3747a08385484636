"""Data handed between the pipeline phases and the remote collaborator.

The orchestrator treats the processed unit as hash input only; it never
looks inside markup or styles.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pagewhisper.models.errors import ValidationError

LANGUAGES = frozenset({"typescript", "javascript"})
ACCESSIBILITY_LEVELS = frozenset({"none", "basic", "standard", "strict"})
OPTIMIZATION_LEVELS = frozenset({"none", "basic", "aggressive"})


@dataclass(frozen=True)
class Component:
    """Extracted markup plus the styles that apply to it."""

    markup: str
    styles: str = ""


@dataclass(frozen=True)
class DetectionContext:
    """Frameworks and libraries detected on the page.

    Order is incidental; ``as_dict`` sorts every list so equal contexts hash
    equally regardless of detection order.
    """

    frameworks: tuple[str, ...] = ()
    css_frameworks: tuple[str, ...] = ()
    libraries: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> DetectionContext:
        if not data:
            return cls()
        return cls(
            frameworks=tuple(data.get("frameworks", ())),
            css_frameworks=tuple(data.get("css_frameworks", ())),
            libraries=tuple(data.get("libraries", ())),
        )

    def as_dict(self) -> dict[str, list[str]]:
        return {
            "frameworks": sorted(self.frameworks),
            "css_frameworks": sorted(self.css_frameworks),
            "libraries": sorted(self.libraries),
        }


@dataclass(frozen=True)
class GenerationOptions:
    """What the caller wants generated.

    Attributes:
        target_framework: Output framework, e.g. "react" or "vue"
        language: "typescript" or "javascript"
        include_styles: Emit styles with the component
        include_tests: Emit a test file
        include_types: Emit type declarations
        accessibility_level: One of ACCESSIBILITY_LEVELS
        optimization_level: One of OPTIMIZATION_LEVELS
        extra: Caller-specific options, hashed but otherwise ignored
    """

    target_framework: str
    language: str = "typescript"
    include_styles: bool = True
    include_tests: bool = False
    include_types: bool = True
    accessibility_level: str = "standard"
    optimization_level: str = "basic"
    extra: Mapping[str, Any] = field(default_factory=dict)

    _FIELDS = (
        "target_framework",
        "language",
        "include_styles",
        "include_tests",
        "include_types",
        "accessibility_level",
        "optimization_level",
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> GenerationOptions:
        """Build options from a loose mapping.

        ``framework`` is accepted as an alias of ``target_framework``. Unknown
        keys land in ``extra``. Raises ValidationError for a missing framework
        or values of the wrong type.
        """
        if not isinstance(data, Mapping):
            raise ValidationError(f"options must be a mapping, got {type(data).__name__}")
        data = dict(data)
        if "framework" in data and "target_framework" not in data:
            data["target_framework"] = data.pop("framework")
        if "target_framework" not in data:
            raise ValidationError("options.target_framework is required", "target_framework")
        known = {k: data.pop(k) for k in cls._FIELDS if k in data}
        extra = dict(data.pop("extra", {}) or {})
        extra.update(data)
        options = cls(**known, extra=extra)
        options.validate()
        return options

    def validate(self) -> None:
        """Raise ValidationError if any option is malformed."""
        if not isinstance(self.target_framework, str) or not self.target_framework.strip():
            raise ValidationError(
                "target_framework must be a non-empty string", "target_framework"
            )
        if self.language not in LANGUAGES:
            raise ValidationError(
                f"language must be one of {sorted(LANGUAGES)}, got {self.language!r}",
                "language",
            )
        for name in ("include_styles", "include_tests", "include_types"):
            if not isinstance(getattr(self, name), bool):
                raise ValidationError(f"{name} must be a bool", name)
        if self.accessibility_level not in ACCESSIBILITY_LEVELS:
            raise ValidationError(
                f"accessibility_level must be one of {sorted(ACCESSIBILITY_LEVELS)}",
                "accessibility_level",
            )
        if self.optimization_level not in OPTIMIZATION_LEVELS:
            raise ValidationError(
                f"optimization_level must be one of {sorted(OPTIMIZATION_LEVELS)}",
                "optimization_level",
            )
        if not isinstance(self.extra, Mapping):
            raise ValidationError("extra must be a mapping", "extra")

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {name: getattr(self, name) for name in self._FIELDS}
        if self.extra:
            data["extra"] = dict(self.extra)
        return data


@dataclass(frozen=True)
class ProcessedUnit:
    """Output of the local phases: the only input to hashing and prompting."""

    component: Component
    context: DetectionContext
    options: GenerationOptions


@dataclass(frozen=True)
class FlowInput:
    """Caller input to FlowOrchestrator.execute.

    ``source`` is opaque to the orchestrator and interpreted by the
    configured ComponentProcessor. ``options`` may be a GenerationOptions or a
    plain mapping, validated during the selecting phase.
    """

    source: Any
    options: GenerationOptions | Mapping[str, Any]
    context: DetectionContext | Mapping[str, Any] | None = None


@dataclass(frozen=True)
class RenderedPrompt:
    system: str
    user: str
    version: str = "v1"


@dataclass(frozen=True)
class RemoteRequest:
    """One outbound generation request against a single target."""

    prompt: RenderedPrompt
    target: str
    options: GenerationOptions


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class RemoteResponse:
    """Answer of a RemoteClient."""

    content: str
    model: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str = "stop"


@dataclass(frozen=True)
class FlowResult:
    """Result of a successful flow, as returned to the caller and cached.

    Attributes:
        content: Generated code
        model: Model reported by the remote client
        target: Target that produced the content
        usage: Token usage of the successful call
        attempts: Remote attempts made, 0 for a cache hit
        cache_key: Opaque cache key string
        from_cache: Served from the cache store
        processing_time_ms: Wall time from flow start to result
    """

    content: str
    model: str
    target: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    attempts: int = 0
    cache_key: str | None = None
    from_cache: bool = False
    processing_time_ms: float = 0.0
