"""
Collaborator interfaces used by FlowOrchestrator, with default implementations.

The orchestrator never parses pages or talks to a vendor API itself. It
depends on three protocols:

    ComponentProcessor  select → extract → detect → clean, producing the
                        Component and DetectionContext that get hashed
    PromptBuilder       renders a RenderedPrompt from a ProcessedUnit
    RemoteClient        performs one generation call against one target

Processor and prompt builder methods may return plain values or awaitables.
RemoteClient.generate is always a coroutine and should raise the typed
RemoteCallError subclasses on failure.
"""

from __future__ import annotations

from collections.abc import Awaitable, Mapping
from string import Template
from typing import Any, Protocol, runtime_checkable

from pagewhisper.models.errors import ValidationError
from pagewhisper.models.unit import (
    Component,
    DetectionContext,
    ProcessedUnit,
    RemoteRequest,
    RemoteResponse,
    RenderedPrompt,
)


@runtime_checkable
class ComponentProcessor(Protocol):
    def select(self, source: Any) -> Any | Awaitable[Any]: ...

    def extract(self, selected: Any) -> Component | Awaitable[Component]: ...

    def detect(
        self, component: Component, hint: DetectionContext
    ) -> DetectionContext | Awaitable[DetectionContext]: ...

    def clean(
        self, component: Component, context: DetectionContext
    ) -> Component | Awaitable[Component]: ...


@runtime_checkable
class PromptBuilder(Protocol):
    def build(self, unit: ProcessedUnit) -> RenderedPrompt | Awaitable[RenderedPrompt]: ...


@runtime_checkable
class RemoteClient(Protocol):
    async def generate(self, request: RemoteRequest) -> RemoteResponse: ...


class PassthroughProcessor:
    """Processor for sources that are already extracted.

    Accepts a Component, a markup string, or a mapping with ``markup`` and
    optional ``styles``. Detection returns the caller-supplied context and
    cleaning is a no-op.
    """

    def select(self, source: Any) -> Any:
        if source is None:
            raise ValidationError("source is required", "source")
        return source

    def extract(self, selected: Any) -> Component:
        if isinstance(selected, Component):
            return selected
        if isinstance(selected, str):
            return Component(markup=selected)
        if isinstance(selected, Mapping) and "markup" in selected:
            return Component(markup=str(selected["markup"]), styles=str(selected.get("styles", "")))
        raise ValidationError(
            f"Unsupported source type {type(selected).__name__}; "
            "expected Component, str or mapping with 'markup'",
            "source",
        )

    def detect(self, component: Component, hint: DetectionContext) -> DetectionContext:
        return hint

    def clean(self, component: Component, context: DetectionContext) -> Component:
        return component


SYSTEM_TEMPLATE = Template(
    "You convert HTML and CSS into production-ready $framework components "
    "written in $language. Respond with code only."
)

USER_TEMPLATES: dict[str, Template] = {
    "v1": Template(
        "Convert this HTML to a $framework component.\n\n"
        "HTML:\n$markup\n\n"
        "CSS:\n$styles\n"
    ),
    "v2": Template(
        "Convert this HTML to a $framework component in $language.\n"
        "Detected frameworks: $frameworks\n"
        "Detected CSS frameworks: $css_frameworks\n"
        "Detected libraries: $libraries\n"
        "Include styles: $include_styles. Include tests: $include_tests. "
        "Include types: $include_types.\n"
        "Accessibility level: $accessibility. Optimization level: $optimization.\n\n"
        "HTML:\n$markup\n\n"
        "CSS:\n$styles\n"
    ),
}


class TemplatePromptBuilder:
    """Renders prompts from string.Template templates.

    Usage:
        builder = TemplatePromptBuilder(version="v2")
        prompt = builder.build(unit)
    """

    def __init__(self, version: str = "v2", templates: Mapping[str, Template] | None = None):
        self._templates = dict(templates or USER_TEMPLATES)
        if version not in self._templates:
            raise ValueError(f"Unknown prompt template version {version!r}")
        self._version = version

    @property
    def version(self) -> str:
        return self._version

    def build(self, unit: ProcessedUnit) -> RenderedPrompt:
        options = unit.options
        context = unit.context.as_dict()
        values = {
            "framework": options.target_framework,
            "language": options.language,
            "markup": unit.component.markup,
            "styles": unit.component.styles or "(none)",
            "frameworks": ", ".join(context["frameworks"]) or "none",
            "css_frameworks": ", ".join(context["css_frameworks"]) or "none",
            "libraries": ", ".join(context["libraries"]) or "none",
            "include_styles": "yes" if options.include_styles else "no",
            "include_tests": "yes" if options.include_tests else "no",
            "include_types": "yes" if options.include_types else "no",
            "accessibility": options.accessibility_level,
            "optimization": options.optimization_level,
        }
        return RenderedPrompt(
            system=SYSTEM_TEMPLATE.safe_substitute(values),
            user=self._templates[self._version].safe_substitute(values),
            version=self._version,
        )
