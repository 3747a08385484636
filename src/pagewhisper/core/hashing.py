"""
Deterministic cache key generation.

A cache key is a hash over three facet hashes:

    component_hash = H(normalized markup | styles)
    context_hash   = H(canonical JSON of the detection context)
    options_hash   = H(canonical JSON of the generation options)
    key            = H(component_hash | context_hash | options_hash)

Canonical JSON sorts mapping keys and sorts the members of every list, tuple
and set, so two inputs that differ only in incidental ordering produce the
same key.
"""

from __future__ import annotations

import base64
import hashlib
import json
import re
from collections.abc import Mapping
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any

import xxhash

from pagewhisper.models.cache import CacheKey
from pagewhisper.models.config import HashAlgorithm, HashConfig, HashEncoding
from pagewhisper.models.unit import Component, ProcessedUnit

_WS_RUN = re.compile(r"\s+")
_INTER_TAG_WS = re.compile(r">\s+<")
_SEPARATOR = "|"


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs, drop whitespace between tags, trim."""
    return _WS_RUN.sub(" ", _INTER_TAG_WS.sub("><", text)).strip()


def canonicalize(value: Any) -> Any:
    """Convert value into a JSON-ready structure with a single canonical order."""
    if is_dataclass(value) and not isinstance(value, type):
        value = asdict(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): canonicalize(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        items = [canonicalize(v) for v in value]
        return sorted(items, key=_sort_key)
    if value is None or isinstance(value, str | int | float | bool):
        return value
    return repr(value)


def canonical_json(value: Any) -> str:
    return json.dumps(canonicalize(value), sort_keys=True, separators=(",", ":"))


def _sort_key(item: Any) -> str:
    return json.dumps(item, sort_keys=True, separators=(",", ":"))


class CacheKeyGenerator:
    """Builds CacheKey values. Pure: same input, same key, no side effects.

    Usage:
        generator = CacheKeyGenerator()
        key = generator.generate(Component("<div/>"), {}, {"framework": "react"})

        fast = CacheKeyGenerator(HashConfig(algorithm=HashAlgorithm.XXH3_128))
    """

    def __init__(self, config: HashConfig | None = None):
        self._config = config or HashConfig()

    @property
    def algorithm(self) -> HashAlgorithm:
        return self._config.algorithm

    def digest(self, data: str | bytes) -> str:
        """Hash data with the configured algorithm and encoding."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        raw = _digest_bytes(self._config.algorithm, data)
        return _encode(raw, self._config.encoding)

    def hash_component(self, component: Component | str) -> str:
        if isinstance(component, str):
            component = Component(markup=component)
        markup = component.markup
        styles = component.styles
        if self._config.normalize_whitespace:
            markup = normalize_whitespace(markup)
            styles = normalize_whitespace(styles)
        # Digests never contain the separator, so the join is unambiguous
        return self.digest(_SEPARATOR.join((self.digest(markup), self.digest(styles))))

    def hash_content(self, component: Component) -> dict[str, str]:
        """Hash markup, styles and their combination separately."""
        return {
            "markup": self.digest(component.markup),
            "styles": self.digest(component.styles),
            "combined": self.hash_component(component),
        }

    def generate(
        self,
        content: Component | str,
        context: Mapping[str, Any] | Any = None,
        options: Mapping[str, Any] | Any = None,
    ) -> CacheKey:
        """Derive the cache key for one (content, context, options) triple."""
        component_hash = self.hash_component(content)
        context_hash = self.digest(canonical_json(_as_mapping(context)))
        options_hash = self.digest(canonical_json(_as_mapping(options)))
        key = self.digest(_SEPARATOR.join((component_hash, context_hash, options_hash)))
        return CacheKey(
            key=key,
            algorithm=self._config.algorithm.value,
            component_hash=component_hash,
            context_hash=context_hash,
            options_hash=options_hash,
        )

    def for_unit(self, unit: ProcessedUnit) -> CacheKey:
        return self.generate(unit.component, unit.context.as_dict(), unit.options.as_dict())


def _as_mapping(value: Any) -> Any:
    if value is None:
        return {}
    as_dict = getattr(value, "as_dict", None)
    if callable(as_dict):
        return as_dict()
    return value


def _digest_bytes(algorithm: HashAlgorithm, data: bytes) -> bytes:
    if algorithm is HashAlgorithm.XXH64:
        return xxhash.xxh64(data).digest()
    if algorithm is HashAlgorithm.XXH3_128:
        return xxhash.xxh3_128(data).digest()
    return hashlib.new(algorithm.value, data).digest()


def _encode(raw: bytes, encoding: HashEncoding) -> str:
    if encoding is HashEncoding.HEX:
        return raw.hex()
    if encoding is HashEncoding.BASE64:
        return base64.b64encode(raw).decode("ascii")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")
