"""Tests for CacheKeyGenerator determinism, facets, algorithms and encodings."""

import pytest

from pagewhisper.core.hashing import (
    CacheKeyGenerator,
    canonical_json,
    normalize_whitespace,
)
from pagewhisper.models import (
    Component,
    DetectionContext,
    GenerationOptions,
    HashAlgorithm,
    HashConfig,
    HashEncoding,
    ProcessedUnit,
)

COMPONENT = Component(markup="<div class='card'><h2>Title</h2></div>", styles=".card{color:red}")


@pytest.fixture
def generator() -> CacheKeyGenerator:
    return CacheKeyGenerator()


def test_same_input_same_key(generator):
    context = {"frameworks": ["react"], "libraries": ["lodash"]}
    options = {"framework": "vue", "language": "typescript"}

    first = generator.generate(COMPONENT, context, options)
    second = generator.generate(COMPONENT, context, options)

    assert first == second
    assert first.algorithm == "sha256"


def test_list_order_does_not_change_key(generator):
    """Test detection order is incidental to the key."""
    a = generator.generate(COMPONENT, {"frameworks": ["react", "redux", "next"]}, {})
    b = generator.generate(COMPONENT, {"frameworks": ["next", "react", "redux"]}, {})

    assert a.key == b.key
    assert a.context_hash == b.context_hash


def test_mapping_order_does_not_change_key(generator):
    a = generator.generate(COMPONENT, {}, {"framework": "react", "language": "javascript"})
    b = generator.generate(COMPONENT, {}, {"language": "javascript", "framework": "react"})

    assert a.key == b.key


def test_changed_facets_names_differences(generator):
    base = generator.generate(COMPONENT, {"frameworks": ["react"]}, {"framework": "vue"})
    other_options = generator.generate(COMPONENT, {"frameworks": ["react"]}, {"framework": "svelte"})
    other_all = generator.generate("<p/>", {"frameworks": []}, {"framework": "svelte"})

    assert base.key != other_options.key
    assert base.changed_facets(other_options) == ["options"]
    assert base.changed_facets(other_all) == ["component", "context", "options"]
    assert base.changed_facets(base) == []


def test_none_context_equals_empty_mapping(generator):
    assert generator.generate(COMPONENT, None, None) == generator.generate(COMPONENT, {}, {})


def test_whitespace_normalization_applies_to_markup():
    messy = Component(markup="<div>\n   <span>a   b</span>\n</div>  ")
    tidy = Component(markup="<div><span>a b</span></div>")

    normalizing = CacheKeyGenerator(HashConfig(normalize_whitespace=True))
    literal = CacheKeyGenerator(HashConfig(normalize_whitespace=False))

    assert normalizing.hash_component(messy) == normalizing.hash_component(tidy)
    assert literal.hash_component(messy) != literal.hash_component(tidy)


def test_normalize_whitespace():
    assert normalize_whitespace("  <a>  </a>\n<b>x   y</b> ") == "<a></a><b>x y</b>"
    assert normalize_whitespace("") == ""


def test_markup_string_accepted_as_component(generator):
    assert generator.hash_component("<p>x</p>") == generator.hash_component(Component("<p>x</p>"))


@pytest.mark.parametrize(
    ("algorithm", "hex_length"),
    [
        (HashAlgorithm.SHA256, 64),
        (HashAlgorithm.SHA1, 40),
        (HashAlgorithm.MD5, 32),
        (HashAlgorithm.XXH64, 16),
        (HashAlgorithm.XXH3_128, 32),
    ],
)
def test_algorithms(algorithm, hex_length):
    generator = CacheKeyGenerator(HashConfig(algorithm=algorithm))

    key = generator.generate(COMPONENT, {}, {"framework": "react"})

    assert key.algorithm == algorithm.value
    assert len(key.key) == hex_length
    assert len(key.component_hash) == hex_length
    int(key.key, 16)


def test_algorithms_produce_different_keys():
    keys = {
        CacheKeyGenerator(HashConfig(algorithm=algorithm)).generate(COMPONENT).key
        for algorithm in HashAlgorithm
    }

    assert len(keys) == len(HashAlgorithm)


def test_base64url_encoding_is_url_safe():
    generator = CacheKeyGenerator(HashConfig(encoding=HashEncoding.BASE64URL))

    for i in range(50):
        digest = generator.digest(f"payload-{i}")
        assert "=" not in digest
        assert "+" not in digest
        assert "/" not in digest


def test_base64_encoding_length():
    generator = CacheKeyGenerator(HashConfig(encoding=HashEncoding.BASE64))

    # 32 bytes of sha256 → 44 base64 characters with padding
    assert len(generator.digest("abc")) == 44


def test_known_sha256_digest(generator):
    assert generator.digest("abc") == (
        "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )


def test_hash_content_returns_all_parts(generator):
    parts = generator.hash_content(COMPONENT)

    assert set(parts) == {"markup", "styles", "combined"}
    assert parts["combined"] == generator.hash_component(COMPONENT)
    assert parts["markup"] == generator.digest(COMPONENT.markup)


def test_for_unit_matches_generate(generator):
    unit = ProcessedUnit(
        component=COMPONENT,
        context=DetectionContext(frameworks=("react", "next")),
        options=GenerationOptions(target_framework="vue"),
    )

    from_unit = generator.for_unit(unit)
    direct = generator.generate(
        COMPONENT,
        {"frameworks": ["next", "react"], "css_frameworks": [], "libraries": []},
        GenerationOptions(target_framework="vue").as_dict(),
    )

    assert from_unit == direct


def test_canonical_json_sorts_nested_collections():
    a = canonical_json({"b": [3, 1, 2], "a": {"y": {"q", "p"}, "x": (2, 1)}})
    b = canonical_json({"a": {"x": [1, 2], "y": ["p", "q"]}, "b": [1, 2, 3]})

    assert a == b


def test_separator_inside_facets_does_not_collide(generator):
    left = Component(markup="<b>x</b>|||", styles="")
    right = Component(markup="<b>x</b>", styles="|||")

    assert generator.hash_component(left) != generator.hash_component(right)
    options = {"framework": "react"}
    assert generator.generate(left, None, options).key != generator.generate(right, None, options).key
