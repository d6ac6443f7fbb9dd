"""Unit tests for deterministic digest helpers."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from speckit_analyzer.utils.hashing import canonical_json, sha1_short, unit_interval


def test_canonical_json_sorts_keys_and_stringifies_opaque_values() -> None:
    class Opaque:
        def __str__(self) -> str:
            return "opaque"

    assert canonical_json({"b": 1, "a": [Opaque()]}) == '{"a":["opaque"],"b":1}'


def test_sha1_short_is_key_order_independent() -> None:
    first = sha1_short({"kind": "edit", "output": "x"})
    second = sha1_short({"output": "x", "kind": "edit"})

    assert first == second
    assert len(first) == 12
    assert first == first.lower()


def test_sha1_short_hashes_strings_verbatim() -> None:
    assert sha1_short("abc") == "a9993e364706"
    assert sha1_short("abc", length=4) == "a999"


def test_sha1_short_rejects_non_positive_length() -> None:
    with pytest.raises(ValueError, match="length must be > 0"):
        sha1_short("abc", length=0)


@given(st.text(max_size=64))
def test_unit_interval_is_deterministic_and_bounded(seed: str) -> None:
    value = unit_interval(seed)

    assert 0.0 <= value <= 1.0
    assert unit_interval(seed) == value
