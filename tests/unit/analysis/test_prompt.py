"""Unit tests for prompt detection."""

from __future__ import annotations

from speckit_analyzer.analysis.prompt import detect_prompt


def test_longest_candidate_wins_and_first_wins_ties() -> None:
    assert detect_prompt(["short", "the much longer prompt", "medium one"], "x") == (
        "the much longer prompt"
    )
    assert detect_prompt(["abc", "xyz"], "") == "abc"


def test_fallback_window_starts_at_guard_rail_marker() -> None:
    text = "preamble " * 10 + "GUARD RAIL: never push to main"

    assert detect_prompt([], text, window=20) == "GUARD RAIL: never pu"


def test_fallback_window_starts_at_text_start_without_marker() -> None:
    text = "x" * 2_500

    detected = detect_prompt([], text)

    assert len(detected) == 2_000
    assert detect_prompt([], "") == ""
