"""Select the prompt text that requirements are mined from."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

from speckit_analyzer.constants import PROMPT_WINDOW_CHARS

_GUARDRAIL_MARKER: Final[str] = "guard rail"


def detect_prompt(
    candidates: Sequence[str],
    fallback_text: str,
    *,
    window: int = PROMPT_WINDOW_CHARS,
) -> str:
    """Return the longest candidate (first wins ties) or a window of ``fallback_text``.

    Without candidates the window starts at the first case-insensitive
    ``guard rail`` marker, else at the start of the text. Always returns a string.
    """

    if candidates:
        return max(candidates, key=len)
    start = fallback_text.lower().find(_GUARDRAIL_MARKER)
    if start < 0:
        start = 0
    return fallback_text[start : start + window]


__all__ = ["detect_prompt"]
