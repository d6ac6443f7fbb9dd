"""
speckit-analyzer — hashing utilities

File: src/speckit_analyzer/utils/hashing.py

Purpose
- Provide deterministic digests of canonical JSON payloads and text.
- Derive stable short identifiers and unit-interval samples from seeds.

Functional requirements
- Canonical JSON uses sorted keys and compact separators so equal payloads hash equally.
- Short digests are lowercase hex prefixes of fixed length.

Non-functional requirements
- Standard library only; behavior is cross-platform deterministic.
"""

from __future__ import annotations

import hashlib
import json
from typing import Final

_SHORT_DIGEST_LENGTH: Final[int] = 12
_UNIT_SAMPLE_BYTES: Final[int] = 6
_UNIT_SAMPLE_MAX: Final[int] = (1 << (8 * _UNIT_SAMPLE_BYTES)) - 1

__all__ = [
    "canonical_json",
    "sha1_short",
    "unit_interval",
]


def canonical_json(payload: object) -> str:
    """Return deterministic compact JSON for ``payload``.

    Values that are not JSON-native are rendered with ``str`` so opaque event
    payloads still hash reproducibly.
    """

    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def sha1_short(payload: object, *, length: int = _SHORT_DIGEST_LENGTH) -> str:
    """Return the first ``length`` hex chars of SHA-1 over ``payload``.

    Strings are hashed as-is; anything else is hashed through ``canonical_json``.
    """

    if length <= 0:
        raise ValueError("length must be > 0")
    text = payload if isinstance(payload, str) else canonical_json(payload)
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:length]


def unit_interval(seed: str) -> float:
    """Map ``seed`` to a deterministic float in ``[0, 1]`` via SHA-256."""

    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    sample = int.from_bytes(digest[:_UNIT_SAMPLE_BYTES], "big")
    return sample / _UNIT_SAMPLE_MAX
