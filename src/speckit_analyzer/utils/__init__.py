"""Utility exports for filesystem and hashing helpers."""

from speckit_analyzer.utils.fs import atomic_write, dump_json, dump_jsonl
from speckit_analyzer.utils.hashing import (
    canonical_json,
    sha1_short,
    unit_interval,
)

__all__ = [
    "atomic_write",
    "canonical_json",
    "dump_json",
    "dump_jsonl",
    "sha1_short",
    "unit_interval",
]
