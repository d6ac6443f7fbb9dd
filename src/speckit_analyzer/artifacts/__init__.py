"""Artifact persistence for analysis results."""

from speckit_analyzer.artifacts.writer import (
    ArtifactWriter,
    WrittenArtifacts,
    build_summary,
    build_verification,
    extract_sanitizer_hits,
    read_sanitizer_hits,
    write_artifacts,
)

__all__ = [
    "ArtifactWriter",
    "WrittenArtifacts",
    "build_summary",
    "build_verification",
    "extract_sanitizer_hits",
    "read_sanitizer_hits",
    "write_artifacts",
]
