"""Stable constants shared across analyzer stages."""

from __future__ import annotations

from datetime import timedelta
from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted artifacts.
RUN_ARTIFACT_SCHEMA_VERSION: Final[int] = 1
MEMO_ARTIFACT_VERSION: Final[int] = 1
METRICS_ARTIFACT_VERSION: Final[int] = 1
VERIFICATION_VERSION: Final[int] = 1

# Default paths (relative to the working directory unless overridden by config).
DEFAULT_OUT_DIR: Final[PurePosixPath] = PurePosixPath(".speckit")
DEFAULT_RULES_FILE: Final[str] = "failure-rules.yaml"
DEFAULT_CONFIG_FILE: Final[str] = "speckit.toml"
EXPERIMENTS_FILE: Final[str] = "speckit.experiments.yaml"
SANITIZER_REPORT_FILE: Final[str] = "sanitizer-report.json"

# Artifact file names, one directory per run.
RUN_FILE: Final[str] = "Run.json"
REQUIREMENTS_FILE: Final[str] = "requirements.jsonl"
MEMO_FILE: Final[str] = "memo.json"
MEMO_HISTORY_FILE: Final[str] = "memo-history.jsonl"
VERIFICATION_FILE: Final[str] = "verification.yaml"
METRICS_FILE: Final[str] = "metrics.json"
SUMMARY_FILE: Final[str] = "summary.md"

# Memo history defaults.
DEFAULT_MEMO_TTL: Final[timedelta] = timedelta(days=30)
DEFAULT_PROMOTION_MIN_COUNT: Final[int] = 2
DEFAULT_MAX_PROMOTED: Final[int] = 10

# Prompt detection.
PROMPT_WINDOW_CHARS: Final[int] = 2_000

__all__ = [
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_MAX_PROMOTED",
    "DEFAULT_MEMO_TTL",
    "DEFAULT_OUT_DIR",
    "DEFAULT_PROMOTION_MIN_COUNT",
    "DEFAULT_RULES_FILE",
    "EXPERIMENTS_FILE",
    "MEMO_ARTIFACT_VERSION",
    "MEMO_FILE",
    "MEMO_HISTORY_FILE",
    "METRICS_ARTIFACT_VERSION",
    "METRICS_FILE",
    "PROMPT_WINDOW_CHARS",
    "REQUIREMENTS_FILE",
    "RUN_ARTIFACT_SCHEMA_VERSION",
    "RUN_FILE",
    "SANITIZER_REPORT_FILE",
    "SUMMARY_FILE",
    "VERIFICATION_FILE",
    "VERIFICATION_VERSION",
]
