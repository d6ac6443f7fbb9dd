"""
speckit-analyzer — configuration schema and validation.

File: src/speckit_analyzer/config/schema.py

Purpose
- Define configuration defaults and strict validation rules for the analyzer.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Materialize validated payloads into a frozen ``AnalyzerSettings``.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta
from pathlib import PurePosixPath
from typing import Any, Final, TypedDict

from speckit_analyzer.constants import (
    DEFAULT_MAX_PROMOTED,
    DEFAULT_MEMO_TTL,
    DEFAULT_OUT_DIR,
    DEFAULT_PROMOTION_MIN_COUNT,
    DEFAULT_RULES_FILE,
)
from speckit_analyzer.observability.logging import VALID_LOG_LEVELS

# Config paths resolved relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("artifacts", "out_dir"),
    ("artifacts", "rules_file"),
)


class ArtifactsConfig(TypedDict):
    out_dir: str
    # None means <out_dir>/failure-rules.yaml.
    rules_file: str | None


class MemoConfig(TypedDict):
    ttl_days: int
    promotion_min_count: int
    max_promoted: int


class ObservabilityConfig(TypedDict):
    log_level: str
    log_json: bool


class AnalyzerConfig(TypedDict):
    artifacts: ArtifactsConfig
    memo: MemoConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[AnalyzerConfig] = {
    "artifacts": {
        "out_dir": DEFAULT_OUT_DIR.as_posix(),
        "rules_file": None,
    },
    "memo": {
        "ttl_days": DEFAULT_MEMO_TTL.days,
        "promotion_min_count": DEFAULT_PROMOTION_MIN_COUNT,
        "max_promoted": DEFAULT_MAX_PROMOTED,
    },
    "observability": {
        "log_level": "INFO",
        "log_json": False,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


@dataclass(frozen=True, slots=True)
class AnalyzerSettings:
    """Effective, validated analyzer settings."""

    out_dir: str
    rules_file: str
    memo_ttl_days: int
    promotion_min_count: int
    max_promoted: int
    log_level: str
    log_json: bool

    @property
    def memo_ttl(self) -> timedelta:
        return timedelta(days=self.memo_ttl_days)

    def to_dict(self) -> dict[str, Any]:
        return {
            "artifacts": {"out_dir": self.out_dir, "rules_file": self.rules_file},
            "memo": {
                "ttl_days": self.memo_ttl_days,
                "promotion_min_count": self.promotion_min_count,
                "max_promoted": self.max_promoted,
            },
            "observability": {"log_level": self.log_level, "log_json": self.log_json},
        }

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> AnalyzerSettings:
        validated = assert_valid_config(config)
        artifacts = validated["artifacts"]
        memo = validated["memo"]
        observability = validated["observability"]
        return cls(
            out_dir=artifacts["out_dir"],
            rules_file=artifacts["rules_file"] or default_rules_file(artifacts["out_dir"]),
            memo_ttl_days=memo["ttl_days"],
            promotion_min_count=memo["promotion_min_count"],
            max_promoted=memo["max_promoted"],
            log_level=observability["log_level"],
            log_json=observability["log_json"],
        )


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> AnalyzerConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def default_rules_file(out_dir: str) -> str:
    """Return the rules path used when none is configured: beside the artifacts."""

    return (PurePosixPath(out_dir) / DEFAULT_RULES_FILE).as_posix()


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> tuple[ConfigValidationIssue, ...]:
    """Return every validation issue in ``config``; an empty tuple means valid."""

    issues = _IssueCollector()
    if not isinstance(config, Mapping):
        issues.add("<root>", f"expected object, got {type(config).__name__}")
        return issues.items()
    _reject_unknown_keys(config, set(DEFAULT_CONFIG), "", issues)

    artifacts = _section(config, "artifacts", issues)
    if artifacts is not None:
        _reject_unknown_keys(artifacts, {"out_dir", "rules_file"}, "artifacts", issues)
        for key in ("out_dir", "rules_file"):
            if key in artifacts and not (key == "rules_file" and artifacts[key] is None):
                _check_path_text(artifacts[key], f"artifacts.{key}", issues)

    memo = _section(config, "memo", issues)
    if memo is not None:
        _reject_unknown_keys(
            memo, {"ttl_days", "promotion_min_count", "max_promoted"}, "memo", issues
        )
        _check_int(memo.get("ttl_days"), "memo.ttl_days", issues, minimum=1)
        _check_int(memo.get("promotion_min_count"), "memo.promotion_min_count", issues, minimum=1)
        _check_int(memo.get("max_promoted"), "memo.max_promoted", issues, minimum=0)

    observability = _section(config, "observability", issues)
    if observability is not None:
        _reject_unknown_keys(observability, {"log_level", "log_json"}, "observability", issues)
        level = observability.get("log_level")
        if not isinstance(level, str) or level.upper() not in VALID_LOG_LEVELS:
            expected = ", ".join(VALID_LOG_LEVELS)
            issues.add(
                "observability.log_level",
                f"invalid value {level!r}; expected one of: {expected}",
            )
        if not isinstance(observability.get("log_json"), bool):
            issues.add(
                "observability.log_json",
                f"expected boolean, got {type(observability.get('log_json')).__name__}",
            )

    return issues.items()


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    issues = validate_config(config)
    if issues:
        raise ConfigValidationError(issues)
    assert isinstance(config, Mapping)
    normalized = merge_config({}, config)
    observability = normalized["observability"]
    observability["log_level"] = observability["log_level"].upper()
    return normalized


def _section(
    payload: Mapping[str, object], key: str, issues: _IssueCollector
) -> Mapping[str, object] | None:
    value = payload.get(key)
    if value is None:
        issues.add(key, "missing required section")
        return None
    if not isinstance(value, Mapping):
        issues.add(key, f"expected object, got {type(value).__name__}")
        return None
    return value


def _check_path_text(value: object, path: str, issues: _IssueCollector) -> None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
    elif not value.strip():
        issues.add(path, "must not be empty")
    elif "\x00" in value:
        issues.add(path, "must not contain NUL bytes")


def _check_int(value: object, path: str, issues: _IssueCollector, *, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
    elif value < minimum:
        issues.add(path, f"must be >= {minimum}")


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(str(item) for item in payload):
        if key not in allowed:
            issues.add(f"{path}.{key}" if path else key, "unknown field")


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            nested = copy.deepcopy(dict(existing)) if isinstance(existing, Mapping) else {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


__all__ = [
    "AnalyzerConfig",
    "AnalyzerSettings",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "assert_valid_config",
    "default_config",
    "default_rules_file",
    "merge_config",
    "validate_config",
]
