"""
speckit-analyzer — experiment assignments

File: src/speckit_analyzer/config/experiments.py

Purpose
- Read ``speckit.experiments.yaml`` and deterministically assign each enabled
  experiment a variant and bucket for a given seed (normally the run id).

Functional requirements
- Schema: ``{version: 1, experiments: [{key, description?, enabled=true,
  bucket_count=1000, variants: [{key, description?, weight=1, metadata={}}]}]}``.
- Unknown keys, non-positive weights, and empty variant lists are rejected.
- Variant metadata must be JSON data; YAML dates and timestamps are kept as ISO-8601 strings.
- Variant: first whose cumulative normalized weight reaches ``unit("{seed}:{key}")``.
- Bucket: ``floor(unit("{seed}:{key}:bucket") * bucket_count)``, capped at ``bucket_count - 1``.

Non-functional requirements
- A missing file yields no assignments; any other failure raises ``ExperimentConfigError``.
"""

from __future__ import annotations

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Final

import yaml

from speckit_analyzer.constants import EXPERIMENTS_FILE
from speckit_analyzer.utils.hashing import unit_interval

DEFAULT_BUCKET_COUNT: Final[int] = 1_000
MAX_BUCKET_COUNT: Final[int] = 10_000

_FILE_KEYS: Final[frozenset[str]] = frozenset({"version", "experiments"})
_EXPERIMENT_KEYS: Final[frozenset[str]] = frozenset(
    {"key", "description", "enabled", "bucket_count", "variants"}
)
_VARIANT_KEYS: Final[frozenset[str]] = frozenset({"key", "description", "weight", "metadata"})


class ExperimentConfigError(ValueError):
    """Raised when the experiments file exists but cannot be read or validated."""


@dataclass(frozen=True, slots=True)
class ExperimentVariant:
    key: str
    description: str | None = None
    weight: float = 1.0
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ExperimentDefinition:
    key: str
    variants: tuple[ExperimentVariant, ...]
    description: str | None = None
    enabled: bool = True
    bucket_count: int = DEFAULT_BUCKET_COUNT


@dataclass(frozen=True, slots=True)
class ExperimentAssignment:
    key: str
    variant: str
    bucket: int
    weight: float
    description: str | None = None
    variant_description: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Shape embedded in run metadata, memos, and metrics."""

        payload: dict[str, Any] = {"key": self.key}
        if self.description is not None:
            payload["description"] = self.description
        payload["variant"] = self.variant
        if self.variant_description is not None:
            payload["variant_description"] = self.variant_description
        payload["bucket"] = self.bucket
        payload["metadata"] = dict(self.metadata)
        return payload


def load_experiment_definitions(root_dir: str | os.PathLike[str]) -> list[ExperimentDefinition]:
    path = Path(root_dir) / EXPERIMENTS_FILE
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except OSError as exc:
        raise ExperimentConfigError(f"Failed to read {EXPERIMENTS_FILE}: {exc}") from exc
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ExperimentConfigError(f"Failed to read {EXPERIMENTS_FILE}: {exc}") from exc
    return _parse_document(document)


def load_experiment_assignments(
    root_dir: str | os.PathLike[str], seed: str
) -> list[ExperimentAssignment]:
    """Assign every enabled experiment under ``root_dir`` for ``seed``."""

    return [
        assign_experiment(experiment, seed)
        for experiment in load_experiment_definitions(root_dir)
        if experiment.enabled
    ]


def assign_experiment(experiment: ExperimentDefinition, seed: str) -> ExperimentAssignment:
    variant = _pick_variant(experiment, seed)
    sample = unit_interval(f"{seed}:{experiment.key}:bucket")
    bucket = min(experiment.bucket_count - 1, math.floor(sample * experiment.bucket_count))
    return ExperimentAssignment(
        key=experiment.key,
        variant=variant.key,
        bucket=bucket,
        weight=variant.weight,
        description=experiment.description,
        variant_description=variant.description,
        metadata=dict(variant.metadata),
    )


def _pick_variant(experiment: ExperimentDefinition, seed: str) -> ExperimentVariant:
    variants = experiment.variants
    total = sum(variant.weight for variant in variants)
    sample = unit_interval(f"{seed}:{experiment.key}")
    cumulative = 0.0
    for variant in variants:
        cumulative += variant.weight / total
        if sample <= cumulative:
            return variant
    # Float drift can leave the final cumulative just below 1.0.
    return variants[-1]


def _parse_document(document: object) -> list[ExperimentDefinition]:
    if document is None:
        return []
    mapping = _expect_mapping(document, "$", _FILE_KEYS)
    version = mapping.get("version", 1)
    if version != 1:
        raise ExperimentConfigError(f"$.version: expected 1, got {version!r}")
    raw_experiments = mapping.get("experiments", [])
    if not isinstance(raw_experiments, list):
        raise ExperimentConfigError("$.experiments: expected list")
    return [
        _parse_experiment(entry, f"$.experiments[{index}]")
        for index, entry in enumerate(raw_experiments)
    ]


def _parse_experiment(entry: object, path: str) -> ExperimentDefinition:
    mapping = _expect_mapping(entry, path, _EXPERIMENT_KEYS)
    enabled = mapping.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ExperimentConfigError(f"{path}.enabled: expected boolean")
    bucket_count = mapping.get("bucket_count", DEFAULT_BUCKET_COUNT)
    if (
        isinstance(bucket_count, bool)
        or not isinstance(bucket_count, int)
        or not 1 <= bucket_count <= MAX_BUCKET_COUNT
    ):
        raise ExperimentConfigError(
            f"{path}.bucket_count: expected integer in [1, {MAX_BUCKET_COUNT}]"
        )
    raw_variants = mapping.get("variants")
    if not isinstance(raw_variants, list) or not raw_variants:
        raise ExperimentConfigError(f"{path}.variants: expected non-empty list")
    return ExperimentDefinition(
        key=_required_str(mapping, "key", path),
        description=_optional_str(mapping, "description", path),
        enabled=enabled,
        bucket_count=bucket_count,
        variants=tuple(
            _parse_variant(variant, f"{path}.variants[{index}]")
            for index, variant in enumerate(raw_variants)
        ),
    )


def _parse_variant(entry: object, path: str) -> ExperimentVariant:
    mapping = _expect_mapping(entry, path, _VARIANT_KEYS)
    weight = mapping.get("weight", 1)
    if isinstance(weight, bool) or not isinstance(weight, (int, float)) or not weight > 0:
        raise ExperimentConfigError(f"{path}.weight: expected positive number")
    metadata = mapping.get("metadata", {})
    if not isinstance(metadata, Mapping):
        raise ExperimentConfigError(f"{path}.metadata: expected mapping")
    return ExperimentVariant(
        key=_required_str(mapping, "key", path),
        description=_optional_str(mapping, "description", path),
        weight=float(weight),
        metadata=_json_value(metadata, f"{path}.metadata"),
    )


def _json_value(value: object, path: str) -> Any:
    """Return ``value`` as JSON-ready data; YAML dates become ISO-8601 strings."""

    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        converted: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ExperimentConfigError(f"{path}: expected string keys, got {key!r}")
            converted[key] = _json_value(item, f"{path}.{key}")
        return converted
    if isinstance(value, list):
        return [_json_value(item, f"{path}[{index}]") for index, item in enumerate(value)]
    raise ExperimentConfigError(f"{path}: unsupported value of type {type(value).__name__}")


def _expect_mapping(value: object, path: str, allowed: frozenset[str]) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ExperimentConfigError(f"{path}: expected mapping, got {type(value).__name__}")
    unknown = sorted(str(key) for key in value if key not in allowed)
    if unknown:
        raise ExperimentConfigError(f"{path}: unknown keys {', '.join(unknown)}")
    return value


def _required_str(mapping: Mapping[str, Any], key: str, path: str) -> str:
    value = mapping.get(key)
    if not isinstance(value, str):
        raise ExperimentConfigError(f"{path}.{key}: expected string")
    return value


def _optional_str(mapping: Mapping[str, Any], key: str, path: str) -> str | None:
    value = mapping.get(key)
    if value is not None and not isinstance(value, str):
        raise ExperimentConfigError(f"{path}.{key}: expected string")
    return value


__all__ = [
    "DEFAULT_BUCKET_COUNT",
    "ExperimentAssignment",
    "ExperimentConfigError",
    "ExperimentDefinition",
    "ExperimentVariant",
    "assign_experiment",
    "load_experiment_assignments",
    "load_experiment_definitions",
]
