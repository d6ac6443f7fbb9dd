"""Dataclass domain models for run events, requirements, metrics, rules, and memos."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final, TypeAlias

from speckit_analyzer.constants import (
    MEMO_ARTIFACT_VERSION,
    RUN_ARTIFACT_SCHEMA_VERSION,
)

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

SENTINEL_REQUIREMENT_ID: Final[str] = "REQ-000"


class EventKind(StrEnum):
    """Canonical event kinds. Unknown kinds pass through as plain strings."""

    PLAN = "plan"
    SEARCH = "search"
    EDIT = "edit"
    RUN = "run"
    EVAL = "eval"
    REFLECT = "reflect"
    TOOL = "tool"
    LOG = "log"
    SUMMARY = "summary"
    ERROR = "error"


class RequirementStatus(StrEnum):
    UNKNOWN = "unknown"
    SATISFIED = "satisfied"
    VIOLATED = "violated"
    IN_PROGRESS = "in-progress"


def parse_event_kind(value: object) -> EventKind | str:
    """Return the ``EventKind`` member for ``value`` or the raw string for other kinds."""

    if isinstance(value, EventKind):
        return value
    text = str(value)
    try:
        return EventKind(text)
    except ValueError:
        return text


@dataclass(frozen=True, slots=True)
class RunEvent:
    """One timeline entry. ``input``/``output``/``error`` are opaque payloads."""

    id: str
    timestamp: str
    kind: EventKind | str = EventKind.LOG
    subtype: str | None = None
    role: str | None = None
    input: object = None
    output: object = None
    error: object = None
    files_changed: tuple[str, ...] | None = None
    meta: Mapping[str, object] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", parse_event_kind(self.kind))
        if self.files_changed is not None:
            object.__setattr__(
                self,
                "files_changed",
                tuple(item for item in self.files_changed if isinstance(item, str)),
            )

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "kind": str(self.kind),
        }
        optional: tuple[tuple[str, object], ...] = (
            ("subtype", self.subtype),
            ("role", self.role),
            ("input", self.input),
            ("output", self.output),
            ("error", self.error),
            ("files_changed", list(self.files_changed) if self.files_changed is not None else None),
            ("meta", dict(self.meta) if self.meta is not None else None),
        )
        for key, value in optional:
            if value is not None:
                payload[key] = value
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> RunEvent:
        parsed = _expect_mapping(data, "RunEvent")
        files_raw = parsed.get("files_changed")
        meta_raw = parsed.get("meta")
        return cls(
            id=_as_str(parsed.get("id"), "RunEvent.id"),
            timestamp=_as_str(parsed.get("timestamp"), "RunEvent.timestamp"),
            kind=parse_event_kind(parsed.get("kind", EventKind.LOG)),
            subtype=_as_optional_str(parsed.get("subtype")),
            role=_as_optional_str(parsed.get("role")),
            input=parsed.get("input"),
            output=parsed.get("output"),
            error=parsed.get("error"),
            files_changed=tuple(files_raw) if isinstance(files_raw, list) else None,
            meta=dict(meta_raw) if isinstance(meta_raw, Mapping) else None,
        )


@dataclass(frozen=True, slots=True)
class NormalizedLog:
    """Canonical view of one (or several merged) log sources."""

    events: tuple[RunEvent, ...] = ()
    prompt_candidates: tuple[str, ...] = ()
    plain_text: str = ""


@dataclass(frozen=True, slots=True)
class RunArtifact:
    """Durable run record serialized as ``Run.json``."""

    run_id: str
    source_logs: tuple[str, ...]
    started_at: str | None
    finished_at: str | None
    events: tuple[RunEvent, ...]
    metadata: Mapping[str, object] | None = None
    schema: int = RUN_ARTIFACT_SCHEMA_VERSION

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "schema": self.schema,
            "run_id": self.run_id,
            "source_logs": list(self.source_logs),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "events": [event.to_dict() for event in self.events],
        }
        if self.metadata is not None:
            payload["metadata"] = dict(self.metadata)
        return payload


@dataclass(frozen=True, slots=True)
class RequirementRecord:
    """One requirement mined from the prompt plus its evidence-backed status."""

    id: str
    text: str
    status: RequirementStatus = RequirementStatus.UNKNOWN
    evidence: tuple[str, ...] = ()
    source: str = "prompt"
    category: str | None = None
    constraints: tuple[str, ...] = ()
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", RequirementStatus(self.status))
        object.__setattr__(self, "evidence", tuple(self.evidence))
        object.__setattr__(self, "constraints", tuple(self.constraints))

    @property
    def is_sentinel(self) -> bool:
        return self.id == SENTINEL_REQUIREMENT_ID

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": self.id,
            "text": self.text,
            "source": self.source,
        }
        if self.category is not None:
            payload["category"] = self.category
        if self.constraints:
            payload["constraints"] = list(self.constraints)
        payload["status"] = self.status.value
        payload["evidence"] = list(self.evidence)
        if self.notes is not None:
            payload["notes"] = self.notes
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> RequirementRecord:
        parsed = _expect_mapping(data, "RequirementRecord")
        status_raw = parsed.get("status", RequirementStatus.UNKNOWN.value)
        try:
            status = RequirementStatus(str(status_raw))
        except ValueError as exc:
            allowed = ", ".join(member.value for member in RequirementStatus)
            raise ValueError(
                f"RequirementRecord.status: unsupported value {status_raw!r}; allowed: {allowed}"
            ) from exc
        return cls(
            id=_as_str(parsed.get("id"), "RequirementRecord.id"),
            text=_as_str(parsed.get("text"), "RequirementRecord.text"),
            status=status,
            evidence=_as_str_tuple(parsed.get("evidence", ()), "RequirementRecord.evidence"),
            source=_as_optional_str(parsed.get("source")) or "prompt",
            category=_as_optional_str(parsed.get("category")),
            constraints=_as_str_tuple(
                parsed.get("constraints", ()), "RequirementRecord.constraints"
            ),
            notes=_as_optional_str(parsed.get("notes")),
        )


@dataclass(frozen=True, slots=True)
class Metrics:
    """Six run-quality metrics, recomputed from scratch every analysis."""

    req_coverage: float
    backtrack_ratio: float
    tool_precision_at_1: float
    edit_locality: float
    reflection_density: float
    ttfp_seconds: float | None

    def to_dict(self) -> dict[str, float | None]:
        return {
            "ReqCoverage": self.req_coverage,
            "BacktrackRatio": self.backtrack_ratio,
            "ToolPrecisionAt1": self.tool_precision_at_1,
            "EditLocality": self.edit_locality,
            "ReflectionDensity": self.reflection_density,
            "TTFPSeconds": self.ttfp_seconds,
        }


@dataclass(frozen=True, slots=True)
class FailureRule:
    """Regex-driven failure label rule loaded from YAML configuration."""

    id: str
    patterns: tuple[str, ...]
    label: str | None = None
    description: str | None = None
    remediation: str | None = None
    hint: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "patterns", tuple(self.patterns))
        if self.label is None:
            object.__setattr__(self, "label", self.id)


@dataclass(frozen=True, slots=True)
class MemoArtifact:
    """Per-run digest of lessons, guardrails, and a requirement checklist."""

    generated_at: str
    run_id: str
    sources: tuple[str, ...] = ()
    lessons: tuple[str, ...] = ()
    guardrails: tuple[str, ...] = ()
    checklist: tuple[str, ...] = ()
    labels: tuple[str, ...] = ()
    experiments: tuple[Mapping[str, object], ...] = field(default=())
    version: int = MEMO_ARTIFACT_VERSION

    def to_dict(self) -> dict[str, object]:
        return {
            "version": self.version,
            "generated_at": self.generated_at,
            "generated_from": {
                "run_id": self.run_id,
                "sources": list(self.sources),
            },
            "lessons": list(self.lessons),
            "guardrails": list(self.guardrails),
            "checklist": list(self.checklist),
            "labels": list(self.labels),
            "experiments": [dict(entry) for entry in self.experiments],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> MemoArtifact:
        parsed = _expect_mapping(data, "MemoArtifact")
        origin = _expect_mapping(parsed.get("generated_from"), "MemoArtifact.generated_from")
        experiments_raw = parsed.get("experiments", ())
        if not isinstance(experiments_raw, Sequence) or isinstance(experiments_raw, str):
            raise ValueError("MemoArtifact.experiments: expected list")
        version_raw = parsed.get("version", MEMO_ARTIFACT_VERSION)
        if isinstance(version_raw, bool) or not isinstance(version_raw, int):
            raise ValueError("MemoArtifact.version: expected integer")
        return cls(
            version=version_raw,
            generated_at=_as_str(parsed.get("generated_at"), "MemoArtifact.generated_at"),
            run_id=_as_str(origin.get("run_id"), "MemoArtifact.generated_from.run_id"),
            sources=_as_str_tuple(origin.get("sources", ()), "MemoArtifact.generated_from.sources"),
            lessons=_as_str_tuple(parsed.get("lessons", ()), "MemoArtifact.lessons"),
            guardrails=_as_str_tuple(parsed.get("guardrails", ()), "MemoArtifact.guardrails"),
            checklist=_as_str_tuple(parsed.get("checklist", ()), "MemoArtifact.checklist"),
            labels=_as_str_tuple(parsed.get("labels", ()), "MemoArtifact.labels"),
            experiments=tuple(
                dict(entry) for entry in experiments_raw if isinstance(entry, Mapping)
            ),
        )


def text_of(value: object) -> str | None:
    """Return ``value`` when it is a string; opaque payloads yield ``None``."""

    return value if isinstance(value, str) else None


def _expect_mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{path}: expected object, got {type(value).__name__}")
    for key in value:
        if not isinstance(key, str):
            raise ValueError(f"{path}: object keys must be strings")
    return value


def _as_str(value: object, path: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected string, got {type(value).__name__}")
    if not value.strip():
        raise ValueError(f"{path}: must not be empty")
    return value


def _as_optional_str(value: object) -> str | None:
    return value if isinstance(value, str) else None


def _as_str_tuple(value: object, path: str) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, Sequence):
        raise ValueError(f"{path}: expected list of strings")
    items: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            raise ValueError(f"{path}[{index}]: expected string, got {type(item).__name__}")
        items.append(item)
    return tuple(items)


__all__ = [
    "EventKind",
    "FailureRule",
    "JSONValue",
    "MemoArtifact",
    "Metrics",
    "NormalizedLog",
    "RequirementRecord",
    "RequirementStatus",
    "RunArtifact",
    "RunEvent",
    "SENTINEL_REQUIREMENT_ID",
    "parse_event_kind",
    "text_of",
]
