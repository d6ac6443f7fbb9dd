"""Unit tests for core domain models."""

from __future__ import annotations

import json

import pytest
from hypothesis import given
from hypothesis import strategies as st

from speckit_analyzer.domain.models import (
    EventKind,
    FailureRule,
    MemoArtifact,
    Metrics,
    RequirementRecord,
    RequirementStatus,
    RunArtifact,
    RunEvent,
    parse_event_kind,
    text_of,
)


def test_event_kind_parsing_keeps_unknown_kinds() -> None:
    assert parse_event_kind("edit") is EventKind.EDIT
    assert parse_event_kind(EventKind.TOOL) is EventKind.TOOL
    assert parse_event_kind("deploy") == "deploy"
    assert not isinstance(parse_event_kind("deploy"), EventKind)


def test_run_event_drops_non_string_files_and_omits_empty_fields() -> None:
    event = RunEvent(
        id="e1",
        timestamp="2025-01-01T00:00:00.000Z",
        kind="edit",
        files_changed=("a.py", 7, "b.py"),  # type: ignore[arg-type]
        output={"diff": 3},
    )

    assert event.kind is EventKind.EDIT
    assert event.files_changed == ("a.py", "b.py")
    assert event.to_dict() == {
        "id": "e1",
        "timestamp": "2025-01-01T00:00:00.000Z",
        "kind": "edit",
        "output": {"diff": 3},
        "files_changed": ["a.py", "b.py"],
    }


def test_run_event_from_dict_round_trips_through_json() -> None:
    event = RunEvent(
        id="e2",
        timestamp="2025-01-01T00:00:01.000Z",
        kind="custom",
        role="assistant",
        input="hi",
        error="boom",
        meta={"provider": "openai"},
    )

    restored = RunEvent.from_dict(json.loads(json.dumps(event.to_dict())))

    assert restored == event


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ([], "RunEvent: expected object, got list"),
        ({"timestamp": "t"}, "RunEvent.id: expected string, got NoneType"),
        ({"id": " ", "timestamp": "t"}, "RunEvent.id: must not be empty"),
        ({1: "x"}, "RunEvent: object keys must be strings"),
    ],
)
def test_run_event_from_dict_rejects_bad_payloads(payload: object, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        RunEvent.from_dict(payload)  # type: ignore[arg-type]


def test_run_artifact_metadata_is_optional() -> None:
    run = RunArtifact(
        run_id="run-1",
        source_logs=("a.log",),
        started_at=None,
        finished_at=None,
        events=(),
    )

    assert run.to_dict() == {
        "schema": 1,
        "run_id": "run-1",
        "source_logs": ["a.log"],
        "started_at": None,
        "finished_at": None,
        "events": [],
    }
    with_metadata = RunArtifact("run-1", (), None, None, (), metadata={"seed": "s"})
    assert with_metadata.to_dict()["metadata"] == {"seed": "s"}


def test_requirement_record_serialization_order_and_sentinel() -> None:
    record = RequirementRecord(
        id="REQ-001",
        text="Ensure tests pass",
        status="satisfied",  # type: ignore[arg-type]
        evidence=["e1"],  # type: ignore[arg-type]
        category="validation",
    )

    assert record.status is RequirementStatus.SATISFIED
    assert list(record.to_dict()) == ["id", "text", "source", "category", "status", "evidence"]
    assert RequirementRecord.from_dict(record.to_dict()) == record
    assert not record.is_sentinel
    assert RequirementRecord(id="REQ-000", text="x").is_sentinel


def test_requirement_record_rejects_unknown_status() -> None:
    with pytest.raises(ValueError, match="unsupported value 'done'"):
        RequirementRecord.from_dict({"id": "REQ-1", "text": "x", "status": "done"})


def test_metrics_use_artifact_key_names() -> None:
    metrics = Metrics(1.0, 0.0, 1.0, 1.0, 0.0, None)

    assert list(metrics.to_dict()) == [
        "ReqCoverage",
        "BacktrackRatio",
        "ToolPrecisionAt1",
        "EditLocality",
        "ReflectionDensity",
        "TTFPSeconds",
    ]


def test_failure_rule_label_defaults_to_id() -> None:
    rule = FailureRule(id="tool.timeout", patterns=["timed out"])  # type: ignore[arg-type]

    assert rule.patterns == ("timed out",)
    assert rule.label == "tool.timeout"
    assert FailureRule(id="x", patterns=(), label="custom").label == "custom"


def test_memo_from_dict_validates_shape() -> None:
    with pytest.raises(ValueError, match="MemoArtifact.generated_from: expected object"):
        MemoArtifact.from_dict({"generated_at": "t", "lessons": []})
    with pytest.raises(ValueError, match=r"MemoArtifact.lessons\[1\]: expected string, got int"):
        MemoArtifact.from_dict(
            {"generated_at": "t", "generated_from": {"run_id": "r"}, "lessons": ["a", 2]}
        )
    with pytest.raises(ValueError, match="MemoArtifact.version: expected integer"):
        MemoArtifact.from_dict(
            {"version": True, "generated_at": "t", "generated_from": {"run_id": "r"}}
        )


_texts = st.lists(st.text(max_size=20), max_size=4).map(tuple)


@given(
    run_id=st.text(min_size=1, max_size=12).filter(str.strip),
    lessons=_texts,
    guardrails=_texts,
    labels=_texts,
)
def test_memo_survives_a_json_round_trip(
    run_id: str,
    lessons: tuple[str, ...],
    guardrails: tuple[str, ...],
    labels: tuple[str, ...],
) -> None:
    memo = MemoArtifact(
        generated_at="2025-01-01T00:00:00.000Z",
        run_id=run_id,
        lessons=lessons,
        guardrails=guardrails,
        labels=labels,
        experiments=({"key": "exp", "variant": "a"},),
    )

    assert MemoArtifact.from_dict(json.loads(json.dumps(memo.to_dict()))) == memo


def test_text_of_only_returns_strings() -> None:
    assert text_of("x") == "x"
    assert text_of({"x": 1}) is None
    assert text_of(None) is None
