"""
speckit-analyzer — unit tests for the memo history ledger

File: tests/unit/knowledge/test_history.py

Purpose
- Validate run-id dedup, TTL pruning, cross-run promotion, and ledger persistence.

What this test file should cover
- Re-analysing the same run replaces its entry instead of appending.
- Expired entries are pruned; recurring strings are promoted into the newest memo.
- Promotion ordering (count desc, then text) and the per-list cap.
- Unreadable ledger lines are skipped with a warning.
- Expired entries never feed promotion; repeating a memo leaves the ledger unchanged.

Functional requirements
- Offline; uses tmp_path only.

Non-functional requirements
- Deterministic: every update passes an explicit ``now``.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from speckit_analyzer.domain.models import MemoArtifact
from speckit_analyzer.knowledge.history import (
    plan_memo_history,
    read_memo_history,
    update_memo_history,
)

_TTL_72H = timedelta(hours=72)


def _memo(
    run_id: str,
    generated_at: str,
    *,
    lessons: tuple[str, ...] = (),
    guardrails: tuple[str, ...] = (),
    sources: tuple[str, ...] = (),
) -> MemoArtifact:
    return MemoArtifact(
        generated_at=generated_at,
        run_id=run_id,
        sources=sources,
        lessons=lessons,
        guardrails=guardrails,
    )


def _at(text: str) -> datetime:
    return datetime.fromisoformat(text.replace("Z", "+00:00")).astimezone(UTC)


def _read_rows(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def test_reprocessing_same_run_replaces_entry(tmp_path: Path) -> None:
    history_path = tmp_path / "memo-history.jsonl"

    update_memo_history(
        history_path,
        _memo(
            "run-1",
            "2025-01-01T00:00:00.000Z",
            lessons=("Initial lesson",),
            guardrails=("Prevent regression on R1",),
            sources=("a.log",),
        ),
        now=_at("2025-01-01T01:00:00Z"),
    )
    update = update_memo_history(
        history_path,
        _memo(
            "run-1",
            "2025-01-02T00:00:00.000Z",
            lessons=("Follow-up lesson",),
            guardrails=("Maintain coverage",),
            sources=("b.log",),
        ),
        now=_at("2025-01-02T01:00:00Z"),
    )

    assert len(update.entries) == 1
    assert update.entries[0].run_id == "run-1"
    assert "Follow-up lesson" in update.entries[0].lessons
    assert "Maintain coverage" in update.entries[0].guardrails
    assert update.promoted_lessons == ()

    rows = _read_rows(history_path)
    assert len(rows) == 1
    assert rows[0]["generated_from"] == {"run_id": "run-1", "sources": ["b.log"]}
    assert "Follow-up lesson" in rows[0]["lessons"]


def test_recurring_strings_are_promoted_and_expired_entries_pruned(tmp_path: Path) -> None:
    history_path = tmp_path / "memo-history.jsonl"

    update_memo_history(
        history_path,
        _memo(
            "run-expired",
            "2025-01-01T00:00:00.000Z",
            lessons=("Expired lesson",),
            guardrails=("Expired guardrail",),
        ),
        now=_at("2025-01-01T12:00:00Z"),
        ttl=_TTL_72H,
    )
    for run_id, day in (("run-a", "2025-01-03"), ("run-b", "2025-01-04")):
        update_memo_history(
            history_path,
            _memo(
                run_id,
                f"{day}T00:00:00.000Z",
                lessons=("Repeat lesson",),
                guardrails=("Repeat guardrail",),
            ),
            now=_at(f"{day}T12:00:00Z"),
            ttl=_TTL_72H,
        )

    latest = update_memo_history(
        history_path,
        _memo(
            "run-c",
            "2025-01-05T00:00:00.000Z",
            lessons=("Fresh lesson",),
            guardrails=("Fresh guardrail",),
        ),
        now=_at("2025-01-05T12:00:00Z"),
        ttl=_TTL_72H,
    )

    assert [entry.run_id for entry in latest.entries] == ["run-a", "run-b", "run-c"]
    assert "Repeat lesson" in latest.promoted_lessons
    assert "Repeat guardrail" in latest.promoted_guardrails
    assert latest.memo.lessons == ("Fresh lesson", "Repeat lesson")
    assert latest.memo.guardrails == ("Fresh guardrail", "Repeat guardrail")

    persisted = read_memo_history(history_path)
    assert [entry.run_id for entry in persisted] == ["run-a", "run-b", "run-c"]
    assert persisted[-1].lessons == ("Fresh lesson", "Repeat lesson")


def test_expired_entries_are_counted_as_pruned(tmp_path: Path) -> None:
    history_path = tmp_path / "memo-history.jsonl"
    update_memo_history(
        history_path,
        _memo("run-old", "2025-01-01T00:00:00.000Z"),
        now=_at("2025-01-01T00:00:00Z"),
    )

    update = update_memo_history(
        history_path,
        _memo("run-new", "2025-03-01T00:00:00.000Z"),
        now=_at("2025-03-01T00:00:00Z"),
    )

    assert update.pruned == 1
    assert [entry.run_id for entry in update.entries] == ["run-new"]


def test_expired_entries_do_not_count_toward_promotion(tmp_path: Path) -> None:
    history_path = tmp_path / "memo-history.jsonl"
    history_path.write_text(
        "".join(
            json.dumps(memo.to_dict()) + "\n"
            for memo in (
                _memo("run-expired", "2025-01-01T00:00:00.000Z", lessons=("Shared lesson",)),
                _memo("run-live", "2025-01-09T00:00:00.000Z", lessons=("Shared lesson",)),
            )
        ),
        encoding="utf-8",
    )

    update = update_memo_history(
        history_path,
        _memo("run-new", "2025-01-10T00:00:00.000Z", lessons=("Other lesson",)),
        now=_at("2025-01-10T00:00:00Z"),
        ttl=_TTL_72H,
    )

    assert update.pruned == 1
    assert update.promoted_lessons == ()
    assert update.memo.lessons == ("Other lesson",)
    assert [entry.run_id for entry in update.entries] == ["run-live", "run-new"]


def test_repeating_the_same_memo_is_idempotent(tmp_path: Path) -> None:
    history_path = tmp_path / "memo-history.jsonl"
    update_memo_history(
        history_path,
        _memo("run-0", "2025-02-01T00:00:00.000Z", lessons=("Earlier lesson",)),
        now=_at("2025-02-01T00:00:00Z"),
    )
    memo = _memo("run-1", "2025-02-02T00:00:00.000Z", lessons=("Current lesson",))

    first = update_memo_history(history_path, memo, now=_at("2025-02-02T00:00:00Z"))
    second = update_memo_history(history_path, memo, now=_at("2025-02-02T00:00:00Z"))

    assert len(second.entries) == len(first.entries) == 2
    assert second.entries[-1] == second.memo
    assert second.entries == first.entries
    assert len(_read_rows(history_path)) == 2


def test_planning_does_not_touch_the_ledger(tmp_path: Path) -> None:
    history_path = tmp_path / "memo-history.jsonl"

    update = plan_memo_history(
        history_path,
        _memo("run-1", "2025-02-01T00:00:00.000Z"),
        now=_at("2025-02-01T00:00:00Z"),
    )

    assert [entry.run_id for entry in update.entries] == ["run-1"]
    assert not history_path.exists()


def test_promotion_orders_by_count_then_text_and_respects_cap(tmp_path: Path) -> None:
    history_path = tmp_path / "memo-history.jsonl"
    prior = [
        ("run-1", ("beta", "gamma", "alpha")),
        ("run-2", ("beta", "alpha")),
        ("run-3", ("beta", "gamma")),
    ]
    for index, (run_id, lessons) in enumerate(prior, start=1):
        update_memo_history(
            history_path,
            _memo(run_id, f"2025-02-0{index}T00:00:00.000Z", lessons=lessons),
            now=_at(f"2025-02-0{index}T00:00:00Z"),
            max_promoted=0,
        )

    update = update_memo_history(
        history_path,
        _memo("run-4", "2025-02-05T00:00:00.000Z", lessons=("new",)),
        now=_at("2025-02-05T00:00:00Z"),
        max_promoted=2,
    )

    # beta: 3 memos, alpha and gamma: 2 each.
    assert update.promoted_lessons == ("beta", "alpha")
    assert update.memo.lessons == ("new", "beta", "alpha")


def test_strings_already_in_new_memo_are_not_promoted(tmp_path: Path) -> None:
    history_path = tmp_path / "memo-history.jsonl"
    update_memo_history(
        history_path,
        _memo("run-1", "2025-02-01T00:00:00.000Z", guardrails=("keep tests green",)),
        now=_at("2025-02-01T00:00:00Z"),
    )

    update = update_memo_history(
        history_path,
        _memo("run-2", "2025-02-02T00:00:00.000Z", guardrails=("keep tests green",)),
        now=_at("2025-02-02T00:00:00Z"),
    )

    assert update.promoted_guardrails == ()
    assert update.memo.guardrails == ("keep tests green",)


def test_duplicate_strings_within_one_memo_count_once(tmp_path: Path) -> None:
    history_path = tmp_path / "memo-history.jsonl"

    update = update_memo_history(
        history_path,
        _memo("run-1", "2025-02-01T00:00:00.000Z", lessons=("same", "same")),
        now=_at("2025-02-01T00:00:00Z"),
    )

    assert update.promoted_lessons == ()


def test_unreadable_lines_are_skipped_with_warning(tmp_path: Path) -> None:
    history_path = tmp_path / "memo-history.jsonl"
    valid = _memo("run-1", "2025-02-01T00:00:00.000Z").to_dict()
    history_path.write_text(
        "\n".join([json.dumps(valid), "{not json", json.dumps({"lessons": []})]) + "\n",
        encoding="utf-8",
    )

    with capture_logs() as captured:
        entries = read_memo_history(history_path)

    assert [entry.run_id for entry in entries] == ["run-1"]
    skipped = [event for event in captured if event["event"] == "memo_history_line_skipped"]
    assert [event["line"] for event in skipped] == [2, 3]
    assert all(event["log_level"] == "warning" for event in skipped)


def test_missing_history_file_reads_as_empty(tmp_path: Path) -> None:
    assert read_memo_history(tmp_path / "absent.jsonl") == []


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"ttl": timedelta(0)}, "ttl must be > 0"),
        ({"promotion_min_count": 0}, "promotion_min_count must be >= 1"),
        ({"max_promoted": -1}, "max_promoted must be >= 0"),
    ],
)
def test_invalid_update_parameters_are_rejected(
    tmp_path: Path, kwargs: dict[str, object], message: str
) -> None:
    with pytest.raises(ValueError, match=message):
        update_memo_history(
            tmp_path / "memo-history.jsonl",
            _memo("run-1", "2025-02-01T00:00:00.000Z"),
            now=_at("2025-02-01T00:00:00Z"),
            **kwargs,  # type: ignore[arg-type]
        )
    assert not (tmp_path / "memo-history.jsonl").exists()
