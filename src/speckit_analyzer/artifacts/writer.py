"""
speckit-analyzer — run artifact writer

File: src/speckit_analyzer/artifacts/writer.py

Purpose
- Persist one analysis result as the artifact set under an output directory.

Storage layout
- `<out_dir>/Run.json` (run record with schema version)
- `<out_dir>/requirements.jsonl` (one requirement per line)
- `<out_dir>/memo.json` (memo after reinforcement from history)
- `<out_dir>/memo-history.jsonl` (cross-run ledger)
- `<out_dir>/verification.yaml` (per-requirement checks)
- `<out_dir>/metrics.json` (metrics, labels, hints, sanitizer hits, experiments)
- `<out_dir>/summary.md` (human-readable forensics)

Functional requirements
- Every payload is rendered before the first write, so a failed run leaves no partial set.
- Every file is written atomically; the history ledger is updated before memo.json.
- ``sanitizer_hits`` comes from an existing ``sanitizer-report.json`` in ``out_dir``.

Non-functional requirements
- Deterministic key ordering for every serialized artifact.
"""

from __future__ import annotations

import json
import math
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Final, TypeAlias

import structlog
import yaml

from speckit_analyzer.analysis.metrics import LOWER_IS_BETTER_METRICS, MetricRow, summarize_metrics
from speckit_analyzer.analysis.pipeline import AnalyzerResult
from speckit_analyzer.analysis.requirements import generate_requirement_check
from speckit_analyzer.constants import (
    DEFAULT_MAX_PROMOTED,
    DEFAULT_MEMO_TTL,
    DEFAULT_PROMOTION_MIN_COUNT,
    MEMO_FILE,
    MEMO_HISTORY_FILE,
    METRICS_ARTIFACT_VERSION,
    METRICS_FILE,
    REQUIREMENTS_FILE,
    RUN_FILE,
    SANITIZER_REPORT_FILE,
    SUMMARY_FILE,
    VERIFICATION_FILE,
    VERIFICATION_VERSION,
)
from speckit_analyzer.domain.models import RequirementRecord, RequirementStatus
from speckit_analyzer.domain.timestamps import to_iso8601z, utc_now
from speckit_analyzer.knowledge.history import (
    MemoHistoryUpdate,
    log_memo_history_update,
    plan_memo_history,
    render_memo_history,
)
from speckit_analyzer.knowledge.memo import build_memo
from speckit_analyzer.utils.fs import atomic_write, dump_json, dump_jsonl

logger = structlog.get_logger(__name__)

PathLike: TypeAlias = str | os.PathLike[str]
HitCount: TypeAlias = int | float

_HIT_KEYS: Final[tuple[str, ...]] = (
    "hits",
    "total_hits",
    "totalHits",
    "sanitizer_hits",
    "sanitizerHits",
    "count",
    "value",
)
_ENTRY_HIT_KEYS: Final[tuple[str, ...]] = ("hits", "count", "total", "value")
_NESTED_ENTRY_KEYS: Final[tuple[str, ...]] = ("entries", "reports", "redactions", "records")


@dataclass(frozen=True, slots=True)
class WrittenArtifacts:
    """Paths written for one run plus the history outcome."""

    out_dir: Path
    run_path: Path
    requirements_path: Path
    memo_path: Path
    memo_history_path: Path
    verification_path: Path
    metrics_path: Path
    summary_path: Path
    memo_update: MemoHistoryUpdate
    sanitizer_hits: HitCount | None

    @property
    def paths(self) -> tuple[Path, ...]:
        return (
            self.run_path,
            self.requirements_path,
            self.memo_path,
            self.memo_history_path,
            self.verification_path,
            self.metrics_path,
            self.summary_path,
        )


class ArtifactWriter:
    """Writes the artifact set for analysis results into ``out_dir``."""

    __slots__ = ("_max_promoted", "_memo_ttl", "_out_dir", "_promotion_min_count")

    def __init__(
        self,
        out_dir: PathLike,
        *,
        memo_ttl: timedelta = DEFAULT_MEMO_TTL,
        promotion_min_count: int = DEFAULT_PROMOTION_MIN_COUNT,
        max_promoted: int = DEFAULT_MAX_PROMOTED,
    ) -> None:
        self._out_dir = Path(out_dir).expanduser()
        self._memo_ttl = memo_ttl
        self._promotion_min_count = promotion_min_count
        self._max_promoted = max_promoted

    @property
    def out_dir(self) -> Path:
        return self._out_dir

    def write(
        self,
        result: AnalyzerResult,
        *,
        experiments: Sequence[Mapping[str, object]] = (),
        now: datetime | None = None,
    ) -> WrittenArtifacts:
        """Render every artifact first, then write them; a rendering failure writes nothing."""

        moment = now if now is not None else utc_now()
        generated_at = to_iso8601z(moment)
        out_dir = self._out_dir
        sanitizer_hits = read_sanitizer_hits(out_dir)
        history_path = out_dir / MEMO_HISTORY_FILE

        memo = build_memo(
            result.run.run_id,
            result.run.source_logs,
            result.requirements,
            result.labels,
            experiments=experiments,
            generated_at=moment,
        )
        memo_update = plan_memo_history(
            history_path,
            memo,
            now=moment,
            ttl=self._memo_ttl,
            promotion_min_count=self._promotion_min_count,
            max_promoted=self._max_promoted,
        )
        metrics_document = build_metrics_document(
            result,
            generated_at=generated_at,
            sanitizer_hits=sanitizer_hits,
            experiments=experiments,
        )
        rendered: dict[str, str] = {
            RUN_FILE: dump_json(result.run.to_dict()),
            REQUIREMENTS_FILE: dump_jsonl(record.to_dict() for record in result.requirements),
            MEMO_HISTORY_FILE: render_memo_history(memo_update),
            MEMO_FILE: dump_json(memo_update.memo.to_dict()),
            VERIFICATION_FILE: yaml.safe_dump(
                build_verification(result.requirements, generated_at=generated_at),
                sort_keys=False,
                allow_unicode=True,
            ),
            METRICS_FILE: dump_json(metrics_document),
            SUMMARY_FILE: build_summary(result, sanitizer_hits=sanitizer_hits),
        }

        out_dir.mkdir(parents=True, exist_ok=True)
        for name, text in rendered.items():
            atomic_write(out_dir / name, text)
            if name == MEMO_HISTORY_FILE:
                log_memo_history_update(history_path, memo_update)

        logger.info(
            "artifacts_written",
            out_dir=str(out_dir),
            run_id=result.run.run_id,
            requirements=len(result.requirements),
            sanitizer_hits=sanitizer_hits,
        )
        return WrittenArtifacts(
            out_dir=out_dir,
            run_path=out_dir / RUN_FILE,
            requirements_path=out_dir / REQUIREMENTS_FILE,
            memo_path=out_dir / MEMO_FILE,
            memo_history_path=history_path,
            verification_path=out_dir / VERIFICATION_FILE,
            metrics_path=out_dir / METRICS_FILE,
            summary_path=out_dir / SUMMARY_FILE,
            memo_update=memo_update,
            sanitizer_hits=sanitizer_hits,
        )
        return WrittenArtifacts(
            out_dir=out_dir,
            run_path=run_path,
            requirements_path=requirements_path,
            memo_path=memo_path,
            memo_history_path=history_path,
            verification_path=verification_path,
            metrics_path=metrics_path,
            summary_path=summary_path,
            memo_update=memo_update,
            sanitizer_hits=sanitizer_hits,
        )


def write_artifacts(
    out_dir: PathLike,
    result: AnalyzerResult,
    *,
    experiments: Sequence[Mapping[str, object]] = (),
    now: datetime | None = None,
    memo_ttl: timedelta = DEFAULT_MEMO_TTL,
    promotion_min_count: int = DEFAULT_PROMOTION_MIN_COUNT,
    max_promoted: int = DEFAULT_MAX_PROMOTED,
) -> WrittenArtifacts:
    """Convenience wrapper around ``ArtifactWriter(out_dir).write(result)``."""

    writer = ArtifactWriter(
        out_dir,
        memo_ttl=memo_ttl,
        promotion_min_count=promotion_min_count,
        max_promoted=max_promoted,
    )
    return writer.write(result, experiments=experiments, now=now)


def build_verification(
    requirements: Sequence[RequirementRecord], *, generated_at: str
) -> dict[str, Any]:
    return {
        "version": VERIFICATION_VERSION,
        "generated_at": generated_at,
        "requirements": [
            {
                "id": requirement.id,
                "description": requirement.text,
                "status": str(requirement.status),
                "evidence": list(requirement.evidence),
                "check": generate_requirement_check(requirement),
            }
            for requirement in requirements
        ],
    }


def build_metrics_document(
    result: AnalyzerResult,
    *,
    generated_at: str,
    sanitizer_hits: HitCount | None,
    experiments: Sequence[Mapping[str, object]] = (),
) -> dict[str, Any]:
    document: dict[str, Any] = {
        "version": METRICS_ARTIFACT_VERSION,
        "run_id": result.run.run_id,
        "generated_at": generated_at,
        **result.metrics.to_dict(),
        "labels": list(result.labels),
        "hints": list(result.hints),
        "sanitizer_hits": sanitizer_hits,
    }
    if experiments:
        document["experiments"] = [dict(entry) for entry in experiments]
    statuses = [requirement.status for requirement in result.requirements]
    document["requirements"] = {
        "total": len(statuses),
        "satisfied": statuses.count(RequirementStatus.SATISFIED),
        "violated": statuses.count(RequirementStatus.VIOLATED),
    }
    return document


def build_summary(result: AnalyzerResult, *, sanitizer_hits: HitCount | None = None) -> str:
    """Render ``summary.md``."""

    run = result.run
    lines = [
        "# SpecKit Run Forensics",
        "",
        f"- Run ID: {run.run_id}",
        f"- Source logs: {', '.join(run.source_logs) if run.source_logs else 'None'}",
        f"- Events analyzed: {len(run.events)}",
        "",
        "## Metrics",
        "",
        "| Metric | Value | Target | Status |",
        "| --- | ---: | ---: | --- |",
    ]
    hits = None if sanitizer_hits is None else int(sanitizer_hits)
    for row in summarize_metrics(result.metrics, sanitizer_hits=hits):
        lines.append(
            f"| {row.label} | {row.value} | {_format_target(row)} | {_format_status(row)} |"
        )

    lines.extend(["", "## Labels", ""])
    if result.labels:
        lines.extend(f"- {label}" for label in result.labels)
    else:
        lines.append("- None")

    if result.hints:
        lines.extend(["", "## Hints", ""])
        lines.extend(f"- {hint}" for hint in result.hints)

    lines.extend(["", "## Requirements", ""])
    for requirement in result.requirements:
        lines.append(f"- {requirement.id} ({requirement.status}): {requirement.text}")
    return "\n".join(lines) + "\n"


def read_sanitizer_hits(out_dir: PathLike) -> HitCount | None:
    """Read hit totals from ``sanitizer-report.json``; absent or unreadable yields ``None``."""

    report_path = Path(out_dir) / SANITIZER_REPORT_FILE
    try:
        raw = report_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("sanitizer_report_unreadable", path=str(report_path), reason=str(exc))
        return None
    try:
        report = json.loads(raw)
    except ValueError as exc:
        logger.warning("sanitizer_report_unreadable", path=str(report_path), reason=str(exc))
        return None
    return extract_sanitizer_hits(report)


def extract_sanitizer_hits(report: object) -> HitCount | None:
    """Interpret the loose sanitizer report shapes seen in the wild.

    Accepts a bare number, a numeric string, a list of entries, or an object
    with a hit-count key or a nested list of entries.
    """

    if report is None:
        return None
    direct = _coerce_hit_count(report)
    if direct is not None:
        return direct
    if isinstance(report, list):
        return _sum_hit_counts(report)
    if isinstance(report, Mapping):
        for key in _HIT_KEYS:
            candidate = _coerce_hit_count(report.get(key))
            if candidate is not None:
                return candidate
        for key in _NESTED_ENTRY_KEYS:
            candidate = _sum_hit_counts(report.get(key))
            if candidate is not None:
                return candidate
    return None


def _coerce_hit_count(value: object) -> HitCount | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return _normalize_number(value)
    if isinstance(value, str) and value.strip():
        try:
            return _normalize_number(float(value))
        except ValueError:
            return None
    return None


def _normalize_number(value: float) -> HitCount | None:
    if not math.isfinite(value):
        return None
    return int(value) if value.is_integer() else value


def _sum_hit_counts(entries: object) -> HitCount | None:
    if not isinstance(entries, list):
        return None
    total: HitCount = 0
    found = False
    for entry in entries:
        candidate: HitCount | None = None
        if isinstance(entry, Mapping):
            for key in _ENTRY_HIT_KEYS:
                candidate = _coerce_hit_count(entry.get(key))
                if candidate is not None:
                    break
        else:
            candidate = _coerce_hit_count(entry)
        if candidate is not None:
            found = True
            total += candidate
    return total if found else None


def _format_target(row: MetricRow) -> str:
    if row.target is None:
        return "—"
    lower_is_better = row.key in LOWER_IS_BETTER_METRICS or row.key == "SanitizerHits"
    comparator = "≤" if lower_is_better else "≥"
    return f"{comparator} {row.target:g}"


def _format_status(row: MetricRow) -> str:
    if row.met is None:
        return "—"
    return "met" if row.met else "missed"


__all__ = [
    "ArtifactWriter",
    "WrittenArtifacts",
    "build_metrics_document",
    "build_summary",
    "build_verification",
    "extract_sanitizer_hits",
    "read_sanitizer_hits",
    "write_artifacts",
]
