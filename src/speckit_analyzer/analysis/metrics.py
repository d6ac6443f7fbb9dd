"""Run-quality metrics computed from requirements and the event timeline."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Final

from speckit_analyzer.domain.models import (
    EventKind,
    Metrics,
    RequirementRecord,
    RequirementStatus,
    RunEvent,
    text_of,
)
from speckit_analyzer.domain.timestamps import parse_timestamp
from speckit_analyzer.ingestion.combiner import sort_events

_COVERED_STATUSES: Final[frozenset[RequirementStatus]] = frozenset(
    {RequirementStatus.SATISFIED, RequirementStatus.IN_PROGRESS}
)
_TOOL_KINDS: Final[frozenset[str]] = frozenset({EventKind.TOOL, "action", EventKind.RUN})
_REASONING_KINDS: Final[frozenset[str]] = frozenset(
    {EventKind.LOG, EventKind.PLAN, EventKind.SUMMARY, EventKind.REFLECT}
)
_REFLECTION_LEXICON: Final[re.Pattern[str]] = re.compile(
    r"reflect|lesson|next run|improve", re.IGNORECASE
)

METRIC_LABELS: Final[Mapping[str, str]] = {
    "ReqCoverage": "Requirement Coverage",
    "BacktrackRatio": "Backtrack Ratio",
    "ToolPrecisionAt1": "Tool Precision @1",
    "EditLocality": "Edit Locality",
    "ReflectionDensity": "Reflection Density",
    "TTFPSeconds": "Time to First Patch (s)",
}
DEFAULT_METRIC_TARGETS: Final[Mapping[str, float]] = {
    "ReqCoverage": 1.0,
    "ToolPrecisionAt1": 0.7,
    "BacktrackRatio": 0.2,
    "EditLocality": 0.75,
    "ReflectionDensity": 0.25,
}
LOWER_IS_BETTER_METRICS: Final[frozenset[str]] = frozenset(
    {"BacktrackRatio", "ReflectionDensity", "TTFPSeconds"}
)
_MISSING_VALUE: Final[str] = "—"


@dataclass(frozen=True, slots=True)
class MetricRow:
    """One labelled metric line for reports and the CLI."""

    key: str
    label: str
    value: str
    raw: float | None
    target: float | None = None
    met: bool | None = None


def compute_metrics(
    requirements: Sequence[RequirementRecord],
    events: Sequence[RunEvent],
) -> Metrics:
    """Compute the six metrics; a pure function of ``requirements`` and ``events``."""

    covered = sum(1 for requirement in requirements if requirement.status in _COVERED_STATUSES)
    req_coverage = covered / len(requirements) if requirements else 0.0

    tool_events = [event for event in events if event.kind in _TOOL_KINDS]
    tool_errors = sum(1 for event in tool_events if _is_tool_error(event))
    total_tools = len(tool_events)
    backtrack_ratio = tool_errors / total_tools if total_tools else 0.0
    tool_precision = (total_tools - tool_errors) / total_tools if total_tools else 1.0

    return Metrics(
        req_coverage=req_coverage,
        backtrack_ratio=round(backtrack_ratio, 3),
        tool_precision_at_1=round(tool_precision, 3),
        edit_locality=round(_edit_locality(events), 3),
        reflection_density=round(_reflection_density(events), 3),
        ttfp_seconds=_time_to_first_patch(events),
    )


def summarize_metrics(
    metrics: Metrics,
    *,
    targets: Mapping[str, float] | None = None,
    decimals: int = 2,
    sanitizer_hits: int | None = None,
) -> list[MetricRow]:
    """Return labelled rows with targets and a ``met`` flag per metric."""

    merged_targets = {**DEFAULT_METRIC_TARGETS, **(targets or {})}
    values = metrics.to_dict()
    rows: list[MetricRow] = []
    for key, label in METRIC_LABELS.items():
        value = values[key]
        target = merged_targets.get(key)
        rows.append(
            MetricRow(
                key=key,
                label=label,
                value=_format_value(value, 1 if key == "TTFPSeconds" else decimals),
                raw=value,
                target=target,
                met=_evaluate(key, value, target),
            )
        )
    if sanitizer_hits is not None:
        rows.append(
            MetricRow(
                key="SanitizerHits",
                label="Sanitizer Hits",
                value=str(sanitizer_hits),
                raw=float(sanitizer_hits),
                target=0.0,
                met=sanitizer_hits == 0,
            )
        )
    return rows


def _is_tool_error(event: RunEvent) -> bool:
    error = event.error
    if error is None or error is False:
        return False
    if isinstance(error, str) and not error.strip():
        return False
    # Any non-blank error value counts, regardless of what the output says.
    return True


def _edit_locality(events: Sequence[RunEvent]) -> float:
    changed: set[str] = set()
    touches = 0
    for event in events:
        if event.files_changed is None:
            continue
        changed.update(event.files_changed)
        touches += len(event.files_changed)
    if touches == 0:
        return 1.0
    return max(0.0, 1 - (len(changed) - 1) / max(len(changed), touches))


def _reflection_density(events: Sequence[RunEvent]) -> float:
    reasoning = [event for event in events if event.kind in _REASONING_KINDS]
    if not reasoning:
        return 0.0
    reflective = 0
    for event in reasoning:
        fields = (text_of(event.output), text_of(event.input))
        if any(field is not None and _REFLECTION_LEXICON.search(field) for field in fields):
            reflective += 1
    return reflective / len(reasoning)


def _time_to_first_patch(events: Sequence[RunEvent]) -> float | None:
    ordered = sort_events(events)
    if not ordered:
        return None
    start = parse_timestamp(ordered[0].timestamp)
    if start is None:
        return None
    for event in ordered:
        if event.files_changed or event.kind == EventKind.EDIT:
            moment = parse_timestamp(event.timestamp)
            if moment is None:
                return None
            return round((moment - start).total_seconds(), 2)
    return None


def _format_value(value: float | None, decimals: int) -> str:
    if value is None:
        return _MISSING_VALUE
    if not math.isfinite(value):
        return str(value)
    return f"{value:.{decimals}f}"


def _evaluate(key: str, value: float | None, target: float | None) -> bool | None:
    if value is None or target is None:
        return None
    if not math.isfinite(value) or not math.isfinite(target):
        return None
    if key in LOWER_IS_BETTER_METRICS:
        return value <= target
    return value >= target


__all__ = [
    "DEFAULT_METRIC_TARGETS",
    "LOWER_IS_BETTER_METRICS",
    "METRIC_LABELS",
    "MetricRow",
    "compute_metrics",
    "summarize_metrics",
]
