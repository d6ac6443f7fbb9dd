"""Label trend analytics over the memo-history ledger."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Final

from speckit_analyzer.domain.models import MemoArtifact
from speckit_analyzer.domain.timestamps import parse_timestamp, to_iso8601z, utc_now

SPARKLINE_BLOCKS: Final[str] = "▁▂▃▄▅▆▇█"
EMPTY_SPARKLINE: Final[str] = "—"
DEFAULT_TREND_WINDOW: Final[int] = 7
DEFAULT_TREND_LIMIT: Final[int] = 10
DEFAULT_SPARKLINE_LENGTH: Final[int] = 14


@dataclass(frozen=True, slots=True)
class LabelDailyRecord:
    """Label occurrence counts for one calendar day (``YYYY-MM-DD``)."""

    date: str
    labels: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class LabelTrendPoint:
    date: str
    value: float


@dataclass(frozen=True, slots=True)
class LabelTrendRow:
    label: str
    total: int
    latest_average: float
    sparkline: str


def build_label_trend_series(
    records: Sequence[LabelDailyRecord],
) -> dict[str, list[LabelTrendPoint]]:
    """Gap-filled daily series per label, spanning the first to the last record date.

    Labels keep first-seen order across date-sorted records; days without a
    record (or without the label) contribute ``0``.
    """

    if not records:
        return {}
    ordered = sorted(records, key=lambda record: record.date)
    by_date = {record.date: record for record in ordered}
    labels: dict[str, None] = {}
    for record in ordered:
        labels.update(dict.fromkeys(record.labels))
    days = _enumerate_days(_parse_day(ordered[0].date), _parse_day(ordered[-1].date))
    return {
        label: [
            LabelTrendPoint(
                date=day,
                value=by_date[day].labels.get(label, 0) if day in by_date else 0,
            )
            for day in days
        ]
        for label in labels
    }


def rolling_average_series(
    points: Sequence[LabelTrendPoint], window: int
) -> list[LabelTrendPoint]:
    """Trailing mean over at most ``window`` points, rounded to 3 decimals."""

    if window <= 0:
        raise ValueError(f"window must be positive, received {window}")
    averaged: list[LabelTrendPoint] = []
    total = 0.0
    for index, point in enumerate(points):
        total += point.value
        if index >= window:
            total -= points[index - window].value
        divisor = min(window, index + 1)
        averaged.append(LabelTrendPoint(date=point.date, value=round(total / divisor, 3)))
    return averaged


def sparkline(values: Sequence[float], *, length: int | None = None) -> str:
    if not values:
        return EMPTY_SPARKLINE
    subset = list(values[-length:]) if length and len(values) > length else list(values)
    low, high = min(subset), max(subset)
    top = len(SPARKLINE_BLOCKS) - 1
    if high == low:
        block = SPARKLINE_BLOCKS[0] if high == 0 else SPARKLINE_BLOCKS[top]
        return block * len(subset)
    span = high - low
    glyphs = []
    for value in subset:
        # Half-up rounding keeps midpoints on the higher block.
        index = math.floor((value - low) / span * top + 0.5)
        glyphs.append(SPARKLINE_BLOCKS[min(top, max(0, index))])
    return "".join(glyphs)


def label_records_from_history(entries: Iterable[MemoArtifact]) -> list[LabelDailyRecord]:
    """Count label occurrences per UTC day of each memo's ``generated_at``."""

    daily: dict[str, dict[str, int]] = {}
    for entry in entries:
        generated = parse_timestamp(entry.generated_at)
        if generated is None or not entry.labels:
            continue
        counts = daily.setdefault(generated.date().isoformat(), {})
        for label in entry.labels:
            counts[label] = counts.get(label, 0) + 1
    return [LabelDailyRecord(date=day, labels=daily[day]) for day in sorted(daily)]


def summarize_label_trends(
    records: Sequence[LabelDailyRecord],
    *,
    window: int = DEFAULT_TREND_WINDOW,
    limit: int = DEFAULT_TREND_LIMIT,
    length: int = DEFAULT_SPARKLINE_LENGTH,
) -> list[LabelTrendRow]:
    rows: list[LabelTrendRow] = []
    for label, points in build_label_trend_series(records).items():
        total = int(sum(point.value for point in points))
        if total <= 0:
            continue
        averaged = rolling_average_series(points, window)
        rows.append(
            LabelTrendRow(
                label=label,
                total=total,
                latest_average=averaged[-1].value if averaged else 0.0,
                sparkline=sparkline([point.value for point in averaged], length=length),
            )
        )
    rows.sort(key=lambda row: row.total, reverse=True)
    return rows[:limit]


def render_trend_report(
    records: Sequence[LabelDailyRecord],
    *,
    window: int = DEFAULT_TREND_WINDOW,
    limit: int = DEFAULT_TREND_LIMIT,
    length: int = DEFAULT_SPARKLINE_LENGTH,
    generated_at: datetime | None = None,
) -> str:
    """Render the Markdown label trend report."""

    stamp = to_iso8601z(generated_at if generated_at is not None else utc_now())
    lines = ["# Agent Label Trends", "", f"Generated on {stamp}.", ""]
    if not records:
        lines.append(
            "No historical label data was found in the memo history. "
            "Run the analyzer to begin tracking trends."
        )
        return "\n".join(lines) + "\n"

    ordered = sorted(records, key=lambda record: record.date)
    lines.extend([f"Data range: **{ordered[0].date} → {ordered[-1].date}**.", ""])

    rows = summarize_label_trends(ordered, window=window, limit=limit, length=length)
    if not rows:
        lines.append("No labels have been recorded yet.")
        return "\n".join(lines) + "\n"

    lines.append(f"| Label | Total Count | {window}-day Avg | Sparkline |")
    lines.append("| --- | ---: | ---: | --- |")
    for row in rows:
        lines.append(
            f"| `{row.label}` | {row.total:,} | {row.latest_average:.2f} | {row.sparkline} |"
        )
    return "\n".join(lines) + "\n"


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value}") from exc


def _enumerate_days(start: date, end: date) -> list[str]:
    days: list[str] = []
    current = start
    while current <= end:
        days.append(current.isoformat())
        current += timedelta(days=1)
    return days


__all__ = [
    "DEFAULT_SPARKLINE_LENGTH",
    "DEFAULT_TREND_LIMIT",
    "DEFAULT_TREND_WINDOW",
    "EMPTY_SPARKLINE",
    "LabelDailyRecord",
    "LabelTrendPoint",
    "LabelTrendRow",
    "SPARKLINE_BLOCKS",
    "build_label_trend_series",
    "label_records_from_history",
    "render_trend_report",
    "rolling_average_series",
    "sparkline",
    "summarize_label_trends",
]
