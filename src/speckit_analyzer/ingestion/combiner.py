"""Merge per-source normalized logs and build the durable run artifact."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Final

from speckit_analyzer.domain.models import NormalizedLog, RunArtifact, RunEvent
from speckit_analyzer.domain.timestamps import parse_timestamp, utc_now

_SOURCE_HEADER: Final[str] = "# Source: "
_UNPARSEABLE_SORT_KEY: Final[datetime] = datetime.max.replace(tzinfo=UTC)


@dataclass(frozen=True, slots=True)
class SourcePart:
    """One normalized source together with its (optional) source id."""

    id: str | None
    log: NormalizedLog


def merge_normalized(base: NormalizedLog, incoming: NormalizedLog) -> NormalizedLog:
    """Return ``base`` extended by ``incoming``; the first event seen for an id wins."""

    seen = {event.id for event in base.events}
    merged = list(base.events)
    for event in incoming.events:
        if event.id in seen:
            continue
        merged.append(event)
        seen.add(event.id)
    return NormalizedLog(
        events=tuple(merged),
        prompt_candidates=base.prompt_candidates + incoming.prompt_candidates,
        plain_text=f"{base.plain_text}\n{incoming.plain_text}".strip(),
    )


def combine_normalized(parts: Sequence[SourcePart]) -> NormalizedLog:
    """Fold ``parts`` in order and annotate the plain text with per-source headers."""

    if not parts:
        return NormalizedLog()

    aggregate = parts[0].log
    for part in parts[1:]:
        aggregate = merge_normalized(aggregate, part.log)

    chunks: list[str] = []
    for part in parts:
        header = f"{_SOURCE_HEADER}{part.id}\n" if part.id else ""
        chunk = f"{header}{part.log.plain_text}".strip()
        if chunk:
            chunks.append(chunk)
    annotated = "\n\n".join(chunks)

    return NormalizedLog(
        events=aggregate.events,
        prompt_candidates=aggregate.prompt_candidates,
        plain_text=annotated or aggregate.plain_text,
    )


def sort_events(events: Iterable[RunEvent]) -> tuple[RunEvent, ...]:
    """Stable ascending sort by parsed timestamp; unparseable timestamps sort last."""

    def _key(event: RunEvent) -> datetime:
        parsed = parse_timestamp(event.timestamp)
        return parsed if parsed is not None else _UNPARSEABLE_SORT_KEY

    return tuple(sorted(events, key=_key))


def default_run_id(now: datetime | None = None) -> str:
    moment = now if now is not None else utc_now()
    return f"run-{int(moment.timestamp() * 1000)}"


def build_run_artifact(
    source_logs: Sequence[str],
    normalized: NormalizedLog,
    run_id: str | None = None,
    metadata: Mapping[str, object] | None = None,
    *,
    now: datetime | None = None,
) -> RunArtifact:
    """Sort events by time and derive the run window (``None`` bounds when empty)."""

    ordered = sort_events(normalized.events)
    return RunArtifact(
        run_id=run_id or default_run_id(now),
        source_logs=tuple(source_logs),
        started_at=ordered[0].timestamp if ordered else None,
        finished_at=ordered[-1].timestamp if ordered else None,
        events=ordered,
        metadata=dict(metadata) if metadata is not None else None,
    )


__all__ = [
    "SourcePart",
    "build_run_artifact",
    "combine_normalized",
    "default_run_id",
    "merge_normalized",
    "sort_events",
]
