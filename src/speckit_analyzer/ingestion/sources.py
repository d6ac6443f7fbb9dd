"""Log source shapes accepted by the analyzer and their normalization."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TypeAlias

from speckit_analyzer.domain.models import NormalizedLog, RunEvent
from speckit_analyzer.ingestion.combiner import SourcePart
from speckit_analyzer.ingestion.normalizer import (
    LogFormat,
    normalize_log_content,
    normalized_from_events,
)


class AnalyzerError(RuntimeError):
    """Base class for fatal analysis failures."""


class UnsupportedLogSourceError(AnalyzerError):
    """Raised when a source matches none of the known shapes."""

    def __init__(self, detail: str | None = None) -> None:
        message = "Unsupported log source provided to analyzer"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class RawLogSource:
    """Undecoded log text plus an optional format hint."""

    content: str
    id: str | None = None
    format: LogFormat | str | None = None


@dataclass(frozen=True, slots=True)
class NormalizedLogSource:
    log: NormalizedLog
    id: str | None = None


@dataclass(frozen=True, slots=True)
class EventsLogSource:
    """Structured events, e.g. produced by a provider adapter."""

    events: Sequence[RunEvent | Mapping[str, object]]
    id: str | None = None
    prompt_candidates: Sequence[str] = ()
    plain_text: str | None = None


LogSource: TypeAlias = RawLogSource | NormalizedLogSource | EventsLogSource
LogSourceInput: TypeAlias = LogSource | str | Mapping[str, object]


def coerce_log_source(value: object) -> LogSource | str:
    """Resolve a dataclass source, bare string, or equivalent mapping.

    Mappings are checked in the order ``log`` → ``events`` → ``content``.
    """

    if isinstance(value, (str, RawLogSource, NormalizedLogSource, EventsLogSource)):
        return value
    if not isinstance(value, Mapping):
        raise UnsupportedLogSourceError(f"got {type(value).__name__}")

    source_id = value.get("id")
    resolved_id = source_id if isinstance(source_id, str) else None

    log = value.get("log")
    if isinstance(log, NormalizedLog):
        return NormalizedLogSource(log=log, id=resolved_id)
    if isinstance(log, Mapping) and isinstance(log.get("events"), (list, tuple)):
        return NormalizedLogSource(
            log=NormalizedLog(
                events=tuple(_coerce_events(log["events"])),
                prompt_candidates=tuple(_string_items(log.get("prompt_candidates"))),
                plain_text=_optional_str(log.get("plain_text")) or "",
            ),
            id=resolved_id,
        )

    events = value.get("events")
    if isinstance(events, (list, tuple)):
        return EventsLogSource(
            events=tuple(events),
            id=resolved_id,
            prompt_candidates=tuple(_string_items(value.get("prompt_candidates"))),
            plain_text=_optional_str(value.get("plain_text")),
        )

    content = value.get("content")
    if isinstance(content, str):
        raw_format = value.get("format")
        return RawLogSource(
            content=content,
            id=resolved_id,
            format=raw_format if isinstance(raw_format, str) else None,
        )

    raise UnsupportedLogSourceError("mapping has none of 'log', 'events', or 'content'")


def normalize_source(source: object, index: int, fallback_start: datetime) -> SourcePart:
    """Normalize one resolved source; ``index`` is its position in the input sequence.

    Malformed events or an unknown format hint raise ``UnsupportedLogSourceError``.
    """

    resolved = coerce_log_source(source)
    try:
        return _normalize_resolved(resolved, index, fallback_start)
    except ValueError as exc:
        raise UnsupportedLogSourceError(str(exc)) from exc


def _normalize_resolved(
    resolved: LogSource | str, index: int, fallback_start: datetime
) -> SourcePart:
    if isinstance(resolved, str):
        source_id = f"source-{index + 1}"
        return SourcePart(
            id=source_id,
            log=normalize_log_content(resolved, source=source_id, fallback_start=fallback_start),
        )
    if isinstance(resolved, NormalizedLogSource):
        return SourcePart(id=resolved.id, log=resolved.log)
    if isinstance(resolved, EventsLogSource):
        return SourcePart(
            id=resolved.id,
            log=normalized_from_events(
                resolved.events,
                resolved.prompt_candidates,
                resolved.plain_text,
                now=fallback_start,
            ),
        )
    return SourcePart(
        id=resolved.id or f"source-{index + 1}",
        log=normalize_log_content(
            resolved.content,
            source=resolved.id,
            fallback_start=fallback_start,
            log_format=resolved.format or LogFormat.AUTO,
        ),
    )


def create_file_log_source(
    path: str | os.PathLike[str],
    *,
    id: str | None = None,
    encoding: str = "utf-8",
    errors: str = "replace",
    log_format: LogFormat | str | None = None,
) -> RawLogSource:
    """Read ``path`` into a ``RawLogSource`` whose id defaults to the path string.

    Undecodable bytes become U+FFFD by default; pass ``errors="strict"`` to fail instead.
    """

    file_path = Path(path)
    return RawLogSource(
        content=file_path.read_text(encoding=encoding, errors=errors),
        id=id if id is not None else str(path),
        format=log_format,
    )


def load_log_sources_from_files(
    paths: Iterable[str | os.PathLike[str]],
    *,
    encoding: str = "utf-8",
    errors: str = "replace",
    log_format: LogFormat | str | None = None,
) -> list[RawLogSource]:
    return [
        create_file_log_source(path, encoding=encoding, errors=errors, log_format=log_format)
        for path in paths
    ]


def _coerce_events(items: Iterable[object]) -> list[RunEvent]:
    events: list[RunEvent] = []
    for item in items:
        if isinstance(item, RunEvent):
            events.append(item)
        elif isinstance(item, Mapping):
            try:
                events.append(RunEvent.from_dict(item))
            except ValueError as exc:
                raise UnsupportedLogSourceError(f"normalized log event: {exc}") from exc
        else:
            raise UnsupportedLogSourceError(f"normalized log event is {type(item).__name__}")
    return events


def _string_items(value: object) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in value if isinstance(item, str)]


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) else None


__all__ = [
    "AnalyzerError",
    "EventsLogSource",
    "LogSource",
    "LogSourceInput",
    "NormalizedLogSource",
    "RawLogSource",
    "UnsupportedLogSourceError",
    "coerce_log_source",
    "create_file_log_source",
    "load_log_sources_from_files",
    "normalize_source",
]
