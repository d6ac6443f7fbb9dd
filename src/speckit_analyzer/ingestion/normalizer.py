"""
speckit-analyzer — log normalizer

File: src/speckit_analyzer/ingestion/normalizer.py

Purpose
- Parse one raw log source (JSON, NDJSON, or plain text) into a canonical ``NormalizedLog``.

Functional requirements
- ANSI escape sequences are stripped before any parsing.
- ``auto`` tries JSON, then NDJSON, then plain text; text parsing always succeeds.
- NDJSON is all-or-nothing: one unparseable line rejects the whole interpretation.
- Records without a usable id get ``<prefix>-<scope>-<hash12>`` derived from content and source.
- Missing or unparseable timestamps become ``fallback_start + position`` seconds.

Non-functional requirements
- Deterministic: identical content and source always produce identical event ids.
- Format fall-through is never surfaced to callers; it is logged at debug level.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from enum import StrEnum
from typing import Final

import structlog

from speckit_analyzer.domain.models import EventKind, NormalizedLog, RunEvent, parse_event_kind
from speckit_analyzer.domain.timestamps import coerce_timestamp, utc_now
from speckit_analyzer.utils.hashing import sha1_short

logger = structlog.get_logger(__name__)


class LogFormat(StrEnum):
    AUTO = "auto"
    JSON = "json"
    NDJSON = "ndjson"
    TEXT = "text"


_HASH_KIND_PREFIX: Final[dict[str, str]] = {
    EventKind.PLAN: "plan",
    EventKind.SEARCH: "srch",
    EventKind.EDIT: "edit",
    EventKind.RUN: "run",
    EventKind.EVAL: "eval",
    EventKind.REFLECT: "refl",
    EventKind.TOOL: "tool",
    EventKind.LOG: "log",
    EventKind.SUMMARY: "sum",
    EventKind.ERROR: "err",
}
_DEFAULT_HASH_PREFIX: Final[str] = "evt"
_DEFAULT_HASH_SCOPE: Final[str] = "run"

# Matches CSI/OSC escape sequences, same coverage as the ``ansi-regex`` family.
_ANSI_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"[\u001B\u009B][\[\]()#;?]*"
    r"(?:(?:(?:(?:;[-a-zA-Z\d/#&.:=?%@~_]+)*|[a-zA-Z\d]+(?:;[-a-zA-Z\d/#&.:=?%@~_]*)*)?\u0007)"
    r"|(?:(?:\d{1,4}(?:;\d{0,4})*)?[\dA-PR-TZcf-nq-uy=><~]))"
)
_LINE_SPLIT: Final[re.Pattern[str]] = re.compile(r"\r?\n")
_TEXT_TIMESTAMP: Final[re.Pattern[str]] = re.compile(
    r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z?)"
)
_TEXT_KIND: Final[re.Pattern[str]] = re.compile(
    r"^(PLAN|SEARCH|EDIT|RUN|EVAL|REFLECT|TOOL|LOG|SUMMARY|ERROR)[:|-]",
    re.IGNORECASE,
)
_TEXT_TOOL_KINDS: Final[frozenset[str]] = frozenset({"tool", "run", "action"})
_PROMPT_OPEN: Final[re.Pattern[str]] = re.compile(r"prompt start|system prompt", re.IGNORECASE)
_PROMPT_CLOSE: Final[re.Pattern[str]] = re.compile(r"prompt end", re.IGNORECASE)
_PROMPT_QUOTE: Final[re.Pattern[str]] = re.compile(r"^\s*>\s?")

_KIND_KEYS: Final[tuple[str, ...]] = ("kind", "phase", "step")
_INPUT_KEYS: Final[tuple[str, ...]] = ("input", "prompt", "message")
_OUTPUT_KEYS: Final[tuple[str, ...]] = ("output", "result", "text", "message")
_ERROR_KEYS: Final[tuple[str, ...]] = ("error", "err")


def strip_ansi(content: str) -> str:
    """Remove terminal escape sequences from ``content``."""

    return _ANSI_PATTERN.sub("", content)


def normalize_log_content(
    content: str | None,
    *,
    source: str | None = None,
    fallback_start: datetime | None = None,
    log_format: LogFormat | str = LogFormat.AUTO,
) -> NormalizedLog:
    """Normalize ``content`` into events, prompt candidates, and plain text."""

    resolved_format = LogFormat(log_format)
    sanitized = strip_ansi(content or "")
    fallback = fallback_start if fallback_start is not None else utc_now()

    if resolved_format in (LogFormat.JSON, LogFormat.AUTO):
        parsed = _parse_json_payload(sanitized, fallback, source)
        if parsed is not None:
            return parsed
    if resolved_format in (LogFormat.NDJSON, LogFormat.AUTO):
        parsed = _parse_ndjson(sanitized, fallback, source)
        if parsed is not None:
            return parsed
    return _parse_text_log(sanitized, fallback, source)


def normalized_from_events(
    events: Iterable[RunEvent | Mapping[str, object]],
    prompt_candidates: Sequence[str] = (),
    plain_text: str | None = None,
    *,
    now: datetime | None = None,
) -> NormalizedLog:
    """Build a ``NormalizedLog`` from already-structured events.

    Events missing a non-empty id receive ``evt-<index>``; timestamps are coerced
    against ``now`` with the event index as the offset.
    """

    fallback = now if now is not None else utc_now()
    materialized = list(events)
    normalized: list[RunEvent] = []
    for index, event in enumerate(materialized):
        payload = event.to_dict() if isinstance(event, RunEvent) else dict(event)
        raw_id = payload.get("id")
        files_raw = payload.get("files_changed")
        meta_raw = payload.get("meta")
        normalized.append(
            RunEvent(
                id=raw_id if _is_non_empty_str(raw_id) else f"evt-{index}",
                timestamp=coerce_timestamp(payload.get("timestamp"), fallback, index),
                kind=parse_event_kind(payload.get("kind") or EventKind.LOG),
                subtype=_optional_str(payload.get("subtype")),
                role=_optional_str(payload.get("role")),
                input=payload.get("input"),
                output=payload.get("output"),
                error=payload.get("error"),
                files_changed=tuple(files_raw) if isinstance(files_raw, (list, tuple)) else None,
                meta=dict(meta_raw) if isinstance(meta_raw, Mapping) else None,
            )
        )

    if plain_text is None:
        plain_text = "\n".join(
            json.dumps(
                event.to_dict() if isinstance(event, RunEvent) else dict(event),
                ensure_ascii=False,
                default=str,
            )
            for event in materialized
        )
    return NormalizedLog(
        events=tuple(normalized),
        prompt_candidates=tuple(prompt_candidates),
        plain_text=plain_text,
    )


def hash_event_id(payload: Mapping[str, object], kind: str, source: str | None) -> str:
    """Return ``<prefix>-<scope>-<hash12>`` for a normalized event payload."""

    prefix = _HASH_KIND_PREFIX.get(kind, _DEFAULT_HASH_PREFIX)
    scope = _basename(source) if source else _DEFAULT_HASH_SCOPE
    return f"{prefix}-{scope}-{sha1_short(dict(payload))}"


def _normalize_event(
    raw: object,
    fallback_start: datetime,
    index: int,
    source: str | None,
    *,
    explicit_kind: str | None = None,
) -> RunEvent:
    record: Mapping[str, object] = raw if isinstance(raw, Mapping) else {"output": raw}

    kind = explicit_kind if explicit_kind is not None else _first_string(record, _KIND_KEYS)
    if kind is None:
        kind = EventKind.LOG.value

    files_raw = record.get("files_changed")
    files_changed = (
        tuple(item for item in files_raw if isinstance(item, str))
        if isinstance(files_raw, list)
        else None
    )
    meta_raw = record.get("meta")
    meta = dict(meta_raw) if isinstance(meta_raw, Mapping) else None

    subtype = _optional_str(record.get("subtype"))
    role = _optional_str(record.get("role"))
    content: dict[str, object] = {
        "kind": kind,
        "subtype": subtype,
        "role": role,
        "input": _first_present(record, _INPUT_KEYS),
        "output": _first_present(record, _OUTPUT_KEYS),
        "error": _first_present(record, _ERROR_KEYS),
        "files_changed": list(files_changed) if files_changed is not None else None,
        "meta": meta,
    }

    raw_id = record.get("id")
    if _is_non_empty_str(raw_id):
        event_id = raw_id
    else:
        # Synthesized fallback timestamps stay out of the hash; real ones are content.
        hashed = {key: value for key, value in content.items() if value is not None}
        hashed["source"] = source
        hashed["position"] = index
        raw_timestamp = record.get("timestamp")
        if raw_timestamp is not None:
            hashed["timestamp"] = raw_timestamp
        event_id = hash_event_id(hashed, kind, source)

    return RunEvent(
        id=event_id,
        timestamp=coerce_timestamp(record.get("timestamp"), fallback_start, index),
        kind=parse_event_kind(kind),
        subtype=subtype,
        role=role,
        input=content["input"],
        output=content["output"],
        error=content["error"],
        files_changed=files_changed,
        meta=meta,
    )


def _parse_json_payload(
    content: str,
    fallback_start: datetime,
    source: str | None,
) -> NormalizedLog | None:
    try:
        parsed = json.loads(content)
    except ValueError as exc:
        logger.debug("normalize_json_rejected", source=source or "payload", reason=str(exc))
        return None

    if isinstance(parsed, list):
        events = tuple(
            _normalize_event(item, fallback_start, index, source)
            for index, item in enumerate(parsed)
        )
        prompts = tuple(
            item["prompt"]
            for item in parsed
            if isinstance(item, Mapping) and isinstance(item.get("prompt"), str)
        )
        return NormalizedLog(events=events, prompt_candidates=prompts, plain_text=content)

    if isinstance(parsed, Mapping) and isinstance(parsed.get("events"), list):
        events = tuple(
            _normalize_event(item, fallback_start, index, source)
            for index, item in enumerate(parsed["events"])
        )
        prompt = parsed.get("prompt")
        prompts = (prompt,) if isinstance(prompt, str) else ()
        return NormalizedLog(events=events, prompt_candidates=prompts, plain_text=content)

    logger.debug(
        "normalize_json_rejected",
        source=source or "payload",
        reason=f"unsupported top-level {type(parsed).__name__}",
    )
    return None


def _parse_ndjson(
    content: str,
    fallback_start: datetime,
    source: str | None,
) -> NormalizedLog | None:
    lines = [line for line in _LINE_SPLIT.split(content) if line.strip()]
    events: list[RunEvent] = []
    prompts: list[str] = []
    for line_number, line in enumerate(lines, start=1):
        try:
            parsed = json.loads(line)
        except ValueError as exc:
            logger.debug(
                "normalize_ndjson_rejected",
                source=source or "payload",
                line=line_number,
                reason=str(exc),
            )
            return None
        events.append(_normalize_event(parsed, fallback_start, len(events), source))
        if isinstance(parsed, Mapping) and isinstance(parsed.get("prompt"), str):
            prompts.append(parsed["prompt"])
    return NormalizedLog(
        events=tuple(events),
        prompt_candidates=tuple(prompts),
        plain_text=content,
    )


def _parse_text_log(content: str, fallback_start: datetime, source: str | None) -> NormalizedLog:
    events: list[RunEvent] = []
    prompts: list[str] = []
    capturing = False
    buffer: list[str] = []

    for line_number, line in enumerate(_LINE_SPLIT.split(content), start=1):
        trimmed = line.strip()
        timestamp_match = _TEXT_TIMESTAMP.search(line)
        kind = _text_line_kind(trimmed)
        events.append(
            _normalize_event(
                {
                    "id": f"{source or 'text'}-line-{line_number}",
                    "timestamp": timestamp_match.group(1) if timestamp_match else None,
                    "output": trimmed,
                    "error": trimmed if kind == EventKind.ERROR else None,
                },
                fallback_start,
                len(events),
                source,
                explicit_kind=kind,
            )
        )

        if _PROMPT_OPEN.search(trimmed):
            capturing = True
            buffer = []
            continue
        if capturing:
            if not trimmed or _PROMPT_CLOSE.search(trimmed):
                if buffer:
                    prompts.append("\n".join(buffer))
                capturing = False
                buffer = []
                continue
            buffer.append(_PROMPT_QUOTE.sub("", line, count=1).rstrip())

    if capturing and buffer:
        prompts.append("\n".join(buffer))

    return NormalizedLog(
        events=tuple(events),
        prompt_candidates=tuple(prompts),
        plain_text=content,
    )


def _text_line_kind(trimmed: str) -> str:
    match = _TEXT_KIND.match(trimmed)
    if match is None:
        return EventKind.LOG.value
    raw_kind = match.group(1).lower()
    if raw_kind in _TEXT_TOOL_KINDS:
        return EventKind.TOOL.value
    return raw_kind


def _basename(path: str) -> str:
    segments = [segment for segment in path.replace("\\", "/").split("/") if segment]
    return segments[-1] if segments else path


def _first_string(record: Mapping[str, object], keys: Sequence[str]) -> str | None:
    for key in keys:
        value = record.get(key)
        if isinstance(value, str):
            return value
    return None


def _first_present(record: Mapping[str, object], keys: Sequence[str]) -> object:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) else None


def _is_non_empty_str(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


__all__ = [
    "LogFormat",
    "hash_event_id",
    "normalize_log_content",
    "normalized_from_events",
    "strip_ansi",
]
