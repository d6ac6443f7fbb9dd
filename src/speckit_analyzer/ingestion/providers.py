"""
speckit-analyzer — provider log adapters

File: src/speckit_analyzer/ingestion/providers.py

Purpose
- Convert provider-native transcripts (OpenAI, Anthropic, Vercel AI SDK, LangChain, MCP)
  into ``RunEvent`` timelines the analyzer can consume directly.

Functional requirements
- Accept a single record or a list of records; mappings and SDK objects are both readable.
- Numeric timestamps below 1e12 are epoch seconds, larger values are epoch milliseconds.
- Message content is flattened to text (``text``, ``content[]``, ``value``, else JSON).
- Events without a provider id receive ``<id_prefix>-<n>`` (``provider-<n>`` by default).

Non-functional requirements
- Pure functions; no network or SDK imports.
"""

from __future__ import annotations

import json
import math
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import Final, cast

from speckit_analyzer.domain.models import EventKind, RunEvent
from speckit_analyzer.domain.timestamps import parse_timestamp, to_iso8601z, utc_now

ProviderAdapter = Callable[..., list[RunEvent]]

DEFAULT_ID_PREFIX: Final[str] = "provider"
_EPOCH_MILLIS_THRESHOLD: Final[float] = 1_000_000_000_000


def openai_chat_completions_to_events(
    log: object,
    *,
    now: datetime | None = None,
    id_prefix: str = DEFAULT_ID_PREFIX,
) -> list[RunEvent]:
    """Map request messages to ``log`` events and response choices to ``run`` events."""

    events: list[RunEvent] = []
    for record in _ensure_sequence(log):
        base_meta: dict[str, object] = {"provider": "openai"}
        model = _read_str(record, "model")
        if model is not None:
            base_meta["model"] = model
        created = _read_value(record, "created")

        request = _read_value(record, "request")
        messages = _read_sequence(request, "messages") or _read_sequence(record, "messages")
        for message in messages:
            role = _read_str(message, "role")
            content = coerce_text(_read_value(message, "content"))
            message_created = _read_value(message, "created_at")
            events.append(
                _create_event(
                    len(events),
                    now=now,
                    id_prefix=id_prefix,
                    id=f"openai-msg-{message_created}" if message_created else None,
                    timestamp=_to_timestamp(message_created or created, now),
                    kind=EventKind.LOG,
                    subtype=role or "message",
                    role=role,
                    input=content if role == "user" else None,
                    output=content if role == "assistant" else None,
                    meta=base_meta,
                )
            )

        response = _read_value(record, "response")
        for choice in _read_sequence(response, "choices"):
            message = _read_value(choice, "message")
            events.append(
                _create_event(
                    len(events),
                    now=now,
                    id_prefix=id_prefix,
                    timestamp=_to_timestamp(created, now),
                    kind=EventKind.RUN,
                    subtype="assistant",
                    role=_read_str(message, "role") or "assistant",
                    output=coerce_text(_read_value(message, "content")),
                    meta={**base_meta, "finish_reason": _read_str(choice, "finish_reason")},
                )
            )
    return events


def anthropic_messages_to_events(
    log: object,
    *,
    now: datetime | None = None,
    id_prefix: str = DEFAULT_ID_PREFIX,
) -> list[RunEvent]:
    """User turns become ``plan`` events; every other role becomes ``run``."""

    events: list[RunEvent] = []
    for index, message in enumerate(_ensure_sequence(log)):
        role = _read_str(message, "role")
        content = coerce_text(_read_value(message, "content"))
        is_user = role == "user"
        events.append(
            _create_event(
                index,
                now=now,
                id_prefix=id_prefix,
                id=_read_str(message, "id"),
                timestamp=_to_timestamp(_read_value(message, "created_at"), now),
                kind=EventKind.PLAN if is_user else EventKind.RUN,
                subtype=role,
                role=role,
                input=content if is_user else None,
                output=None if is_user else content,
                meta={
                    "provider": "anthropic",
                    "model": _read_str(message, "model"),
                    "usage": _read_value(message, "usage"),
                    "metadata": _read_value(message, "metadata"),
                },
            )
        )
    return events


def vercel_ai_messages_to_events(
    log: object,
    *,
    now: datetime | None = None,
    id_prefix: str = DEFAULT_ID_PREFIX,
) -> list[RunEvent]:
    events: list[RunEvent] = []
    for index, entry in enumerate(_ensure_sequence(log)):
        entry_type = _read_str(entry, "type")
        data = _read_value(entry, "data")
        content = _read_value(entry, "content")
        if content is None:
            content = _read_value(data, "content")
        events.append(
            _create_event(
                index,
                now=now,
                id_prefix=id_prefix,
                timestamp=_to_timestamp(_read_value(entry, "timestamp"), now),
                kind=EventKind.TOOL if entry_type == "tool" else EventKind.LOG,
                subtype=entry_type,
                role=_read_str(entry, "role"),
                output=coerce_text(content),
                meta={"provider": "vercel-ai", "data": data},
            )
        )
    return events


def langchain_runs_to_events(
    log: object,
    *,
    now: datetime | None = None,
    id_prefix: str = DEFAULT_ID_PREFIX,
) -> list[RunEvent]:
    """Tool runs map to ``tool``, chains to ``run``, anything else to ``log``."""

    events: list[RunEvent] = []
    for index, run in enumerate(_ensure_sequence(log)):
        run_type = _read_str(run, "type")
        if run_type == "tool":
            kind = EventKind.TOOL
        elif run_type == "chain":
            kind = EventKind.RUN
        else:
            kind = EventKind.LOG
        started = _read_value(run, "start_time")
        events.append(
            _create_event(
                index,
                now=now,
                id_prefix=id_prefix,
                id=_read_str(run, "id"),
                timestamp=_to_timestamp(
                    started if started is not None else _read_value(run, "end_time"), now
                ),
                kind=kind,
                subtype=_read_str(run, "name") or run_type,
                input=_read_value(run, "inputs"),
                output=_read_value(run, "outputs"),
                meta={"provider": "langchain", "tags": _read_value(run, "tags")},
            )
        )
    return events


def mcp_events_to_run_events(
    log: object,
    *,
    now: datetime | None = None,
    id_prefix: str = DEFAULT_ID_PREFIX,
) -> list[RunEvent]:
    events: list[RunEvent] = []
    for index, record in enumerate(_ensure_sequence(log)):
        record_type = _read_str(record, "type")
        if record_type == "tool":
            kind = EventKind.TOOL
        elif record_type == "error":
            kind = EventKind.ERROR
        else:
            kind = EventKind.LOG
        message = _read_value(record, "message")
        nested = _read_value(message, "content") if not isinstance(message, str) else None
        output = coerce_text(nested if nested is not None else message)
        error: object = None
        if kind is EventKind.ERROR:
            raw_error = _read_value(record, "error")
            error = raw_error if raw_error is not None else output
        events.append(
            _create_event(
                index,
                now=now,
                id_prefix=id_prefix,
                timestamp=_to_timestamp(_read_value(record, "created_at"), now),
                kind=kind,
                output=output,
                error=error,
                meta={"provider": "mcp", "metadata": _read_value(record, "metadata")},
            )
        )
    return events


PROVIDER_ADAPTERS: Final[Mapping[str, ProviderAdapter]] = {
    "openai": openai_chat_completions_to_events,
    "anthropic": anthropic_messages_to_events,
    "vercel-ai": vercel_ai_messages_to_events,
    "langchain": langchain_runs_to_events,
    "mcp": mcp_events_to_run_events,
}


def provider_events(
    provider: str,
    log: object,
    *,
    now: datetime | None = None,
    id_prefix: str = DEFAULT_ID_PREFIX,
) -> list[RunEvent]:
    """Dispatch ``log`` to the adapter registered under ``provider``.

    ``id_prefix`` scopes synthesized ids so several transcripts can share one run.
    """

    adapter = PROVIDER_ADAPTERS.get(provider.strip().lower())
    if adapter is None:
        known = ", ".join(sorted(PROVIDER_ADAPTERS))
        raise ValueError(f"unknown provider {provider!r}; expected one of: {known}")
    return adapter(log, now=now, id_prefix=id_prefix)


def coerce_text(value: object) -> str:
    """Flatten provider message content into plain text."""

    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return "\n".join(text for text in (coerce_text(item) for item in value) if text)
    if isinstance(value, Mapping):
        text = value.get("text")
        if isinstance(text, str):
            return text
        content = value.get("content")
        if isinstance(content, Sequence) and not isinstance(content, (str, bytes, bytearray)):
            return "\n".join(item for item in (coerce_text(part) for part in content) if item)
        nested_value = value.get("value")
        if isinstance(nested_value, str):
            return nested_value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def _create_event(
    index: int,
    *,
    now: datetime | None,
    id_prefix: str,
    id: str | None = None,
    timestamp: str | None = None,
    kind: EventKind | str = EventKind.LOG,
    subtype: str | None = None,
    role: str | None = None,
    input: object = None,
    output: object = None,
    error: object = None,
    meta: Mapping[str, object] | None = None,
) -> RunEvent:
    cleaned_meta = (
        {key: value for key, value in meta.items() if value is not None} if meta else None
    )
    return RunEvent(
        id=id or f"{id_prefix}-{index + 1}",
        timestamp=timestamp or to_iso8601z(now if now is not None else utc_now()),
        kind=kind,
        subtype=subtype,
        role=role,
        input=input,
        output=output,
        error=error,
        meta=cleaned_meta,
    )


def _to_timestamp(value: object, now: datetime | None) -> str:
    numeric: float | None = None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError:
            numeric = None
    if numeric is not None and math.isfinite(numeric):
        millis = numeric * 1000 if numeric < _EPOCH_MILLIS_THRESHOLD else numeric
        parsed = parse_timestamp(millis)
        if parsed is not None:
            return to_iso8601z(parsed)
    if isinstance(value, str):
        parsed = parse_timestamp(value)
        if parsed is not None:
            return to_iso8601z(parsed)
    return to_iso8601z(now if now is not None else utc_now())


def _ensure_sequence(value: object) -> tuple[object, ...]:
    if value is None:
        return ()
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return tuple(value)
    return (value,)


def _read_value(value: object, key: str, *, default: object | None = None) -> object | None:
    if value is None:
        return default
    if isinstance(value, Mapping):
        return cast("object | None", value.get(key, default))
    return cast("object | None", getattr(value, key, default))


def _read_sequence(value: object, key: str) -> tuple[object, ...]:
    candidate = _read_value(value, key)
    if isinstance(candidate, Sequence) and not isinstance(candidate, (str, bytes, bytearray)):
        return tuple(candidate)
    return ()


def _read_str(value: object, key: str) -> str | None:
    candidate = _read_value(value, key)
    if isinstance(candidate, str) and candidate.strip():
        return candidate
    return None


__all__ = [
    "DEFAULT_ID_PREFIX",
    "PROVIDER_ADAPTERS",
    "ProviderAdapter",
    "anthropic_messages_to_events",
    "coerce_text",
    "langchain_runs_to_events",
    "mcp_events_to_run_events",
    "openai_chat_completions_to_events",
    "provider_events",
    "vercel_ai_messages_to_events",
]
