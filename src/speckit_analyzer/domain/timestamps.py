"""UTC timestamp parsing and canonical ISO-8601 rendering for run events."""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta
from typing import Final

_ZULU_SUFFIX: Final[str] = "Z"
_UTC_OFFSET: Final[str] = "+00:00"

__all__ = [
    "coerce_timestamp",
    "parse_timestamp",
    "to_iso8601z",
    "utc_now",
]


def utc_now() -> datetime:
    """Return the current timezone-aware UTC instant."""

    return datetime.now(UTC)


def to_iso8601z(value: datetime) -> str:
    """Render ``value`` as millisecond-precision ISO-8601 with a ``Z`` suffix."""

    if value.tzinfo is None or value.utcoffset() is None:
        value = value.replace(tzinfo=UTC)
    rendered = value.astimezone(UTC).isoformat(timespec="milliseconds")
    return rendered.replace(_UTC_OFFSET, _ZULU_SUFFIX)


def parse_timestamp(value: object) -> datetime | None:
    """Parse a ``datetime``, ISO string, or epoch-milliseconds number.

    Naive values are interpreted as UTC. Returns ``None`` when ``value`` cannot
    be interpreted as an instant.
    """

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(_ZULU_SUFFIX) or text.endswith("z"):
            text = text[:-1] + _UTC_OFFSET
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            return None
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        return None

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def coerce_timestamp(value: object, fallback: datetime, offset_seconds: int) -> str:
    """Return the canonical timestamp for ``value`` or ``fallback + offset_seconds``."""

    parsed = parse_timestamp(value)
    if parsed is None:
        parsed = fallback + timedelta(seconds=offset_seconds)
    return to_iso8601z(parsed)
