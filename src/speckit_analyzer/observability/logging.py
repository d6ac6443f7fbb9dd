"""Structured logging setup built on structlog processors with run correlation."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO, Final

import structlog

_DEFAULT_LEVEL: Final[str] = "INFO"
VALID_LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_CORRELATION_KEYS: Final[tuple[str, ...]] = (
    "run_id",
    "source_id",
    "stage",
)

__all__ = [
    "VALID_LOG_LEVELS",
    "configure_logging",
    "get_logger",
    "parse_log_level",
    "run_log_scope",
]


def configure_logging(
    level: int | str = _DEFAULT_LEVEL,
    *,
    json_output: bool = False,
    stream: IO[str] | None = None,
) -> None:
    """Configure structlog for the current process.

    Parameters
    ----------
    level:
        Minimum level name or number; records below it are dropped.
    json_output:
        Render one JSON object per line instead of the console format.
    stream:
        Output sink. Defaults to ``sys.stderr`` so stdout stays free for reports.
    """

    numeric_level = parse_log_level(level)
    renderer: structlog.typing.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(
            file=stream if stream is not None else sys.stderr
        ),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Return a structlog logger bound to ``name``."""

    return structlog.get_logger(name)


@contextmanager
def run_log_scope(run_id: str, **fields: str | None) -> Iterator[None]:
    """Temporarily bind ``run_id`` and extra correlation fields to every log call."""

    bound: dict[str, str] = {"run_id": _validate_correlation_value("run_id", run_id)}
    for key, value in fields.items():
        if value is None:
            continue
        bound[_validate_correlation_key(key)] = _validate_correlation_value(key, value)
    tokens = structlog.contextvars.bind_contextvars(**bound)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


def parse_log_level(value: int | str) -> int:
    """Resolve a level name (case-insensitive) or number to a ``logging`` level."""

    if isinstance(value, bool):
        raise ValueError("level must be int or str, got bool")
    if isinstance(value, int):
        return value

    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")

    normalized = value.strip().upper()
    parsed = logging.getLevelName(normalized)
    if isinstance(parsed, int):
        return parsed

    raise ValueError(f"unsupported logging level {value!r}")


def _validate_correlation_key(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError("correlation key must not be empty")
    if normalized not in _CORRELATION_KEYS and not normalized.isidentifier():
        raise ValueError(f"correlation key {value!r} is not a valid identifier")
    return normalized


def _validate_correlation_value(key: str, value: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{key} must not be empty")
    return normalized
