"""
speckit-analyzer — unit tests for observability logging

File: tests/unit/observability/test_logging.py

Purpose
- Validate structlog configuration, level filtering, and run correlation scopes.

What this test file should cover
- JSON output emits one parseable object per line with level and timestamp.
- Records below the configured level are dropped.
- ``run_log_scope`` binds and then removes correlation fields.
- Level parsing accepts names and numbers and rejects junk.

Functional requirements
- Offline operation.

Non-functional requirements
- Deterministic and non-flaky.
"""

from __future__ import annotations

import io
import json
import logging

import pytest
import structlog

from speckit_analyzer.observability.logging import (
    configure_logging,
    get_logger,
    parse_log_level,
    run_log_scope,
)


def _json_lines(stream: io.StringIO) -> list[dict[str, object]]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


def test_json_output_is_one_object_per_line() -> None:
    stream = io.StringIO()
    configure_logging("DEBUG", json_output=True, stream=stream)

    get_logger("speckit_analyzer.tests").info("artifacts_written", files=7)

    [record] = _json_lines(stream)
    assert record["event"] == "artifacts_written"
    assert record["files"] == 7
    assert record["level"] == "info"
    assert str(record["timestamp"]).endswith("Z")


def test_records_below_level_are_dropped() -> None:
    stream = io.StringIO()
    configure_logging("warning", json_output=True, stream=stream)
    logger = get_logger("speckit_analyzer.tests")

    logger.info("quiet")
    logger.warning("loud")

    assert [record["event"] for record in _json_lines(stream)] == ["loud"]


def test_console_output_renders_event_name() -> None:
    stream = io.StringIO()
    configure_logging("INFO", stream=stream)

    get_logger("speckit_analyzer.tests").info("memo_history_updated", entries=3)

    output = stream.getvalue()
    assert "memo_history_updated" in output
    assert "entries=3" in output


def test_run_log_scope_binds_and_resets_correlation_fields() -> None:
    stream = io.StringIO()
    configure_logging("INFO", json_output=True, stream=stream)
    logger = get_logger("speckit_analyzer.tests")

    with run_log_scope("run-42", source_id="agent.log", stage=None):
        logger.info("inside")
        assert structlog.contextvars.get_contextvars() == {
            "run_id": "run-42",
            "source_id": "agent.log",
        }
    logger.info("outside")

    inside, outside = _json_lines(stream)
    assert inside["run_id"] == "run-42"
    assert inside["source_id"] == "agent.log"
    assert "stage" not in inside
    assert "run_id" not in outside


@pytest.mark.parametrize("run_id", ["", "   "])
def test_run_log_scope_rejects_blank_run_id(run_id: str) -> None:
    with pytest.raises(ValueError, match="run_id must not be empty"):
        with run_log_scope(run_id):
            pass


@pytest.mark.parametrize(
    ("value", "expected"),
    [("debug", logging.DEBUG), (" Warning ", logging.WARNING), (logging.ERROR, logging.ERROR)],
)
def test_parse_log_level_accepts_names_and_numbers(value: int | str, expected: int) -> None:
    assert parse_log_level(value) == expected


@pytest.mark.parametrize("value", ["chatty", True])
def test_parse_log_level_rejects_unknown_values(value: object) -> None:
    with pytest.raises(ValueError):
        parse_log_level(value)  # type: ignore[arg-type]
