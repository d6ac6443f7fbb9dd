"""
speckit-analyzer — CLI router unit tests

File: tests/unit/ui/test_cli.py

Purpose
- Exercise ``run_cli`` in-process for every subcommand and its failure paths.

What this test file should cover
- Parser wiring and required arguments.
- ``config`` text and JSON output with CLI overrides.
- ``trends`` argument validation and ``--output`` writes.
- ``run --verbose`` stage narration and ``--provider`` transcripts across files.
- Undecodable log bytes and YAML dates in experiment metadata do not abort a run.
- Config and experiment errors map to exit code 2.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from speckit_analyzer.ui.cli import build_parser, run_cli


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for name in (
        "SPECKIT_ARTIFACTS_OUT_DIR",
        "SPECKIT_ARTIFACTS_RULES_FILE",
        "SPECKIT_MEMO_TTL_DAYS",
        "SPECKIT_OBSERVABILITY_LOG_LEVEL",
        "SPECKIT_OBSERVABILITY_LOG_JSON",
    ):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def _write_log(path: Path, lines: list[str]) -> Path:
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def test_parser_requires_a_subcommand() -> None:
    parser = build_parser()

    with pytest.raises(SystemExit) as excinfo:
        parser.parse_args([])

    assert excinfo.value.code == 2


def test_parser_collects_run_options() -> None:
    namespace = build_parser().parse_args(
        ["run", "a.log", "b.log", "--run-id", "r1", "--format", "text", "--seed", "s", "-v"]
    )

    assert namespace.logs == ["a.log", "b.log"]
    assert namespace.run_id == "r1"
    assert namespace.log_format == "text"
    assert namespace.seed == "s"
    assert namespace.verbose is True
    assert namespace.provider is None


def test_config_json_reflects_cli_overrides(
    _isolated_cwd: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert run_cli(["config", "--json", "--log-level", "debug"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["command"] == "config"
    config = payload["config"]
    assert config["observability"] == {"log_level": "DEBUG", "log_json": False}
    assert config["artifacts"]["out_dir"] == (Path.cwd() / ".speckit").as_posix()
    assert config["memo"] == {"ttl_days": 30, "promotion_min_count": 2, "max_promoted": 10}


def test_config_text_reads_the_local_toml(
    _isolated_cwd: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (_isolated_cwd / "speckit.toml").write_text(
        '[artifacts]\nout_dir = "build/forensics"\n\n[memo]\nttl_days = 7\n', encoding="utf-8"
    )

    assert run_cli(["config", "--log-level", "WARNING"]) == 0

    dumped = json.loads(capsys.readouterr().out)
    assert dumped["artifacts"]["out_dir"] == (Path.cwd() / "build" / "forensics").as_posix()
    assert dumped["memo"]["ttl_days"] == 7


def test_invalid_config_file_is_a_config_error(
    _isolated_cwd: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (_isolated_cwd / "bad.toml").write_text("[memo]\nttl_days = 0\n", encoding="utf-8")

    assert run_cli(["config", "--config", "bad.toml"]) == 2
    assert "memo.ttl_days" in capsys.readouterr().err


@pytest.mark.parametrize(
    ("flags", "message"),
    [
        (["--window", "0"], "--window must be positive"),
        (["--limit", "0"], "--limit and --length must be positive"),
        (["--length", "-1"], "--limit and --length must be positive"),
    ],
)
def test_trends_rejects_non_positive_arguments(
    flags: list[str], message: str, capsys: pytest.CaptureFixture[str]
) -> None:
    assert run_cli(["trends", "--log-level", "WARNING", *flags]) == 2
    assert f"error: {message}" in capsys.readouterr().err


def test_trends_without_history_writes_report_file(
    _isolated_cwd: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    output = _isolated_cwd / "reports" / "trends.md"

    assert run_cli(["trends", "--log-level", "WARNING", "--output", str(output)]) == 0

    assert capsys.readouterr().out == ""
    report = output.read_text(encoding="utf-8")
    assert report.startswith("# Agent Label Trends\n")
    assert "No historical label data was found in the memo history." in report


def test_verbose_run_narrates_each_stage(
    _isolated_cwd: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    log = _write_log(
        _isolated_cwd / "agent.log",
        ["System prompt:", "> Add a changelog entry.", "", "EDIT: Add a changelog entry. done"],
    )

    exit_code = run_cli(
        ["run", str(log), "--run-id", "run-v", "--out", "out", "--log-level", "WARNING", "-v"]
    )

    assert exit_code == 0
    lines = capsys.readouterr().out.splitlines()
    stages = [line.split("]")[0] + "]" for line in lines if line.startswith("[")]
    assert stages == [
        "[normalized]",
        "[combined]",
        "[run]",
        "[prompt]",
        "[requirements]",
        "[metrics]",
        "[labels]",
        "[complete]",
    ]
    assert "[run] run-v" in lines
    assert "[requirements] 1 requirements" in lines
    assert "[labels] none" in lines
    assert (_isolated_cwd / "out" / "Run.json").exists()


def test_run_with_provider_transcript(
    _isolated_cwd: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    transcript = _isolated_cwd / "chat.json"
    transcript.write_text(
        json.dumps(
            [
                {"role": "user", "content": "Add retries to the client.", "created_at": 1735689600},
                {
                    "role": "assistant",
                    "content": [{"type": "text", "text": "Add retries to the client. done"}],
                },
            ]
        ),
        encoding="utf-8",
    )

    exit_code = run_cli(
        [
            "run",
            str(transcript),
            "--provider",
            "anthropic",
            "--prompt",
            "Add retries to the client.",
            "--run-id",
            "run-p",
            "--out",
            "out",
            "--log-level",
            "WARNING",
            "--json",
        ]
    )

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["events"] == 2
    [requirement] = payload["requirements"]
    assert requirement["status"] == "satisfied"
    assert payload["labels"] == []


def test_provider_with_non_json_log_is_an_analysis_error(
    _isolated_cwd: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    log = _write_log(_isolated_cwd / "chat.json", ["not json"])

    exit_code = run_cli(
        ["run", str(log), "--provider", "openai", "--out", "out", "--log-level", "WARNING"]
    )

    assert exit_code == 1
    assert "--provider openai expects a JSON document" in capsys.readouterr().err


def test_invalid_experiments_file_is_a_config_error(
    _isolated_cwd: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    log = _write_log(_isolated_cwd / "agent.log", ["PLAN: start"])
    (_isolated_cwd / "speckit.experiments.yaml").write_text("version: 2\n", encoding="utf-8")

    exit_code = run_cli(["run", str(log), "--out", "out", "--log-level", "WARNING"])

    assert exit_code == 2
    assert capsys.readouterr().err.startswith("error: ")
    assert not (_isolated_cwd / "out").exists()


def test_provider_transcripts_from_several_files_keep_every_event(
    _isolated_cwd: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    first = _isolated_cwd / "a.json"
    first.write_text(json.dumps([{"role": "user", "content": "Add retries."}]), encoding="utf-8")
    second = _isolated_cwd / "b.json"
    second.write_text(
        json.dumps([{"role": "assistant", "content": "Add retries. done"}]), encoding="utf-8"
    )

    exit_code = run_cli(
        [
            "run",
            str(first),
            str(second),
            "--provider",
            "anthropic",
            "--run-id",
            "run-multi",
            "--out",
            "out",
            "--log-level",
            "WARNING",
            "--json",
        ]
    )

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out)["events"] == 2
    run = json.loads((_isolated_cwd / "out" / "Run.json").read_text(encoding="utf-8"))
    assert sorted(event["id"] for event in run["events"]) == [
        f"{first}-provider-1",
        f"{second}-provider-1",
    ]


def test_undecodable_bytes_are_replaced_not_fatal(
    _isolated_cwd: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    log = _isolated_cwd / "run.log"
    log.write_bytes(b"LOG: caf\xe9 ready\n")

    exit_code = run_cli(
        ["run", str(log), "--run-id", "run-bytes", "--out", "out", "--log-level", "WARNING"]
    )

    assert exit_code == 0
    run = json.loads((_isolated_cwd / "out" / "Run.json").read_text(encoding="utf-8"))
    assert run["events"][0]["output"] == "LOG: caf\ufffd ready"


def test_experiment_dates_are_written_as_iso_strings(
    _isolated_cwd: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    log = _write_log(_isolated_cwd / "agent.log", ["PLAN: start"])
    (_isolated_cwd / "speckit.experiments.yaml").write_text(
        "experiments:\n"
        "  - key: launch\n"
        "    variants:\n"
        "      - key: only\n"
        "        metadata:\n"
        "          launched: 2025-01-01\n",
        encoding="utf-8",
    )

    exit_code = run_cli(
        ["run", str(log), "--run-id", "run-dates", "--out", "out", "--log-level", "WARNING"]
    )

    assert exit_code == 0
    metrics = json.loads((_isolated_cwd / "out" / "metrics.json").read_text(encoding="utf-8"))
    assert metrics["experiments"][0]["metadata"] == {"launched": "2025-01-01"}
