"""Exit-code routing at the ``cli_entrypoint`` boundary."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from speckit_analyzer.config import ConfigLoadError, ExperimentConfigError
from speckit_analyzer.ingestion.sources import AnalyzerError
from speckit_analyzer.main import ExitCode, cli_entrypoint


def _raise(exc: BaseException) -> Callable[[object], int]:
    def _run_cli(argv: object) -> int:
        raise exc

    return _run_cli


def _chained(outer: Exception, inner: Exception) -> Exception:
    outer.__cause__ = inner
    return outer


def test_exit_code_values_are_stable() -> None:
    assert [int(code) for code in ExitCode] == [0, 1, 2, 4]


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ConfigLoadError("bad toml"), ExitCode.CONFIG_ERROR),
        (ExperimentConfigError("$.version: expected 1"), ExitCode.CONFIG_ERROR),
        (FileNotFoundError("missing.log"), ExitCode.CONFIG_ERROR),
        (AnalyzerError("unsupported source"), ExitCode.ANALYSIS_ERROR),
        (_chained(RuntimeError("wrapper"), AnalyzerError("root cause")), ExitCode.ANALYSIS_ERROR),
        (RuntimeError("boom"), ExitCode.INTERNAL_ERROR),
    ],
)
def test_exceptions_route_to_exit_codes(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    exc: Exception,
    expected: ExitCode,
) -> None:
    monkeypatch.setattr("speckit_analyzer.ui.cli.run_cli", _raise(exc))

    assert cli_entrypoint(["run", "x.log"]) == int(expected)

    stderr = capsys.readouterr().err
    if expected is ExitCode.INTERNAL_ERROR:
        assert "Traceback" in stderr
    else:
        assert str(exc) in stderr


def test_keyboard_interrupt_is_internal(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr("speckit_analyzer.ui.cli.run_cli", _raise(KeyboardInterrupt()))

    assert cli_entrypoint([]) == int(ExitCode.INTERNAL_ERROR)
    assert capsys.readouterr().err == "interrupted\n"


@pytest.mark.parametrize(
    ("code", "expected"),
    [(None, 0), (2, 2), (3, 4), ("usage problem", 4)],
)
def test_system_exit_codes_are_normalized(
    monkeypatch: pytest.MonkeyPatch, code: object, expected: int
) -> None:
    monkeypatch.setattr("speckit_analyzer.ui.cli.run_cli", _raise(SystemExit(code)))

    assert cli_entrypoint(["--help"]) == expected


def test_argparse_usage_errors_exit_with_config_code(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["run"]) == int(ExitCode.CONFIG_ERROR)
    assert "usage: speckit-analyze run" in capsys.readouterr().err
