"""
speckit-analyzer — unit tests for config loader

File: tests/unit/config/test_loader.py

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Path normalization relative to the config file.
- Effective config dumping.

Functional requirements
- Works offline with an explicit ``environ`` mapping.

Non-functional requirements
- Deterministic output across repeated loads.
"""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest

from speckit_analyzer.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    load_config,
)
from speckit_analyzer.config.schema import ConfigValidationError


def _write_config(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text.strip() + "\n", encoding="utf-8")
    return path


def test_defaults_when_no_config_file_exists(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    settings = load_config(environ={})

    assert settings.out_dir == (tmp_path.resolve() / ".speckit").as_posix()
    expected_rules = tmp_path.resolve() / ".speckit" / "failure-rules.yaml"
    assert settings.rules_file == expected_rules.as_posix()
    assert settings.memo_ttl == timedelta(days=30)
    assert settings.promotion_min_count == 2
    assert settings.max_promoted == 10
    assert settings.log_level == "INFO"
    assert settings.log_json is False


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "conf" / "speckit.toml",
        """
[memo]
ttl_days = 14
promotion_min_count = 3
max_promoted = 4

[observability]
log_level = "debug"
""",
    )

    settings = load_config(
        config_path,
        environ={"SPECKIT_MEMO_TTL_DAYS": "7", "SPECKIT_MEMO_MAX_PROMOTED": "6"},
        cli_overrides={"memo.max_promoted": 8, "observability.log_json": None},
    )

    assert settings.memo_ttl_days == 7
    assert settings.promotion_min_count == 3
    assert settings.max_promoted == 8
    assert settings.log_level == "DEBUG"
    assert settings.log_json is False


def test_relative_paths_resolve_against_config_directory(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "project" / "speckit.toml",
        """
[artifacts]
out_dir = "artifacts/run"
rules_file = "/etc/speckit/rules.yaml"
""",
    )

    settings = load_config(config_path, environ={})

    assert settings.out_dir == (tmp_path.resolve() / "project" / "artifacts" / "run").as_posix()
    assert settings.rules_file == "/etc/speckit/rules.yaml"


def test_unset_rules_file_follows_the_artifact_directory(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "speckit.toml", "")
    out_dir = tmp_path.resolve() / "elsewhere"

    settings = load_config(
        config_path,
        environ={},
        cli_overrides={"artifacts.out_dir": out_dir.as_posix(), "artifacts.rules_file": None},
    )

    assert settings.rules_file == (out_dir / "failure-rules.yaml").as_posix()


def test_rules_file_can_be_set_from_the_environment(tmp_path: Path) -> None:
    settings = load_config(
        _write_config(tmp_path / "speckit.toml", ""),
        environ={"SPECKIT_ARTIFACTS_RULES_FILE": "rules/custom.yaml"},
    )

    assert settings.rules_file == (tmp_path.resolve() / "rules" / "custom.yaml").as_posix()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("yes", True), ("ON", True), ("0", False), ("off", False)],
)
def test_env_booleans_are_coerced(tmp_path: Path, raw: str, expected: bool) -> None:
    settings = load_config(
        _write_config(tmp_path / "speckit.toml", ""),
        environ={"SPECKIT_OBSERVABILITY_LOG_JSON": raw},
    )
    assert settings.log_json is expected


@pytest.mark.parametrize(
    ("environ", "message"),
    [
        (
            {"SPECKIT_MEMO_TTL_DAYS": "soon"},
            "SPECKIT_MEMO_TTL_DAYS -> memo.ttl_days must be an integer",
        ),
        ({"SPECKIT_OBSERVABILITY_LOG_JSON": "maybe"}, "must be a boolean"),
    ],
)
def test_bad_env_values_raise_load_error(
    tmp_path: Path, environ: dict[str, str], message: str
) -> None:
    with pytest.raises(ConfigLoadError, match=message):
        load_config(_write_config(tmp_path / "speckit.toml", ""), environ=environ)


def test_explicit_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_invalid_toml_is_an_error(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "speckit.toml", "[memo\nttl_days = 1")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_schema_violations_surface_every_issue(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "speckit.toml",
        """
[memo]
ttl_days = 0
surprise = true
""",
    )

    with pytest.raises(ConfigValidationError) as excinfo:
        load_config(config_path, environ={})

    paths = [issue.path for issue in excinfo.value.issues]
    assert paths == ["memo.surprise", "memo.ttl_days"]
    assert str(excinfo.value).startswith("invalid config:\n- memo.surprise: unknown field")


def test_cli_override_keys_must_be_dotted(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="invalid CLI override key 'memo'"):
        load_config(
            _write_config(tmp_path / "speckit.toml", ""),
            environ={},
            cli_overrides={"memo": 3},
        )


def test_effective_config_dump_is_deterministic(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "speckit.toml", "")

    first = dump_effective_config(load_config(config_path, environ={}))
    second = dump_effective_config(load_config(config_path, environ={}))

    assert first == second
    payload = json.loads(first)
    assert list(payload) == ["artifacts", "memo", "observability"]
    assert payload["memo"] == {"max_promoted": 10, "promotion_min_count": 2, "ttl_days": 30}
