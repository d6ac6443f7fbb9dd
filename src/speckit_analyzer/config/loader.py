"""
speckit-analyzer — runtime config loader.

File: src/speckit_analyzer/config/loader.py

Purpose
- Load effective analyzer settings from defaults, TOML file, env vars, and CLI overrides.

Functional requirements
- Precedence: CLI > env (SPECKIT_) > file > defaults.
- TOML loading via ``tomllib``; a missing default file is not an error.
- Relative paths resolve against the config file's directory.

Non-functional requirements
- Keep loading deterministic and reproducible.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from speckit_analyzer.config.schema import (
    PATH_FIELDS,
    AnalyzerSettings,
    assert_valid_config,
    default_config,
    merge_config,
)
from speckit_analyzer.constants import DEFAULT_CONFIG_FILE

ENV_PREFIX: Final[str] = "SPECKIT_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> AnalyzerSettings:
    """Load effective settings with deterministic precedence: CLI > env > file > defaults.

    ``cli_overrides`` keys are dotted paths (``"artifacts.out_dir"``); ``None``
    values are ignored so unset argparse options fall through.
    """

    if config_path is None:
        source = (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    else:
        source = Path(config_path).expanduser().resolve()

    layered = assert_valid_config(
        merge_config(default_config(), _read_toml(source, required=config_path is not None))
    )
    env_layer = _collect_env_overrides(layered, os.environ if environ is None else environ)
    layered = merge_config(layered, env_layer)
    layered = merge_config(layered, _materialize_cli_overrides(cli_overrides or {}))
    return AnalyzerSettings.from_config(
        normalize_paths(assert_valid_config(layered), base_dir=source.parent)
    )


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve configured path fields relative to ``base_dir``."""

    materialized = merge_config({}, config)
    for section, key in PATH_FIELDS:
        block = materialized.get(section)
        if isinstance(block, dict) and isinstance(block.get(key), str):
            block[key] = _resolve_path_value(block[key], base_dir)
    return materialized


def dump_effective_config(settings: AnalyzerSettings) -> str:
    """Return a deterministic JSON dump of the effective settings."""

    return json.dumps(settings.to_dict(), sort_keys=True, indent=2, ensure_ascii=False)


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        if required:
            raise ConfigLoadError(f"config file not found: {path}") from None
        return {}
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc
    try:
        return tomllib.loads(raw.decode("utf-8"))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc


def _collect_env_overrides(
    config: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, Any]:
    """Read ``SPECKIT_<SECTION>_<KEY>`` for every scalar setting, typed like its default."""

    overrides: dict[str, Any] = {}
    for path, current in _scalar_leaves(config):
        env_name = ENV_PREFIX + "_".join(part.upper() for part in path)
        raw = environ.get(env_name)
        # Unset optional paths take the raw string.
        if raw is None or not isinstance(current, (bool, int, str, type(None))):
            continue
        _set_nested(overrides, path, _coerce_env(raw.strip(), current, env_name, ".".join(path)))
    return overrides


def _scalar_leaves(
    payload: Mapping[str, object], prefix: tuple[str, ...] = ()
) -> Iterator[tuple[tuple[str, ...], object]]:
    for key in sorted(payload):
        value = payload[key]
        if isinstance(value, Mapping):
            yield from _scalar_leaves(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _coerce_env(
    value: str, current: bool | int | str | None, env_name: str, dotted: str
) -> object:
    if isinstance(current, bool):
        lowered = value.lower()
        if lowered in _BOOLEAN_TRUE or lowered in _BOOLEAN_FALSE:
            return lowered in _BOOLEAN_TRUE
        raise ConfigLoadError(
            f"{env_name} -> {dotted} must be a boolean (true/false/1/0/yes/no/on/off)"
        )
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {dotted} must be an integer") from exc
    return value


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key, value in sorted(cli_overrides.items()):
        if value is None:
            continue
        path = tuple(filter(None, key.split(".")))
        if len(path) < 2:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _set_nested(payload, path, value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    *parents, leaf = path
    for part in parents:
        if not isinstance(target.get(part), dict):
            target[part] = {}
        target = target[part]
    target[leaf] = value


def _resolve_path_value(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "ENV_PREFIX",
    "dump_effective_config",
    "load_config",
    "normalize_paths",
]
