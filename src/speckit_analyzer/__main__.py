"""Module entrypoint for ``python -m speckit_analyzer``."""

from __future__ import annotations

from speckit_analyzer.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())
