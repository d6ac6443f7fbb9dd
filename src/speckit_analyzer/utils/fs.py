"""
speckit-analyzer — filesystem utilities

File: src/speckit_analyzer/utils/fs.py

Purpose
- Provide atomic file writes for artifacts and the memo-history ledger.

Functional requirements
- Content is staged in a sibling temp file and swapped in with ``os.replace``.
- Parent directories are created on demand.
- A failed write leaves any previous file at the target path untouched.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

PathLike = str | os.PathLike[str]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``data`` so readers see either the old or the new content."""

    target = Path(path)
    directory = target.parent
    directory.mkdir(parents=True, exist_ok=True)
    payload = data if isinstance(data, bytes) else data.encode(encoding)

    fd, staged = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".partial", dir=directory)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(staged, target)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(staged)
        raise
    _sync_dir(directory)


def dump_json(payload: object) -> str:
    """Pretty-printed JSON with a trailing newline."""

    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


def dump_jsonl(rows: Iterable[object]) -> str:
    """One compact JSON document per line."""

    return "".join(json.dumps(row, ensure_ascii=False) + "\n" for row in rows)


def _sync_dir(directory: Path) -> None:
    # Directory fsync is unsupported on Windows and some filesystems.
    if os.name == "nt":
        return
    with contextlib.suppress(OSError):
        dir_fd = os.open(directory, os.O_RDONLY | getattr(os, "O_DIRECTORY", 0))
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)


__all__ = ["atomic_write", "dump_json", "dump_jsonl"]
