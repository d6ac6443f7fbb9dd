"""Unit tests for atomic artifact writes."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from speckit_analyzer.utils.fs import atomic_write, dump_json, dump_jsonl


def test_atomic_write_creates_parents_and_replaces(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "dir" / "file.txt"

    atomic_write(target, "first")
    atomic_write(target, "second\n")

    assert target.read_text(encoding="utf-8") == "second\n"
    assert sorted(path.name for path in target.parent.iterdir()) == ["file.txt"]


def test_atomic_write_accepts_bytes(tmp_path: Path) -> None:
    target = tmp_path / "blob.bin"

    atomic_write(target, b"\x00\x01")

    assert target.read_bytes() == b"\x00\x01"


def test_failed_write_keeps_previous_content(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = tmp_path / "memo.json"
    target.write_text("old", encoding="utf-8")

    def _fail(src: object, dst: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", _fail)

    with pytest.raises(OSError, match="disk full"):
        atomic_write(target, "new")

    assert target.read_text(encoding="utf-8") == "old"
    assert [path.name for path in tmp_path.iterdir()] == ["memo.json"]


def test_dump_json_is_indented_with_trailing_newline() -> None:
    text = dump_json({"b": 1, "a": "é"})

    assert text == '{\n  "b": 1,\n  "a": "é"\n}\n'


def test_dump_jsonl_renders_one_document_per_line(tmp_path: Path) -> None:
    target = tmp_path / "requirements.jsonl"

    atomic_write(target, dump_jsonl(iter([{"id": "REQ-001"}, {"id": "REQ-002"}])))

    lines = target.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["id"] for line in lines] == ["REQ-001", "REQ-002"]
    assert dump_jsonl([]) == ""
