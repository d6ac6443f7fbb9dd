"""
speckit-analyzer — memo history ledger

File: src/speckit_analyzer/knowledge/history.py

Purpose
- Maintain a JSON-Lines ledger of per-run memos keyed by ``run_id``.
- Promote lessons and guardrails that recur across runs into the newest memo.

Functional requirements
- Entries older than ``now - ttl`` or with unparseable ``generated_at`` are dropped.
- One entry per ``run_id``: the most recently generated wins; the current memo always
  supersedes a prior entry for the same run, so re-analysis is idempotent.
- A string's count is the number of distinct memos containing it; strings reaching
  ``promotion_min_count`` that the new memo lacks are promoted (count desc, then text),
  capped at ``max_promoted`` per list.
- The ledger is rewritten in full, sorted ascending by ``generated_at``.

Non-functional requirements
- Single-writer; the rewrite is atomic so a failed update leaves the prior file intact.
- Unreadable ledger lines are skipped with a warning, never fatal.
"""

from __future__ import annotations

import dataclasses
import json
import os
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

import structlog

from speckit_analyzer.constants import (
    DEFAULT_MAX_PROMOTED,
    DEFAULT_MEMO_TTL,
    DEFAULT_PROMOTION_MIN_COUNT,
)
from speckit_analyzer.domain.models import MemoArtifact
from speckit_analyzer.domain.timestamps import parse_timestamp, utc_now
from speckit_analyzer.utils.fs import atomic_write, dump_jsonl

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class MemoHistoryUpdate:
    """Outcome of one history update, used to narrate what changed."""

    memo: MemoArtifact
    entries: tuple[MemoArtifact, ...]
    promoted_lessons: tuple[str, ...]
    promoted_guardrails: tuple[str, ...]
    pruned: int = 0


def read_memo_history(history_path: str | os.PathLike[str]) -> list[MemoArtifact]:
    """Load every readable memo from ``history_path``; a missing file yields ``[]``."""

    path = Path(history_path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []

    entries: list[MemoArtifact] = []
    for line_number, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            entries.append(MemoArtifact.from_dict(json.loads(line)))
        except ValueError as exc:
            logger.warning(
                "memo_history_line_skipped",
                path=str(path),
                line=line_number,
                reason=str(exc),
            )
    return entries


def plan_memo_history(
    history_path: str | os.PathLike[str],
    memo: MemoArtifact,
    *,
    now: datetime | None = None,
    ttl: timedelta = DEFAULT_MEMO_TTL,
    promotion_min_count: int = DEFAULT_PROMOTION_MIN_COUNT,
    max_promoted: int = DEFAULT_MAX_PROMOTED,
) -> MemoHistoryUpdate:
    """Compute the merged ledger and reinforced memo without touching ``history_path``."""

    if ttl <= timedelta(0):
        raise ValueError("ttl must be > 0")
    if promotion_min_count < 1:
        raise ValueError("promotion_min_count must be >= 1")
    if max_promoted < 0:
        raise ValueError("max_promoted must be >= 0")

    moment = now if now is not None else utc_now()
    existing = read_memo_history(history_path)
    surviving = _prune_expired(existing, cutoff=moment - ttl)
    pruned = len(existing) - len(surviving)
    surviving = [
        entry for entry in _latest_per_run(surviving) if entry.run_id != memo.run_id
    ]

    population = [*surviving, memo]
    promoted_lessons = _promotable(
        (entry.lessons for entry in population),
        exclude=memo.lessons,
        min_count=promotion_min_count,
        limit=max_promoted,
    )
    promoted_guardrails = _promotable(
        (entry.guardrails for entry in population),
        exclude=memo.guardrails,
        min_count=promotion_min_count,
        limit=max_promoted,
    )

    enriched = dataclasses.replace(
        memo,
        lessons=_dedupe((*memo.lessons, *promoted_lessons)),
        guardrails=_dedupe((*memo.guardrails, *promoted_guardrails)),
    )
    return MemoHistoryUpdate(
        memo=enriched,
        entries=tuple(sorted([*surviving, enriched], key=_generated_at_key)),
        promoted_lessons=promoted_lessons,
        promoted_guardrails=promoted_guardrails,
        pruned=pruned,
    )


def update_memo_history(
    history_path: str | os.PathLike[str],
    memo: MemoArtifact,
    *,
    now: datetime | None = None,
    ttl: timedelta = DEFAULT_MEMO_TTL,
    promotion_min_count: int = DEFAULT_PROMOTION_MIN_COUNT,
    max_promoted: int = DEFAULT_MAX_PROMOTED,
) -> MemoHistoryUpdate:
    """Merge ``memo`` into the ledger at ``history_path`` and rewrite it atomically."""

    update = plan_memo_history(
        history_path,
        memo,
        now=now,
        ttl=ttl,
        promotion_min_count=promotion_min_count,
        max_promoted=max_promoted,
    )
    atomic_write(history_path, render_memo_history(update))
    log_memo_history_update(history_path, update)
    return update


def render_memo_history(update: MemoHistoryUpdate) -> str:
    return dump_jsonl(entry.to_dict() for entry in update.entries)


def log_memo_history_update(
    history_path: str | os.PathLike[str], update: MemoHistoryUpdate
) -> None:
    logger.info(
        "memo_history_updated",
        path=str(history_path),
        run_id=update.memo.run_id,
        entries=len(update.entries),
        pruned=update.pruned,
        promoted_lessons=len(update.promoted_lessons),
        promoted_guardrails=len(update.promoted_guardrails),
    )


def _prune_expired(entries: Iterable[MemoArtifact], *, cutoff: datetime) -> list[MemoArtifact]:
    kept: list[MemoArtifact] = []
    for entry in entries:
        generated = parse_timestamp(entry.generated_at)
        if generated is None or generated < cutoff:
            continue
        kept.append(entry)
    return kept


def _latest_per_run(entries: Sequence[MemoArtifact]) -> list[MemoArtifact]:
    latest: dict[str, MemoArtifact] = {}
    for entry in sorted(entries, key=_generated_at_key):
        latest[entry.run_id] = entry
    return list(latest.values())


def _promotable(
    groups: Iterable[Sequence[str]],
    *,
    exclude: Sequence[str],
    min_count: int,
    limit: int,
) -> tuple[str, ...]:
    counts: Counter[str] = Counter()
    for group in groups:
        counts.update(set(group))
    excluded = set(exclude)
    candidates = [
        (text, count)
        for text, count in counts.items()
        if count >= min_count and text not in excluded
    ]
    candidates.sort(key=lambda item: (-item[1], item[0]))
    return tuple(text for text, _ in candidates[:limit])


def _dedupe(items: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def _generated_at_key(entry: MemoArtifact) -> datetime:
    parsed = parse_timestamp(entry.generated_at)
    if parsed is None:
        raise ValueError(f"memo {entry.run_id}: unparseable generated_at {entry.generated_at!r}")
    return parsed


__all__ = [
    "MemoHistoryUpdate",
    "log_memo_history_update",
    "plan_memo_history",
    "read_memo_history",
    "render_memo_history",
    "update_memo_history",
]
