"""Per-process analyzer context: injected clock, logger, and compiled-pattern cache."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from speckit_analyzer.domain.timestamps import utc_now

NowFn = Callable[[], datetime]


@dataclass(slots=True)
class AnalyzerContext:
    """Explicit state threaded through analysis entry points.

    Build one per process (or per test) and pass it to ``analyze``; nothing in
    the analyzer keeps module-level caches.
    """

    now_fn: NowFn = utc_now
    logger: Any = field(default_factory=lambda: structlog.get_logger("speckit_analyzer"))
    _patterns: dict[str, re.Pattern[str] | None] = field(default_factory=dict, repr=False)

    def now(self) -> datetime:
        return self.now_fn()

    def compile_pattern(self, source: str) -> re.Pattern[str] | None:
        """Compile ``source`` case-insensitively; invalid patterns yield ``None`` once logged."""

        if source in self._patterns:
            return self._patterns[source]
        try:
            compiled: re.Pattern[str] | None = re.compile(source, re.IGNORECASE)
        except re.error as exc:
            self.logger.warning("failure_rule_pattern_invalid", pattern=source, reason=str(exc))
            compiled = None
        self._patterns[source] = compiled
        return compiled

    @property
    def cached_pattern_count(self) -> int:
        return len(self._patterns)


__all__ = ["AnalyzerContext", "NowFn"]
