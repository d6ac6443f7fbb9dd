"""
speckit-analyzer — failure label engine

File: src/speckit_analyzer/analysis/rules.py

Purpose
- Load regex-driven failure rules from YAML and match them against a run corpus.

Functional requirements
- Rule files have the shape
  ``{rules: [{id, label?, description?, patterns[], remediation?, hint?}]}``.
- Malformed YAML or schema violations are non-fatal: a warning is logged and no rules load.
- A rule fires at most once; its label (or id) is added to an ordered label set.
- Hints prefer ``hint`` over ``remediation``; rules with neither contribute nothing.

Non-functional requirements
- Uses ``yaml.safe_load`` only.
- Compiled patterns are cached on the ``AnalyzerContext``, never at module level.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

import structlog
import yaml

from speckit_analyzer.analysis.context import AnalyzerContext
from speckit_analyzer.domain.models import FailureRule, RunEvent, text_of

logger = structlog.get_logger(__name__)

_RULE_KEYS = frozenset({"id", "label", "description", "patterns", "remediation", "hint"})


class FailureRulesError(ValueError):
    """Raised internally when a rules document violates the expected schema."""


def parse_failure_rules(content: str) -> list[FailureRule]:
    """Parse a YAML rules document; returns ``[]`` with a warning when invalid."""

    try:
        loaded = yaml.safe_load(content)
        return _rules_from_document(loaded)
    except (yaml.YAMLError, FailureRulesError) as exc:
        logger.warning("failure_rules_unparseable", reason=str(exc))
        return []


def load_failure_rules(path: str | os.PathLike[str]) -> list[FailureRule]:
    """Read and parse ``path``; a missing or unreadable file logs a warning and yields ``[]``."""

    rules_path = Path(path)
    try:
        content = rules_path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("failure_rules_unavailable", path=str(rules_path), reason=str(exc))
        return []
    return parse_failure_rules(content)


def build_failure_corpus(text: str, events: Iterable[RunEvent]) -> str:
    """Join plain text with ``output\\ninput\\nerror`` for every event (strings only)."""

    chunks = [
        f"{text_of(event.output) or ''}\n{text_of(event.input) or ''}\n{text_of(event.error) or ''}"
        for event in events
    ]
    return f"{text}\n" + "\n".join(chunks)


def apply_failure_labels(
    rules: Sequence[FailureRule],
    text: str,
    events: Iterable[RunEvent],
    *,
    context: AnalyzerContext | None = None,
) -> tuple[str, ...]:
    """Return labels of every rule with at least one matching pattern, in rule order."""

    ctx = context if context is not None else AnalyzerContext()
    corpus = build_failure_corpus(text, events)
    labels: dict[str, None] = {}
    for rule in rules:
        for source in rule.patterns:
            pattern = ctx.compile_pattern(source)
            if pattern is not None and pattern.search(corpus):
                labels[rule.label or rule.id] = None
                break
    return tuple(labels)


def labels_to_hints(labels: Iterable[str], rules: Sequence[FailureRule]) -> list[str]:
    hints: list[str] = []
    for label in labels:
        rule = next((entry for entry in rules if label in (entry.label, entry.id)), None)
        if rule is None:
            continue
        if rule.hint:
            hints.append(rule.hint)
        elif rule.remediation:
            hints.append(rule.remediation)
    return hints


def _rules_from_document(document: object) -> list[FailureRule]:
    if document is None:
        return []
    if not isinstance(document, Mapping):
        raise FailureRulesError(f"$: expected mapping, got {type(document).__name__}")
    raw_rules = document.get("rules")
    if raw_rules is None:
        return []
    if not isinstance(raw_rules, list):
        raise FailureRulesError(f"$.rules: expected list, got {type(raw_rules).__name__}")
    return [_rule_from_entry(entry, f"$.rules[{index}]") for index, entry in enumerate(raw_rules)]


def _rule_from_entry(entry: object, path: str) -> FailureRule:
    if not isinstance(entry, Mapping):
        raise FailureRulesError(f"{path}: expected mapping, got {type(entry).__name__}")
    rule_id = entry.get("id")
    if not isinstance(rule_id, str):
        raise FailureRulesError(f"{path}.id: expected string")
    patterns = entry.get("patterns")
    if not isinstance(patterns, list) or not all(isinstance(item, str) for item in patterns):
        raise FailureRulesError(f"{path}.patterns: expected list of strings")
    optional: dict[str, str | None] = {}
    for key in ("label", "description", "remediation", "hint"):
        value = entry.get(key)
        if value is not None and not isinstance(value, str):
            raise FailureRulesError(f"{path}.{key}: expected string")
        optional[key] = value
    unknown = sorted(str(key) for key in entry if key not in _RULE_KEYS)
    if unknown:
        logger.debug("failure_rule_unknown_keys", path=path, keys=unknown)
    return FailureRule(
        id=rule_id,
        patterns=tuple(patterns),
        label=optional["label"],
        description=optional["description"],
        remediation=optional["remediation"],
        hint=optional["hint"],
    )


__all__ = [
    "apply_failure_labels",
    "build_failure_corpus",
    "labels_to_hints",
    "load_failure_rules",
    "parse_failure_rules",
]
