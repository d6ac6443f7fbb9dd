"""
speckit-analyzer — requirement deriver and evidence attacher

File: src/speckit_analyzer/analysis/requirements.py

Purpose
- Mine imperative requirement statements from the detected prompt.
- Assign each requirement a status backed by timeline evidence.
- Generate deterministic verification instructions for ``verification.yaml``.

Functional requirements
- Requirements are numbered ``REQ-001``, ``REQ-002``, ... in prompt line order.
- When nothing is derived, exactly one ``REQ-000`` sentinel is returned.
- Evidence scanning walks events in the given order; failure evidence is terminal.
- Inputs are never mutated; every operation returns new records.

Non-functional requirements
- Best-effort heuristic text mining; no NLP dependencies.
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Iterable, Sequence
from typing import Final

from speckit_analyzer.domain.models import (
    SENTINEL_REQUIREMENT_ID,
    RequirementRecord,
    RequirementStatus,
    RunEvent,
    text_of,
)

SENTINEL_TEXT: Final[str] = (
    "Prompt missing or could not be parsed. Manual requirement entry needed."
)
SENTINEL_NOTES: Final[str] = "Added automatically due to missing prompt."

_IMPERATIVE_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(
        r"^(must|should|ensure|create|add|update|implement|run|avoid|verify|write|check|document)\b",
        re.IGNORECASE,
    ),
    re.compile(r"^-\s*[A-Z]"),
)
_BULLET_PREFIX: Final[re.Pattern[str]] = re.compile(r"^[-*]\s*")
_LINE_SPLIT: Final[re.Pattern[str]] = re.compile(r"\r?\n")

_EVIDENCE_TOKEN_LIMIT: Final[int] = 6
_FAILURE_LEXICON: Final[re.Pattern[str]] = re.compile(r"failed|error|unable|missing", re.IGNORECASE)
_SUCCESS_LEXICON: Final[re.Pattern[str]] = re.compile(
    r"completed|done|satisfied|pass|implemented", re.IGNORECASE
)

CLI_KEYWORDS: Final[tuple[str, ...]] = (
    "pnpm",
    "npm",
    "yarn",
    "npx",
    "go",
    "python",
    "pytest",
    "pipenv",
    "poetry",
    "cargo",
    "composer",
    "bundle",
    "rails",
    "gradle",
    "mvn",
    "make",
    "docker",
    "kubectl",
    "helm",
    "bash",
    "sh",
)
_INLINE_COMMAND: Final[re.Pattern[str]] = re.compile(r"`([^`]+)`")
_QUOTED_COMMAND: Final[re.Pattern[str]] = re.compile(
    r'"([^"]*\b(?:pnpm|npm|yarn|npx|go|python|pytest|cargo|make|docker|kubectl)[^"]*)"',
    re.IGNORECASE,
)
_DIRECT_COMMAND: Final[re.Pattern[str]] = re.compile(
    rf"\b({'|'.join(CLI_KEYWORDS)})\b[^\n]*", re.IGNORECASE
)
_COMMAND_CONJUNCTION: Final[re.Pattern[str]] = re.compile(r"\b(?:and|then|after)\b", re.IGNORECASE)
_COMMAND_TRAILER: Final[re.Pattern[str]] = re.compile(r"[\s.;:,]+$")
_FILE_TARGET: Final[re.Pattern[str]] = re.compile(
    r"[A-Za-z0-9_./-]+\.(?:ts|tsx|js|jsx|cjs|mjs|json|yaml|yml|toml|ini|cfg|conf|md|mdx|txt|py|rs"
    r"|go|java|kt|cs|rb|php|sh|bash|zsh|sql|css|scss|sass|less|html|vue|svelte)"
)
_NON_WORD: Final[re.Pattern[str]] = re.compile(r"[^a-z0-9\s]")

# Ordered keyword heuristics; the first hit decides the command.
_KEYWORD_COMMANDS: Final[tuple[tuple[tuple[str, ...], str], ...]] = (
    (("lint",), "pnpm lint"),
    (("type check", "type-check", "typecheck"), "pnpm typecheck"),
    (("coverage",), "pnpm test -- --coverage"),
    (("build",), "pnpm build"),
    (("format", "prettier"), "pnpm format"),
)


def extract_imperative(line: str) -> str | None:
    """Return the cleaned requirement text when ``line`` reads as an instruction."""

    trimmed = line.strip()
    if not trimmed:
        return None
    if any(pattern.search(trimmed) for pattern in _IMPERATIVE_PATTERNS):
        return _sanitize_line(trimmed)
    lower = trimmed.lower()
    if " must " in lower or " ensure " in lower or lower.startswith("ensure "):
        return _sanitize_line(trimmed)
    return None


def sentinel_requirement() -> RequirementRecord:
    return RequirementRecord(
        id=SENTINEL_REQUIREMENT_ID,
        text=SENTINEL_TEXT,
        source="coach",
        category="meta",
        status=RequirementStatus.UNKNOWN,
        notes=SENTINEL_NOTES,
    )


def derive_requirements(prompt: str) -> list[RequirementRecord]:
    """Extract requirements from ``prompt``; falls back to the ``REQ-000`` sentinel."""

    requirements: list[RequirementRecord] = []
    for line in _LINE_SPLIT.split(prompt):
        imperative = extract_imperative(line)
        if imperative is None:
            continue
        constraints: tuple[str, ...] = ()
        if ";" in imperative:
            constraints = tuple(part.strip() for part in imperative.split(";") if part.strip())
        requirements.append(
            RequirementRecord(
                id=f"REQ-{len(requirements) + 1:03d}",
                text=imperative,
                source="prompt",
                category="validation" if "test" in imperative.lower() else None,
                constraints=constraints,
            )
        )
    if not requirements:
        requirements.append(sentinel_requirement())
    return requirements


def attach_evidence(
    requirements: Iterable[RequirementRecord],
    events: Sequence[RunEvent],
) -> list[RequirementRecord]:
    """Return copies of ``requirements`` with status and evidence from ``events``.

    For each requirement, events whose string ``output``/``input`` contain its
    first six tokens in order are considered. A failure-lexicon hit marks the
    requirement ``violated`` and stops the scan; a success-lexicon hit marks it
    ``satisfied`` and keeps scanning; any other match marks it ``in-progress``
    when nothing has been chosen yet.
    """

    return [_attach_one(requirement, events) for requirement in requirements]


def combine_requirements(
    baseline: Iterable[RequirementRecord],
    updates: Iterable[RequirementRecord],
) -> list[RequirementRecord]:
    """Merge by id; updates replace baseline records, first-seen order is kept."""

    merged: dict[str, RequirementRecord] = {}
    for requirement in baseline:
        merged[requirement.id] = requirement
    for requirement in updates:
        merged[requirement.id] = requirement
    return list(merged.values())


def generate_requirement_check(requirement: RequirementRecord) -> str:
    """Return a deterministic, status-specific verification instruction."""

    command = infer_verification_command(requirement)
    note = _evidence_note(requirement)
    if requirement.status is RequirementStatus.SATISFIED:
        return f"Regression guard: run `{command}` to reconfirm. {note}"
    if requirement.status is RequirementStatus.VIOLATED:
        return f"Remediate failure and re-run `{command}`. {note}"
    if requirement.status is RequirementStatus.IN_PROGRESS:
        return f"Next step: execute `{command}` and capture output as evidence. {note}"
    return f"Plan check: run `{command}` to establish coverage. {note}"


def infer_verification_command(requirement: RequirementRecord) -> str:
    text = requirement.text
    inline = _extract_inline_command(text)
    if inline:
        return inline

    direct = _detect_direct_command(text)
    if direct:
        return direct

    normalized = text.lower()
    for keywords, command in _KEYWORD_COMMANDS:
        if any(keyword in normalized for keyword in keywords):
            return command

    file_target = _FILE_TARGET.search(text)
    if file_target is not None:
        return f"git diff --stat {file_target.group(0)}"

    if requirement.category == "validation" or any(
        word in normalized for word in ("test", "assert", "verify")
    ):
        return "pnpm test"
    if any(word in normalized for word in ("doc", "readme", "guide")):
        return "pnpm docs:build"

    return _search_fallback(requirement)


def _attach_one(requirement: RequirementRecord, events: Sequence[RunEvent]) -> RequirementRecord:
    tokens = requirement.text.split()[:_EVIDENCE_TOKEN_LIMIT]
    if not tokens:
        return requirement
    pattern = re.compile(".*".join(re.escape(token) for token in tokens), re.IGNORECASE)

    status = requirement.status
    chosen: RunEvent | None = None
    for event in events:
        haystacks = [
            text for text in (text_of(event.output), text_of(event.input)) if text is not None
        ]
        if not any(pattern.search(field) for field in haystacks):
            continue
        if any(_FAILURE_LEXICON.search(field) for field in haystacks):
            status = RequirementStatus.VIOLATED
            chosen = event
            break
        if any(_SUCCESS_LEXICON.search(field) for field in haystacks):
            status = RequirementStatus.SATISFIED
            chosen = event
        elif chosen is None:
            status = RequirementStatus.IN_PROGRESS
            chosen = event

    return dataclasses.replace(
        requirement,
        status=status,
        evidence=(chosen.id,) if chosen is not None else requirement.evidence,
    )


def _sanitize_line(line: str) -> str:
    return _BULLET_PREFIX.sub("", line, count=1).strip()


def _sanitize_command(candidate: str) -> str:
    return _COMMAND_TRAILER.sub("", candidate).strip()


def _extract_inline_command(text: str) -> str | None:
    match = _INLINE_COMMAND.search(text) or _QUOTED_COMMAND.search(text)
    if match is None:
        return None
    return _sanitize_command(match.group(1))


def _detect_direct_command(text: str) -> str | None:
    match = _DIRECT_COMMAND.search(text)
    if match is None:
        return None
    truncated = _COMMAND_CONJUNCTION.split(match.group(0), maxsplit=1)[0]
    return _sanitize_command(truncated)


def _search_fallback(requirement: RequirementRecord) -> str:
    without_code = _INLINE_COMMAND.sub(" ", requirement.text)
    tokens = [
        token for token in _NON_WORD.sub(" ", without_code.lower()).split() if len(token) > 3
    ]
    phrase = " ".join(tokens[:3])
    if phrase:
        return f'rg "{phrase}" -n'
    return f'rg "{requirement.id.lower()}" -n'


def _evidence_note(requirement: RequirementRecord) -> str:
    if not requirement.evidence:
        return "No run evidence captured yet."
    return f"Evidence: {', '.join(requirement.evidence)}."


__all__ = [
    "CLI_KEYWORDS",
    "SENTINEL_NOTES",
    "SENTINEL_TEXT",
    "attach_evidence",
    "combine_requirements",
    "derive_requirements",
    "extract_imperative",
    "generate_requirement_check",
    "infer_verification_command",
    "sentinel_requirement",
]
