"""Per-run memo construction: lessons, guardrails, and a requirement checklist."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from typing import Final

from speckit_analyzer.domain.models import MemoArtifact, RequirementRecord, RequirementStatus
from speckit_analyzer.domain.timestamps import to_iso8601z, utc_now

DEFAULT_LESSON: Final[str] = (
    "Review analyzer output and iterate on missing coverage before the next run."
)


def label_lesson(label: str) -> str:
    return f"Investigate label: {label}"


def requirement_guardrail(requirement: RequirementRecord) -> str:
    return f"Prevent regression on {requirement.id}: {requirement.text}"


def build_memo(
    run_id: str,
    sources: Sequence[str],
    requirements: Sequence[RequirementRecord],
    labels: Iterable[str],
    *,
    experiments: Sequence[Mapping[str, object]] = (),
    generated_at: datetime | None = None,
) -> MemoArtifact:
    """Snapshot memo for one run, before any reinforcement from history.

    One lesson per label (or ``DEFAULT_LESSON`` when no label fired), one
    guardrail per violated requirement, and a checklist line per requirement.
    """

    label_list = list(dict.fromkeys(labels))
    lessons = [label_lesson(label) for label in label_list] or [DEFAULT_LESSON]
    guardrails = [
        requirement_guardrail(requirement)
        for requirement in requirements
        if requirement.status is RequirementStatus.VIOLATED
    ]
    checklist = [f"{requirement.id}: {requirement.text}" for requirement in requirements]
    return MemoArtifact(
        generated_at=to_iso8601z(generated_at if generated_at is not None else utc_now()),
        run_id=run_id,
        sources=tuple(sources),
        lessons=tuple(lessons),
        guardrails=tuple(guardrails),
        checklist=tuple(checklist),
        labels=tuple(label_list),
        experiments=tuple(dict(entry) for entry in experiments),
    )


__all__ = [
    "DEFAULT_LESSON",
    "build_memo",
    "label_lesson",
    "requirement_guardrail",
]
