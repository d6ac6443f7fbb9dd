"""Domain models and timestamp helpers for analyzer runs."""

from speckit_analyzer.domain.models import (
    SENTINEL_REQUIREMENT_ID,
    EventKind,
    FailureRule,
    MemoArtifact,
    Metrics,
    NormalizedLog,
    RequirementRecord,
    RequirementStatus,
    RunArtifact,
    RunEvent,
    parse_event_kind,
    text_of,
)
from speckit_analyzer.domain.timestamps import (
    coerce_timestamp,
    parse_timestamp,
    to_iso8601z,
    utc_now,
)

__all__ = [
    "EventKind",
    "FailureRule",
    "MemoArtifact",
    "Metrics",
    "NormalizedLog",
    "RequirementRecord",
    "RequirementStatus",
    "RunArtifact",
    "RunEvent",
    "SENTINEL_REQUIREMENT_ID",
    "coerce_timestamp",
    "parse_event_kind",
    "parse_timestamp",
    "text_of",
    "to_iso8601z",
    "utc_now",
]
