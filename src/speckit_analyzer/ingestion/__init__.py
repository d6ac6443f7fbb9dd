"""Log ingestion: normalization, source shapes, provider adapters, and merging."""

from speckit_analyzer.ingestion.combiner import (
    SourcePart,
    build_run_artifact,
    combine_normalized,
    merge_normalized,
)
from speckit_analyzer.ingestion.normalizer import (
    LogFormat,
    normalize_log_content,
    normalized_from_events,
)
from speckit_analyzer.ingestion.providers import PROVIDER_ADAPTERS, provider_events
from speckit_analyzer.ingestion.sources import (
    AnalyzerError,
    EventsLogSource,
    NormalizedLogSource,
    RawLogSource,
    UnsupportedLogSourceError,
    create_file_log_source,
    load_log_sources_from_files,
)

__all__ = [
    "AnalyzerError",
    "EventsLogSource",
    "LogFormat",
    "NormalizedLogSource",
    "PROVIDER_ADAPTERS",
    "RawLogSource",
    "SourcePart",
    "UnsupportedLogSourceError",
    "build_run_artifact",
    "combine_normalized",
    "create_file_log_source",
    "load_log_sources_from_files",
    "merge_normalized",
    "normalize_log_content",
    "normalized_from_events",
    "provider_events",
]
