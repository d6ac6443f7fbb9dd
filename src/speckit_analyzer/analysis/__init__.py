"""Analysis stages: prompt detection, requirements, metrics, failure labels, pipeline."""

from speckit_analyzer.analysis.context import AnalyzerContext
from speckit_analyzer.analysis.metrics import MetricRow, compute_metrics, summarize_metrics
from speckit_analyzer.analysis.pipeline import (
    PROMPT_MISSING_LABEL,
    AnalyzerError,
    AnalyzerEvent,
    AnalyzerResult,
    AnalyzerStreamError,
    UnsupportedLogSourceError,
    analyze,
    analyze_async,
    analyze_stream,
    analyze_stream_async,
)
from speckit_analyzer.analysis.prompt import detect_prompt
from speckit_analyzer.analysis.requirements import (
    attach_evidence,
    combine_requirements,
    derive_requirements,
    extract_imperative,
    generate_requirement_check,
)
from speckit_analyzer.analysis.rules import (
    apply_failure_labels,
    labels_to_hints,
    load_failure_rules,
    parse_failure_rules,
)

__all__ = [
    "AnalyzerContext",
    "AnalyzerError",
    "AnalyzerEvent",
    "AnalyzerResult",
    "AnalyzerStreamError",
    "MetricRow",
    "PROMPT_MISSING_LABEL",
    "UnsupportedLogSourceError",
    "analyze",
    "analyze_async",
    "analyze_stream",
    "analyze_stream_async",
    "apply_failure_labels",
    "attach_evidence",
    "combine_requirements",
    "compute_metrics",
    "derive_requirements",
    "detect_prompt",
    "extract_imperative",
    "generate_requirement_check",
    "labels_to_hints",
    "load_failure_rules",
    "parse_failure_rules",
    "summarize_metrics",
]
