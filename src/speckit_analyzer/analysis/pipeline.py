"""
speckit-analyzer — analysis pipeline

File: src/speckit_analyzer/analysis/pipeline.py

Purpose
- Run normalization, combination, prompt detection, requirement derivation, evidence
  attachment, metrics, and failure labelling strictly in order.
- Emit a typed progress event after each stage so callers can narrate progress.

Functional requirements
- Sources are normalized independently and merged in the order supplied.
- Source ``i`` uses ``now + i minutes`` as its fallback start.
- ``prompt.missing`` is added to the labels whenever ``REQ-000`` is present.
- The async entry points accept async iterables and awaitable entries.

Non-functional requirements
- Single-threaded and sequential; consumers can observe but not alter computed values.
- No retries: unsupported input aborts the whole analysis.
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta
from typing import ClassVar, Final, TypeAlias

from speckit_analyzer.analysis.context import AnalyzerContext
from speckit_analyzer.analysis.metrics import compute_metrics
from speckit_analyzer.analysis.prompt import detect_prompt
from speckit_analyzer.analysis.requirements import attach_evidence, derive_requirements
from speckit_analyzer.analysis.rules import apply_failure_labels, labels_to_hints
from speckit_analyzer.domain.models import (
    FailureRule,
    Metrics,
    NormalizedLog,
    RequirementRecord,
    RunArtifact,
)
from speckit_analyzer.ingestion.combiner import SourcePart, build_run_artifact, combine_normalized
from speckit_analyzer.ingestion.sources import (
    AnalyzerError,
    UnsupportedLogSourceError,
    normalize_source,
)

PROMPT_MISSING_LABEL: Final[str] = "prompt.missing"
_SOURCE_FALLBACK_SPACING: Final[timedelta] = timedelta(minutes=1)


class AnalyzerStreamError(AnalyzerError):
    """Raised when a stream ends without a ``complete`` event."""

    def __init__(self) -> None:
        super().__init__("Analyzer stream completed without producing a result")


@dataclass(frozen=True, slots=True)
class AnalyzerResult:
    run: RunArtifact
    normalized: NormalizedLog
    prompt: str
    requirements: tuple[RequirementRecord, ...]
    metrics: Metrics
    labels: tuple[str, ...]
    hints: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class NormalizedEvent:
    type: ClassVar[str] = "normalized"
    normalized: NormalizedLog
    source: str | None


@dataclass(frozen=True, slots=True)
class CombinedEvent:
    type: ClassVar[str] = "combined"
    normalized: NormalizedLog


@dataclass(frozen=True, slots=True)
class RunBuiltEvent:
    type: ClassVar[str] = "run"
    run: RunArtifact


@dataclass(frozen=True, slots=True)
class PromptEvent:
    type: ClassVar[str] = "prompt"
    prompt: str


@dataclass(frozen=True, slots=True)
class RequirementsEvent:
    type: ClassVar[str] = "requirements"
    requirements: tuple[RequirementRecord, ...]


@dataclass(frozen=True, slots=True)
class MetricsEvent:
    type: ClassVar[str] = "metrics"
    metrics: Metrics


@dataclass(frozen=True, slots=True)
class LabelsEvent:
    type: ClassVar[str] = "labels"
    labels: tuple[str, ...]
    hints: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class CompleteEvent:
    type: ClassVar[str] = "complete"
    result: AnalyzerResult


AnalyzerEvent: TypeAlias = (
    NormalizedEvent
    | CombinedEvent
    | RunBuiltEvent
    | PromptEvent
    | RequirementsEvent
    | MetricsEvent
    | LabelsEvent
    | CompleteEvent
)


@dataclass(frozen=True, slots=True)
class _AnalyzeOptions:
    rules: tuple[FailureRule, ...]
    run_id: str | None
    prompt: str | None
    metadata: Mapping[str, object] | None


def analyze_stream(
    sources: Iterable[object],
    *,
    rules: Sequence[FailureRule] = (),
    run_id: str | None = None,
    prompt: str | None = None,
    metadata: Mapping[str, object] | None = None,
    context: AnalyzerContext | None = None,
) -> Iterator[AnalyzerEvent]:
    """Yield one progress event per stage, ending with ``CompleteEvent``."""

    ctx = context if context is not None else AnalyzerContext()
    options = _AnalyzeOptions(tuple(rules), run_id, prompt, metadata)
    now = ctx.now()
    parts: list[SourcePart] = []
    for index, source in enumerate(sources):
        if inspect.isawaitable(source):
            raise UnsupportedLogSourceError("awaitable entries require analyze_stream_async")
        part = normalize_source(source, index, now + index * _SOURCE_FALLBACK_SPACING)
        parts.append(part)
        ctx.logger.debug(
            "analyzer_source_normalized", source_id=part.id, events=len(part.log.events)
        )
        yield NormalizedEvent(normalized=part.log, source=part.id)
    yield from _run_stages(parts, options, ctx)


async def analyze_stream_async(
    sources: Iterable[object] | AsyncIterable[object],
    *,
    rules: Sequence[FailureRule] = (),
    run_id: str | None = None,
    prompt: str | None = None,
    metadata: Mapping[str, object] | None = None,
    context: AnalyzerContext | None = None,
) -> AsyncIterator[AnalyzerEvent]:
    """Async variant of ``analyze_stream``; entries may be awaitables."""

    ctx = context if context is not None else AnalyzerContext()
    options = _AnalyzeOptions(tuple(rules), run_id, prompt, metadata)
    now = ctx.now()
    parts: list[SourcePart] = []
    index = 0
    async for entry in _iterate_sources(sources):
        part = normalize_source(entry, index, now + index * _SOURCE_FALLBACK_SPACING)
        parts.append(part)
        ctx.logger.debug(
            "analyzer_source_normalized", source_id=part.id, events=len(part.log.events)
        )
        yield NormalizedEvent(normalized=part.log, source=part.id)
        index += 1
    for event in _run_stages(parts, options, ctx):
        yield event


def analyze(
    sources: Iterable[object],
    *,
    rules: Sequence[FailureRule] = (),
    run_id: str | None = None,
    prompt: str | None = None,
    metadata: Mapping[str, object] | None = None,
    context: AnalyzerContext | None = None,
) -> AnalyzerResult:
    """Drain ``analyze_stream`` and return the final result."""

    final: AnalyzerResult | None = None
    for event in analyze_stream(
        sources,
        rules=rules,
        run_id=run_id,
        prompt=prompt,
        metadata=metadata,
        context=context,
    ):
        if isinstance(event, CompleteEvent):
            final = event.result
    if final is None:
        raise AnalyzerStreamError()
    return final


async def analyze_async(
    sources: Iterable[object] | AsyncIterable[object],
    *,
    rules: Sequence[FailureRule] = (),
    run_id: str | None = None,
    prompt: str | None = None,
    metadata: Mapping[str, object] | None = None,
    context: AnalyzerContext | None = None,
) -> AnalyzerResult:
    final: AnalyzerResult | None = None
    async for event in analyze_stream_async(
        sources,
        rules=rules,
        run_id=run_id,
        prompt=prompt,
        metadata=metadata,
        context=context,
    ):
        if isinstance(event, CompleteEvent):
            final = event.result
    if final is None:
        raise AnalyzerStreamError()
    return final


def _run_stages(
    parts: Sequence[SourcePart],
    options: _AnalyzeOptions,
    ctx: AnalyzerContext,
) -> Iterator[AnalyzerEvent]:
    source_ids = [part.id or f"source-{index + 1}" for index, part in enumerate(parts)]

    normalized = combine_normalized(parts)
    yield CombinedEvent(normalized=normalized)

    run = build_run_artifact(
        source_ids, normalized, options.run_id, options.metadata, now=ctx.now()
    )
    yield RunBuiltEvent(run=run)

    prompt = (
        options.prompt
        if options.prompt is not None
        else detect_prompt(normalized.prompt_candidates, normalized.plain_text)
    )
    yield PromptEvent(prompt=prompt)

    requirements = tuple(attach_evidence(derive_requirements(prompt), run.events))
    yield RequirementsEvent(requirements=requirements)

    metrics = compute_metrics(requirements, run.events)
    yield MetricsEvent(metrics=metrics)

    labels = apply_failure_labels(options.rules, normalized.plain_text, run.events, context=ctx)
    if any(requirement.is_sentinel for requirement in requirements) and (
        PROMPT_MISSING_LABEL not in labels
    ):
        labels = (*labels, PROMPT_MISSING_LABEL)
    hints = tuple(labels_to_hints(labels, options.rules))
    yield LabelsEvent(labels=labels, hints=hints)

    ctx.logger.info(
        "analysis_complete",
        run_id=run.run_id,
        sources=len(parts),
        events=len(run.events),
        requirements=len(requirements),
        labels=list(labels),
    )
    yield CompleteEvent(
        result=AnalyzerResult(
            run=run,
            normalized=normalized,
            prompt=prompt,
            requirements=requirements,
            metrics=metrics,
            labels=labels,
            hints=hints,
        )
    )


async def _iterate_sources(
    sources: Iterable[object] | AsyncIterable[object],
) -> AsyncIterator[object]:
    if isinstance(sources, AsyncIterable):
        async for entry in sources:
            yield await _resolve_entry(entry)
    else:
        for entry in sources:
            yield await _resolve_entry(entry)


async def _resolve_entry(entry: object) -> object:
    while inspect.isawaitable(entry):
        entry = await entry
    return entry


__all__ = [
    "AnalyzerError",
    "AnalyzerEvent",
    "AnalyzerResult",
    "AnalyzerStreamError",
    "CombinedEvent",
    "CompleteEvent",
    "LabelsEvent",
    "MetricsEvent",
    "NormalizedEvent",
    "PROMPT_MISSING_LABEL",
    "PromptEvent",
    "RequirementsEvent",
    "RunBuiltEvent",
    "UnsupportedLogSourceError",
    "analyze",
    "analyze_async",
    "analyze_stream",
    "analyze_stream_async",
]
