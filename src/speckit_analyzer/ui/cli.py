"""Command-line interface router for speckit-analyze."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from speckit_analyzer.analysis import (
    AnalyzerContext,
    AnalyzerError,
    AnalyzerResult,
    analyze_stream,
    load_failure_rules,
    summarize_metrics,
)
from speckit_analyzer.analysis.pipeline import (
    AnalyzerEvent,
    AnalyzerStreamError,
    CombinedEvent,
    CompleteEvent,
    LabelsEvent,
    MetricsEvent,
    NormalizedEvent,
    PromptEvent,
    RequirementsEvent,
    RunBuiltEvent,
)
from speckit_analyzer.artifacts import WrittenArtifacts, write_artifacts
from speckit_analyzer.config import (
    AnalyzerSettings,
    ConfigLoadError,
    ConfigValidationError,
    ExperimentAssignment,
    ExperimentConfigError,
    dump_effective_config,
    load_config,
    load_experiment_assignments,
)
from speckit_analyzer.constants import MEMO_HISTORY_FILE
from speckit_analyzer.domain.timestamps import utc_now
from speckit_analyzer.ingestion import (
    PROVIDER_ADAPTERS,
    EventsLogSource,
    LogFormat,
    RawLogSource,
    create_file_log_source,
    provider_events,
)
from speckit_analyzer.ingestion.combiner import default_run_id
from speckit_analyzer.knowledge import (
    label_records_from_history,
    read_memo_history,
    render_trend_report,
)
from speckit_analyzer.knowledge.trends import (
    DEFAULT_SPARKLINE_LENGTH,
    DEFAULT_TREND_LIMIT,
    DEFAULT_TREND_WINDOW,
)
from speckit_analyzer.observability import configure_logging, get_logger, run_log_scope
from speckit_analyzer.ui.render import CLIRenderer, create_renderer
from speckit_analyzer.utils.fs import atomic_write

EXIT_ANALYSIS_ERROR: Final[int] = 1
EXIT_CONFIG_ERROR: Final[int] = 2

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = EXIT_ANALYSIS_ERROR

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="speckit-analyze",
        description=(
            "speckit-analyzer — run forensics for coding-agent logs.\n\n"
            "Common workflows:\n"
            "  speckit-analyze run logs/agent.ndjson     Analyze logs and write artifacts\n"
            "  speckit-analyze trends                    Print the label trend report\n"
            "  speckit-analyze config                    Show effective settings\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to speckit TOML config (default: ./speckit.toml if present).",
    )
    common.add_argument(
        "--log-level",
        default=None,
        help="Override observability.log_level (DEBUG, INFO, WARNING, ERROR).",
    )
    common.add_argument(
        "--log-json",
        action="store_true",
        default=None,
        help="Emit structured logs as JSON lines on stderr.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Narrate each analysis stage.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Analyze one or more agent logs and write artifacts",
        description=(
            "Normalize the given logs, derive requirements, compute metrics and failure\n"
            "labels, then write Run.json, requirements.jsonl, memo.json, memo-history.jsonl,\n"
            "verification.yaml, metrics.json, and summary.md.\n\n"
            "Examples:\n"
            "  speckit-analyze run runs/latest.ndjson\n"
            "  speckit-analyze run chat.json --provider openai --run-id run-42\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument("logs", nargs="+", help="Log files to analyze, in order")
    run_parser.add_argument("--run-id", default=None, help="Explicit run id (default: run-<ms>)")
    run_parser.add_argument("--out", default=None, help="Artifact directory (overrides config)")
    run_parser.add_argument(
        "--rules",
        default=None,
        help="Failure rules YAML (default: <out_dir>/failure-rules.yaml)",
    )
    run_parser.add_argument(
        "--prompt", default=None, help="Use this prompt instead of detecting one"
    )
    run_parser.add_argument(
        "--format",
        dest="log_format",
        choices=[str(item) for item in LogFormat],
        default=str(LogFormat.AUTO),
        help="Log encoding hint (default: auto)",
    )
    run_parser.add_argument(
        "--provider",
        choices=sorted(PROVIDER_ADAPTERS),
        default=None,
        help="Treat each log as a provider JSON transcript and convert it to events",
    )
    run_parser.add_argument(
        "--seed",
        default=None,
        help="Experiment assignment seed (default: the run id)",
    )
    run_parser.add_argument(
        "--experiments-root",
        default=".",
        help="Directory holding speckit.experiments.yaml (default: current directory)",
    )
    run_parser.add_argument("--json", action="store_true", help="Emit deterministic JSON output")
    run_parser.set_defaults(handler=_cmd_run)

    # trends --------------------------------------------------------------
    trends_parser = subparsers.add_parser(
        "trends",
        parents=[common],
        help="Render label trends from the memo history",
    )
    trends_parser.add_argument(
        "--history",
        default=None,
        help="memo-history.jsonl path (default: <out_dir>/memo-history.jsonl)",
    )
    trends_parser.add_argument(
        "--window", type=int, default=DEFAULT_TREND_WINDOW, help="Rolling average window in days"
    )
    trends_parser.add_argument(
        "--limit", type=int, default=DEFAULT_TREND_LIMIT, help="Maximum labels to list"
    )
    trends_parser.add_argument(
        "--length",
        type=int,
        default=DEFAULT_SPARKLINE_LENGTH,
        help="Sparkline length in days",
    )
    trends_parser.add_argument(
        "--output", default=None, help="Write the Markdown report here instead of stdout"
    )
    trends_parser.set_defaults(handler=_cmd_trends)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective settings after file, env, and CLI layering",
    )
    config_parser.add_argument("--json", action="store_true", help="Emit JSON output")
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    settings = _load_settings(
        args,
        {"artifacts.out_dir": args.out, "artifacts.rules_file": args.rules},
    )
    renderer = create_renderer(verbose=bool(args.verbose))
    now = utc_now()
    run_id = args.run_id or default_run_id(now)
    sources = [_load_source(path, args.log_format, args.provider) for path in args.logs]
    experiments = _load_experiments(Path(args.experiments_root), args.seed or run_id)
    experiment_payload = [assignment.to_dict() for assignment in experiments]
    rules = load_failure_rules(settings.rules_file)

    with run_log_scope(run_id):
        try:
            result = _drain(
                analyze_stream(
                    sources,
                    rules=rules,
                    run_id=run_id,
                    prompt=args.prompt,
                    metadata={"experiments": experiment_payload} if experiment_payload else None,
                    context=AnalyzerContext(logger=logger),
                ),
                renderer,
            )
        except AnalyzerError as exc:
            raise CLIError(str(exc), exit_code=EXIT_ANALYSIS_ERROR) from exc
        written = write_artifacts(
            settings.out_dir,
            result,
            experiments=experiment_payload,
            now=now,
            memo_ttl=settings.memo_ttl,
            promotion_min_count=settings.promotion_min_count,
            max_promoted=settings.max_promoted,
        )

    if args.json:
        _emit_json(_run_payload(result, written))
        return 0
    _render_run(renderer, result, written)
    return 0


def _cmd_trends(args: argparse.Namespace) -> int:
    settings = _load_settings(args, {})
    if args.window <= 0:
        raise CLIError("--window must be positive", exit_code=EXIT_CONFIG_ERROR)
    if args.limit <= 0 or args.length <= 0:
        raise CLIError("--limit and --length must be positive", exit_code=EXIT_CONFIG_ERROR)
    history_path = (
        Path(args.history) if args.history else Path(settings.out_dir) / MEMO_HISTORY_FILE
    )
    records = label_records_from_history(read_memo_history(history_path))
    report = render_trend_report(
        records, window=args.window, limit=args.limit, length=args.length
    )
    if args.output:
        atomic_write(args.output, report)
        logger.info("trend_report_written", path=str(args.output), days=len(records))
        return 0
    sys.stdout.write(report)
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    settings = _load_settings(args, {})
    if args.json:
        _emit_json({"command": "config", "config": settings.to_dict()})
        return 0
    create_renderer().text(dump_effective_config(settings))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(args: argparse.Namespace, overrides: Mapping[str, object]) -> AnalyzerSettings:
    cli_overrides: dict[str, object] = dict(overrides)
    cli_overrides["observability.log_level"] = args.log_level
    cli_overrides["observability.log_json"] = args.log_json
    try:
        settings = load_config(args.config_path, cli_overrides=cli_overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=EXIT_CONFIG_ERROR) from exc
    configure_logging(settings.log_level, json_output=settings.log_json)
    return settings


def _load_source(
    path: str, log_format: str, provider: str | None
) -> RawLogSource | EventsLogSource:
    try:
        source = create_file_log_source(path, log_format=log_format)
    except FileNotFoundError as exc:
        raise CLIError(f"log file not found: {path}", exit_code=EXIT_CONFIG_ERROR) from exc
    except OSError as exc:
        raise CLIError(
            f"unable to read log file {path}: {exc}", exit_code=EXIT_CONFIG_ERROR
        ) from exc
    if provider is None:
        return source
    try:
        document = json.loads(source.content)
    except json.JSONDecodeError as exc:
        raise CLIError(
            f"{path}: --provider {provider} expects a JSON document ({exc})",
            exit_code=EXIT_ANALYSIS_ERROR,
        ) from exc
    # Synthesized ids restart at 1 per transcript.
    events = provider_events(provider, document, id_prefix=f"{path}-provider")
    return EventsLogSource(events=events, id=path)


def _load_experiments(root: Path, seed: str) -> list[ExperimentAssignment]:
    try:
        return load_experiment_assignments(root, seed)
    except ExperimentConfigError as exc:
        raise CLIError(str(exc), exit_code=EXIT_CONFIG_ERROR) from exc


def _drain(events: Iterable[AnalyzerEvent], renderer: CLIRenderer) -> AnalyzerResult:
    final: AnalyzerResult | None = None
    for event in events:
        if renderer.verbose:
            renderer.text(f"[{event.type}] {_describe_event(event)}")
        if isinstance(event, CompleteEvent):
            final = event.result
    if final is None:
        raise AnalyzerStreamError()
    return final


def _describe_event(event: AnalyzerEvent) -> str:
    if isinstance(event, NormalizedEvent):
        return f"{event.source}: {len(event.normalized.events)} events"
    if isinstance(event, CombinedEvent):
        return f"{len(event.normalized.events)} events combined"
    if isinstance(event, RunBuiltEvent):
        return event.run.run_id
    if isinstance(event, PromptEvent):
        return f"{len(event.prompt)} chars"
    if isinstance(event, RequirementsEvent):
        return f"{len(event.requirements)} requirements"
    if isinstance(event, MetricsEvent):
        return f"coverage {event.metrics.req_coverage:.2f}"
    if isinstance(event, LabelsEvent):
        return ", ".join(event.labels) or "none"
    return "done"


def _run_payload(result: AnalyzerResult, written: WrittenArtifacts) -> dict[str, object]:
    return {
        "command": "run",
        "run_id": result.run.run_id,
        "events": len(result.run.events),
        "metrics": result.metrics.to_dict(),
        "labels": list(result.labels),
        "hints": list(result.hints),
        "requirements": [record.to_dict() for record in result.requirements],
        "promoted_lessons": list(written.memo_update.promoted_lessons),
        "promoted_guardrails": list(written.memo_update.promoted_guardrails),
        "sanitizer_hits": written.sanitizer_hits,
        "artifacts": [path.as_posix() for path in written.paths],
    }


def _render_run(renderer: CLIRenderer, result: AnalyzerResult, written: WrittenArtifacts) -> None:
    renderer.heading(f"Run {result.run.run_id}")
    renderer.kv("Events analyzed", len(result.run.events))
    renderer.kv("Artifacts", written.out_dir.as_posix())

    renderer.section("Metrics:")
    rows = summarize_metrics(
        result.metrics,
        sanitizer_hits=None if written.sanitizer_hits is None else int(written.sanitizer_hits),
    )
    renderer.table(
        ("Metric", "Value", "Target"),
        [
            (row.label, row.value, "—" if row.target is None else f"{row.target:g}")
            for row in rows
        ],
    )

    renderer.section("Requirements:")
    renderer.items(
        [f"{record.id} ({record.status}): {record.text}" for record in result.requirements]
    )

    renderer.section("Labels:")
    renderer.items(list(result.labels) or ["None"])
    if result.hints:
        renderer.section("Hints:")
        renderer.items(list(result.hints))

    promoted = (*written.memo_update.promoted_lessons, *written.memo_update.promoted_guardrails)
    if promoted:
        renderer.section("Promoted from history:")
        renderer.items(list(promoted))


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


__all__ = ["CLIError", "build_parser", "run_cli"]
