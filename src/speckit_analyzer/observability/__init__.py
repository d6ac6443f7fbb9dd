"""Public observability primitives: structured logging and run correlation."""

from speckit_analyzer.observability.logging import (
    configure_logging,
    get_logger,
    parse_log_level,
    run_log_scope,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "parse_log_level",
    "run_log_scope",
]
