"""Configuration: settings schema, layered loader, and experiment assignments."""

from speckit_analyzer.config.experiments import (
    ExperimentAssignment,
    ExperimentConfigError,
    load_experiment_assignments,
)
from speckit_analyzer.config.loader import (
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    load_config,
)
from speckit_analyzer.config.schema import (
    AnalyzerSettings,
    ConfigValidationError,
    ConfigValidationIssue,
    default_config,
    validate_config,
)

__all__ = [
    "AnalyzerSettings",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ENV_PREFIX",
    "ExperimentAssignment",
    "ExperimentConfigError",
    "default_config",
    "dump_effective_config",
    "load_config",
    "load_experiment_assignments",
    "validate_config",
]
