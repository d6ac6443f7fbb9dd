"""
speckit-analyzer — run forensics for coding-agent logs.

File: src/speckit_analyzer/__init__.py

Purpose
- Package root. Normalizes agent logs into a run record, derives requirements
  from the detected prompt, scores the run, labels failures, and keeps a
  cross-run memo history.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
