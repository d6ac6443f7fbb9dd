"""Shared pytest fixtures for speckit-analyzer tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    # CLI commands configure structlog against the captured stderr of the running test.
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
