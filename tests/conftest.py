"""Shared fixtures for the test suite."""

from collections.abc import Iterator

import pytest

from xgate.http.metrics import HttpMetrics


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    """Give every test a fresh metrics singleton."""
    HttpMetrics.reset()
    yield
    HttpMetrics.reset()
