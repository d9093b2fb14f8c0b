"""Shared pytest configuration and fixtures."""

import logging
from typing import Iterator

import pytest

from knowledge_rag.scheduler import RateLimitedScheduler


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests that run against a real backend")


@pytest.fixture(autouse=True)
def _quiet_third_party_logs() -> None:
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@pytest.fixture()
def scheduler() -> Iterator[RateLimitedScheduler]:
    """Scheduler without start spacing, shut down after the test."""
    sched = RateLimitedScheduler.unlimited(max_concurrent=4)
    yield sched
    sched.shutdown()
