"""
Shared pytest fixtures and configuration for zeebe-testbed tests.

This module provides:
- Auto-marking of tests by location (unit / integration)
- Settings cache isolation
- A fake clock for wait-strategy and context tests
- The BPMN resource used by deploy tests

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments:

    def test_timeout(fake_clock):
        strategy = LogMarkerWaitStrategy(cond, clock=fake_clock, sleep=fake_clock.sleep)
"""

from pathlib import Path
from typing import Generator

import pytest

TESTDATA = Path(__file__).parent / "testdata"


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "docker"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings_cache() -> Generator[None, None, None]:
    """Drop cached settings so env overrides in one test don't leak."""
    from zeebe_testbed.core.settings import clear_settings_cache

    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Fakes
# =============================================================================


class FakeClock:
    """Monotonic clock that only moves when slept on."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service_task_bpmn() -> Path:
    return TESTDATA / "service_task.bpmn"
