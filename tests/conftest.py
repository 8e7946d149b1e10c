"""
Shared pytest fixtures for spotcheck tests.

This module provides:
- In-memory key-value stores and a store that always fails
- A controllable clock for breaker and cache timing
- A recording sleep so retry tests never wait
- A fully wired container backed by memory

Usage:
    def test_something(memory_store, fake_clock):
        cache = OfflineCache(memory_store, clock=fake_clock)
        ...
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from spotcheck.core.container import SpotcheckContainer
from spotcheck.core.logging import configure_logging
from spotcheck.core.settings import SpotcheckSettings, clear_settings_cache
from spotcheck.core.storage import InMemoryKeyValueStore


@pytest.fixture(scope="session", autouse=True)
def _quiet_logging() -> None:
    """Configure structlog once so no test sees the unconfigured stdout logger."""
    configure_logging(level="WARNING", json_format=False)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Time
# =============================================================================


class FakeClock:
    """Manually advanced clock; call it to read the time."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


# =============================================================================
# Storage
# =============================================================================


class BrokenStore:
    """Store whose every call raises, for non-fatal persistence tests."""

    def get(self, key: str) -> str | None:
        raise OSError("store unavailable")

    def put(self, key: str, value: str) -> None:
        raise OSError("store unavailable")

    def delete(self, key: str) -> None:
        raise OSError("store unavailable")


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def broken_store() -> BrokenStore:
    return BrokenStore()


# =============================================================================
# Settings / container
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings_cache() -> Generator[None, None, None]:
    """No test sees settings cached by another."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings(tmp_path: Path) -> SpotcheckSettings:
    return SpotcheckSettings(data_dir=tmp_path, retry_base_delay=0.0, retry_max_delay=0.0)


@pytest.fixture
def container(settings, memory_store) -> Generator[SpotcheckContainer, None, None]:
    with SpotcheckContainer(settings, store=memory_store) as c:
        yield c
