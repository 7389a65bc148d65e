"""Pytest configuration for Swarm Factory tests."""

from datetime import datetime, timezone

import pytest

from swarm_factory.core.dates import MonotonicClock
from swarm_factory.core.repository import RunRepository
from swarm_factory.logging_config import setup_logging
from swarm_factory.store.file_store import FileStore

setup_logging()

FIXED_NOW = datetime(2026, 10, 19, 7, 37, 1, 123000, tzinfo=timezone.utc)


def pytest_collection_modifyitems(config, items):
    """Set per-marker timeouts: unit=1s, integration=5s."""
    for item in items:
        if "unit" in item.keywords:
            item.add_marker(pytest.mark.timeout(1))
        elif "integration" in item.keywords:
            item.add_marker(pytest.mark.timeout(5))


@pytest.fixture
def clock():
    """Frozen wall clock; every reading is 1ms after the previous one."""
    return MonotonicClock(now=lambda: FIXED_NOW)


@pytest.fixture
def store(tmp_path):
    return FileStore(tmp_path / "data")


@pytest.fixture
def repository(store):
    return RunRepository(store)
