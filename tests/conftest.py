"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import UTC, datetime
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from review_scheduler import (  # noqa: E402
    FixedClock,
    InMemoryProgressStore,
    Item,
    ReviewService,
    SqlProgressStore,
)

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (SQLite database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    """Clock frozen at NOW."""
    return FixedClock(NOW)


@pytest.fixture
def sample_pool():
    """Ten cards in one flashcard set."""
    return [
        Item(id=f"card-{i:02d}", pool_id="set-1", front=f"Question {i}", back=f"Answer {i}")
        for i in range(10)
    ]


@pytest.fixture
def memory_store(sample_pool):
    return InMemoryProgressStore(sample_pool)


@pytest.fixture
def sql_store(tmp_path, sample_pool):
    """SQLite-backed store in a temp directory."""
    store = SqlProgressStore(f"sqlite:///{tmp_path / 'progress.db'}")
    for item in sample_pool:
        store.add_item(item)
    yield store
    store.engine.dispose()


@pytest.fixture
def service(memory_store, clock):
    return ReviewService(memory_store, clock)
