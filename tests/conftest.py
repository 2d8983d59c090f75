"""Global pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from revcache.store.memory import InMemoryKeyValueStore
from tests.fakes import FakeClock


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: tests that need a Redis container")


@pytest.fixture
def clock() -> FakeClock:
    """Create a fake clock."""
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemoryKeyValueStore:
    """Create an in-memory store on the fake clock."""
    return InMemoryKeyValueStore(bucket="test", clock=clock)
