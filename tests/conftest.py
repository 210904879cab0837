"""Pytest configuration and fixtures shared across all test modules.

Environment is set before any import that might load settings so tests
never pick up a developer's .env file or a real Redis.
"""

import os

os.environ["APP_ENV"] = "testing"
os.environ.pop("REDIS_URL", None)
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest

from windowlimit.adapters.store.in_memory import InMemoryCounterStore


class FakeTime:
    """Deterministic clock used to test window expiry."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def store(fake_time: FakeTime) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=fake_time.time)
