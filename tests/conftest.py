"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It pins the environment variables the package reads at import time.
"""

import os

# Set before any trafficjam import builds the module-level settings
os.environ["TRAFFICJAM_ENV"] = "testing"
os.environ.setdefault("TRAFFICJAM_STORE_BACKEND", "memory")

from typing import Any, Callable

import pytest

from trafficjam.adapters.store.in_memory import InMemoryLimitStore
from trafficjam.core.limit import Limit

PERIOD = 60 * 60


class FakeClock:
    """Deterministic clock returning UNIX seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds

    def ms(self) -> int:
        return int(self.current * 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryLimitStore:
    return InMemoryLimitStore(clock=clock)


@pytest.fixture
def make_limit(store: InMemoryLimitStore, clock: FakeClock) -> Callable[..., Limit]:
    """Build limits for action "test" / subject "user1" sharing one store."""

    def _make(max: Any = 3, period: Any = PERIOD, **kwargs: Any) -> Limit:
        kwargs.setdefault("store", store)
        kwargs.setdefault("clock", clock)
        action = kwargs.pop("action", "test")
        subject = kwargs.pop("subject", "user1")
        return Limit(action, subject, max, period, **kwargs)

    return _make


@pytest.fixture
def limit(make_limit: Callable[..., Limit]) -> Limit:
    return make_limit()
