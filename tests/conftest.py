"""Shared fixtures for metrictrack tests."""

import pytest

from metrictrack.metrics import MetricStore


class FakeClock:
    """Manually advanced millisecond clock."""
    
    def __init__(self, now: int = 1_000_000):
        self.now = now
    
    def __call__(self) -> int:
        return self.now
    
    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MetricStore(clock=clock)
