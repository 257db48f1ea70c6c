"""Pytest configuration and shared fixtures"""
import sys
from pathlib import Path

import pytest

# Flat layout: make the project root importable
sys.path.append(str(Path(__file__).parent.parent))

from player_sync.state import StateStore
from player_sync.timer import Timer
from player_sync.reconciler import ProgressReconciler


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timer(clock):
    return Timer(clock=clock)


@pytest.fixture
def store():
    return StateStore()


@pytest.fixture
def reconciler(timer, store):
    return ProgressReconciler(timer, store, compensation_ms=140)
