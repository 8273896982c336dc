"""
Shared fixtures
"""

import pytest
from datetime import datetime, timedelta, timezone


class SteppingClock:
    """Deterministic clock that advances one second per call"""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.current += timedelta(seconds=1)
        return self.current


class FrozenClock:
    """Clock that always returns the same instant"""

    def __init__(self, instant=None):
        self.instant = instant or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.instant


@pytest.fixture
def stepping_clock():
    return SteppingClock()


@pytest.fixture
def frozen_clock():
    return FrozenClock()
