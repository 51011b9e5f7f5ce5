"""Global pytest configuration and fixtures.

Provides a controllable millisecond clock shared by the cache tests.
"""

from __future__ import annotations

import pytest


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now

    def set(self, now: int) -> None:
        self.now = now


@pytest.fixture
def clock() -> FakeClock:
    """Clock starting at t=0."""
    return FakeClock()
