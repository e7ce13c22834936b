"""Shared fixtures: a deterministic clock and an in-memory note store."""

import pytest

from glyph.store import open_store

# 2024-03-05 12:00:00 UTC
START_MS = 1_709_640_000_000


class FakeClock:
    """Epoch-millisecond clock that moves forward one second per reading."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        self.now += 1000
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    store = open_store(":memory:", clock=clock)
    yield store
    store.close()
