from datetime import datetime, timedelta, timezone

import pytest

from campus_heatmap.db.memory import InMemoryReportStore

START = datetime(2025, 1, 25, 18, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start=START):
        self.start = start
        self.now = start

    def __call__(self):
        return self.now

    def at(self, seconds):
        self.now = self.start + timedelta(seconds=seconds)
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)
        return self.now


class RecordingPublisher:
    def __init__(self):
        self.calls = []

    def replace(self, features):
        self.calls.append(list(features))

    @property
    def latest(self):
        return self.calls[-1] if self.calls else None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryReportStore(clock=clock)


@pytest.fixture
def publisher():
    return RecordingPublisher()
