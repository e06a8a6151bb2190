"""
Shared test fixtures for ShellSight tests.
"""

import pytest

from shellsight.server.storage import MemoryObjectStore, RecordingLibrary


class FakeTimer:
    def __init__(self, when: float, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Manual clock with asyncio's call_later interface."""

    def __init__(self):
        self.now = 0.0
        self.delays = []
        self._timers = []

    def call_later(self, delay, callback):
        timer = FakeTimer(self.now + delay, callback)
        self._timers.append(timer)
        self.delays.append(delay)
        return timer

    @property
    def pending(self):
        return [t for t in self._timers if not t.cancelled]

    def _pop_next(self, until=None):
        due = [t for t in self.pending if until is None or t.when <= until]
        if not due:
            return None
        timer = min(due, key=lambda t: t.when)
        self._timers.remove(timer)
        return timer

    def advance(self, seconds: float):
        target = self.now + seconds
        while True:
            timer = self._pop_next(until=target)
            if timer is None:
                break
            self.now = timer.when
            timer.callback()
        self.now = target

    def run_all(self):
        while True:
            timer = self._pop_next()
            if timer is None:
                break
            self.now = timer.when
            timer.callback()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def messages():
    """Collects everything a replay session emits."""
    return []


@pytest.fixture
def sample_timing():
    return "0.175395 112\n6.807959 1\n1.083220 4"


@pytest.fixture
def sample_typescript():
    return b"Script started on 2024-01-01 10:00:00+00:00\n$ echo hi\r\nhi\r\n$ exit\r\n"


@pytest.fixture
def memory_store(sample_typescript):
    """Store with two complete recordings and one missing its typescript."""
    store = MemoryObjectStore()
    store.put_object("SSNREC/deploy_1700000000/timing", b"0.5 10\n0.5 11\n")
    store.put_object("SSNREC/deploy_1700000000/typescript", sample_typescript)
    store.put_object("SSNREC/build_1700003600/timing", b"1.0 5\n")
    store.put_object("SSNREC/build_1700003600/typescript", b"hello")
    store.put_object("SSNREC/broken_1700007200/timing", b"1.0 5\n")
    return store


@pytest.fixture
def library(memory_store):
    return RecordingLibrary(memory_store, prefix="SSNREC", bucket="test-bucket")
