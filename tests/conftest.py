"""
Shared test fixtures for the companion-core test suite.

Time is always controlled: a FakeClock stands in for datetime.now and a
FakeScheduler runs debounce timers only when a test advances it.
"""

import pytest
from datetime import datetime, timedelta

from companion_core.errors import StorageError
from companion_core.state import create_initial_state
from companion_core.storage import PetStore


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

T0 = datetime(2024, 3, 1, 9, 0, 0)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.current += timedelta(seconds=seconds, **kwargs)
        return self.current


class _Handle:
    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Virtual-time scheduler: callbacks fire inside advance()."""

    def __init__(self):
        self.time = 0.0
        self.handles = []

    def call_later(self, delay, callback):
        handle = _Handle(self.time + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def armed(self):
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds: float):
        self.time += seconds
        due = sorted(
            (h for h in self.handles if not h.cancelled and h.due <= self.time),
            key=lambda h: h.due,
        )
        for handle in due:
            self.handles.remove(handle)
            handle.callback()

    def fire_all(self):
        """Run every callback, cancelled or not (simulates a late timer)."""
        handles, self.handles = self.handles, []
        for handle in handles:
            handle.callback()


class RecordingStorage:
    """In-memory snapshot storage that records every write and can fail on demand."""

    def __init__(self):
        self.writes = []
        self.row = {}
        self.fail = False

    def write_snapshot(self, changes):
        if self.fail:
            raise StorageError("disk full")
        self.writes.append(dict(changes))
        self.row.update(changes)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def storage():
    return RecordingStorage()


# ---------------------------------------------------------------------------
# State and SQLite
# ---------------------------------------------------------------------------

@pytest.fixture
def initial_state():
    """Fresh companion: mood 100, energy 100, affinity 20."""
    return create_initial_state(T0)


@pytest.fixture
def store(tmp_path):
    """PetStore with an isolated database file."""
    s = PetStore(str(tmp_path / "companion.db"))
    yield s
    s.close()
