"""
Persistence Coordinator - batches state writes and flushes them.

Most changes (decay ticks, ordinary interactions) are debounced: they are
merged into a pending map and written once the state has been quiet for
debounce_seconds. Important changes (a stage upgrade, shutdown) are written
immediately, together with anything still pending.

Ordering rules:
- Later changes to a field overwrite earlier ones in the pending map.
- An immediate write cancels the debounce timer and absorbs the pending map,
  so a timer that fires late finds nothing to write.
- A failed write keeps its data pending. Anything that arrived meanwhile is
  newer and wins on merge. The next update or flush retries.

The timer comes from a Scheduler so tests can drive time by hand.
ThreadingScheduler runs callbacks on threading.Timer threads; all
coordinator state is guarded by one lock.
"""

import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from .errors import StorageError
from .state import PetState

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 5.0

# Everything that can change after creation
SNAPSHOT_FIELDS = (
    "mood",
    "energy",
    "affinity",
    "currency",
    "experience",
    "total_interactions",
    "emotion",
    "last_interaction_at",
    "last_decay_applied_at",
)


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callback once after a delay (seconds)."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable: ...


class ThreadingScheduler:
    """Scheduler backed by daemon threading.Timer threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class SnapshotStorage(Protocol):
    """What the coordinator writes to (implemented by storage.store.PetStore)."""

    def write_snapshot(self, changes: Mapping[str, Any]) -> None: ...


def snapshot_changes(state: PetState, previous: Optional[PetState] = None) -> Dict[str, Any]:
    """
    Field map for a state, excluding the immutable created_at.

    With `previous`, only fields whose value differs are included.
    """
    attrs = state.attributes
    fields = {
        "mood": attrs.mood,
        "energy": attrs.energy,
        "affinity": attrs.affinity,
        "currency": attrs.currency,
        "experience": attrs.experience,
        "total_interactions": attrs.total_interactions,
        "emotion": state.presentation.emotion,
        "last_interaction_at": state.timestamps.last_interaction_at,
        "last_decay_applied_at": state.timestamps.last_decay_applied_at,
    }
    if previous is None:
        return fields
    before = snapshot_changes(previous)
    return {name: value for name, value in fields.items() if before[name] != value}


class PersistenceCoordinator:
    """Debounced and immediate writes of partial state to storage."""

    def __init__(
        self,
        storage: SnapshotStorage,
        scheduler: Optional[Scheduler] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self._storage = storage
        self._scheduler = scheduler or ThreadingScheduler()
        self.debounce_seconds = debounce_seconds

        self._lock = threading.Lock()
        self._pending: Dict[str, Any] = {}
        self._handle: Optional[Cancellable] = None
        # Bumped whenever the armed timer is replaced or cancelled
        self._generation = 0
        self._writes = 0

        self.last_error: Optional[StorageError] = None

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._pending)

    def pending(self) -> Dict[str, Any]:
        """Copy of the changes not yet written."""
        with self._lock:
            return dict(self._pending)

    @property
    def write_count(self) -> int:
        """Successful storage writes so far."""
        return self._writes

    def update(self, changes: Mapping[str, Any]) -> None:
        """Merge changes into the pending map and restart the debounce timer."""
        if not changes:
            return
        with self._lock:
            self._pending.update(changes)
            self._cancel_timer_locked()
            generation = self._generation
            self._handle = self._scheduler.call_later(
                self.debounce_seconds,
                lambda: self._on_timer(generation),
            )

    def update_immediate(self, changes: Optional[Mapping[str, Any]] = None) -> None:
        """
        Write pending changes plus `changes` now.

        Raises:
            StorageError: Write failed; everything stays pending
        """
        with self._lock:
            self._cancel_timer_locked()
            if changes:
                self._pending.update(changes)
            if not self._pending:
                return
            self._write_locked()

    def flush(self) -> None:
        """Write whatever is pending now. Raises StorageError on failure."""
        self.update_immediate()

    def close(self) -> None:
        """Cancel the timer and write what is left (shutdown)."""
        self.flush()

    def _cancel_timer_locked(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._generation += 1

    def _write_locked(self) -> None:
        batch = self._pending
        self._pending = {}
        try:
            self._storage.write_snapshot(batch)
        except StorageError as e:
            batch.update(self._pending)
            self._pending = batch
            self.last_error = e
            raise
        self._writes += 1
        self.last_error = None

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._pending:
                # Superseded by a newer timer or absorbed by an immediate write
                return
            self._handle = None
            try:
                self._write_locked()
            except StorageError as e:
                logger.warning("Debounced write failed, keeping %d pending fields: %s",
                               len(self._pending), e)
