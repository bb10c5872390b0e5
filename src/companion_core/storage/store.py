"""
Pet Store - SQLite persistence for the companion.

The companion remembers:
- Its current condition (one row, overwritten field by field)
- Every interaction, for achievement counters and streaks
- Which achievements it has unlocked, and when
"""

import logging
import math
import sqlite3
import threading
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..achievements import AchievementCategory, AchievementCounters, AchievementDefinition, AchievementRecord
from ..errors import StorageError
from ..persistence import SNAPSHOT_FIELDS
from ..state import AttributeState, PetState, PresentationState, Timestamps, normalize_state

logger = logging.getLogger(__name__)

# created_at is written once, by create_snapshot()
SNAPSHOT_COLUMNS = SNAPSHOT_FIELDS

_DATETIME_COLUMNS = {"created_at", "last_interaction_at", "last_decay_applied_at"}

CHAT_KIND = "chat"


def _to_db(column: str, value: Any) -> Any:
    if column in _DATETIME_COLUMNS and isinstance(value, datetime):
        return value.isoformat()
    return value


class PetStore:
    """SQLite-backed companion persistence."""

    def __init__(self, db_path: str = "companion.db"):
        self.db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        # Debounced flushes arrive on a timer thread
        self._lock = threading.Lock()

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                # check_same_thread=False: flushes run on the scheduler's timer thread.
                # Access is serialized by self._lock.
                self._conn = sqlite3.connect(self.db_path, timeout=5.0, check_same_thread=False)
                self._conn.row_factory = sqlite3.Row
                self._conn.execute("PRAGMA journal_mode=WAL")
                self._conn.execute("PRAGMA busy_timeout=5000")
                self._init_schema()
            except (sqlite3.Error, OSError) as e:
                self._conn = None
                raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        return self._conn

    def _init_schema(self):
        """Create tables if they don't exist."""
        conn = self._conn
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS pet_status (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                created_at TEXT NOT NULL,
                mood REAL NOT NULL,
                energy REAL NOT NULL,
                affinity REAL NOT NULL,
                currency INTEGER DEFAULT 0,
                experience INTEGER DEFAULT 0,
                total_interactions INTEGER DEFAULT 0,
                emotion TEXT DEFAULT 'neutral',
                last_interaction_at TEXT NOT NULL,
                last_decay_applied_at TEXT NOT NULL,
                updated_at TEXT
            );

            CREATE TABLE IF NOT EXISTS achievements (
                id TEXT PRIMARY KEY,
                category TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT,
                icon TEXT,
                unlock_condition TEXT NOT NULL,
                sort_order INTEGER DEFAULT 0,
                is_unlocked INTEGER DEFAULT 0,
                unlocked_at TEXT
            );

            CREATE TABLE IF NOT EXISTS interaction_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                kind TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                mood_delta REAL DEFAULT 0,
                energy_delta REAL DEFAULT 0,
                affinity_delta REAL DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_history_kind ON interaction_history(kind);
            CREATE INDEX IF NOT EXISTS idx_history_timestamp ON interaction_history(timestamp);
        """)
        conn.commit()

    # ------------------------------------------------------------------
    # Pet status
    # ------------------------------------------------------------------

    def load_snapshot(self) -> Optional[PetState]:
        """The saved state, or None on first launch. Values are clamped into range."""
        with self._lock:
            try:
                row = self._connect().execute("SELECT * FROM pet_status WHERE id = 1").fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Cannot load pet status: {e}") from e
        if row is None:
            return None

        try:
            state = PetState(
                attributes=AttributeState(
                    created_at=datetime.fromisoformat(row["created_at"]),
                    mood=row["mood"],
                    energy=row["energy"],
                    affinity=row["affinity"],
                    currency=row["currency"] or 0,
                    experience=row["experience"] or 0,
                    total_interactions=row["total_interactions"] or 0,
                ),
                timestamps=Timestamps(
                    last_interaction_at=datetime.fromisoformat(row["last_interaction_at"]),
                    last_decay_applied_at=datetime.fromisoformat(row["last_decay_applied_at"]),
                ),
                presentation=PresentationState(emotion=row["emotion"] or "neutral"),
            )
        except (TypeError, ValueError) as e:
            raise StorageError(f"Corrupt pet status row: {e}") from e
        return normalize_state(state)

    def create_snapshot(self, state: PetState) -> None:
        """Write the full state as the singleton row (first launch)."""
        attrs = state.attributes
        ts = state.timestamps
        with self._lock:
            try:
                conn = self._connect()
                conn.execute("""
                    INSERT OR REPLACE INTO pet_status
                    (id, created_at, mood, energy, affinity, currency, experience,
                     total_interactions, emotion, last_interaction_at, last_decay_applied_at, updated_at)
                    VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    attrs.created_at.isoformat(),
                    attrs.mood,
                    attrs.energy,
                    attrs.affinity,
                    attrs.currency,
                    attrs.experience,
                    attrs.total_interactions,
                    state.presentation.emotion,
                    ts.last_interaction_at.isoformat(),
                    ts.last_decay_applied_at.isoformat(),
                    datetime.now().isoformat(),
                ))
                conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Cannot create pet status: {e}") from e

    def write_snapshot(self, changes: Mapping[str, Any]) -> None:
        """
        Overwrite the given fields of the singleton row.

        Writing the same changes twice leaves the same row. Unknown field
        names are rejected rather than interpolated into SQL.

        Raises:
            StorageError: Unknown field, no row to update, or sqlite failure
        """
        if not changes:
            return
        unknown = sorted(set(changes) - set(SNAPSHOT_COLUMNS))
        if unknown:
            raise StorageError(f"Unknown pet status fields: {', '.join(unknown)}")

        columns = [c for c in SNAPSHOT_COLUMNS if c in changes]
        assignments = ", ".join(f"{c} = ?" for c in columns)
        values = [_to_db(c, changes[c]) for c in columns]
        values.append(datetime.now().isoformat())

        with self._lock:
            try:
                conn = self._connect()
                cursor = conn.execute(
                    f"UPDATE pet_status SET {assignments}, updated_at = ? WHERE id = 1",
                    values,
                )
                conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Cannot write pet status: {e}") from e
        if cursor.rowcount == 0:
            raise StorageError("No pet status row to update")

    # ------------------------------------------------------------------
    # Interaction history
    # ------------------------------------------------------------------

    def record_interaction(
        self,
        kind: str,
        at: datetime,
        effects: Optional[Mapping[str, float]] = None,
    ) -> None:
        """Append an interaction (or a chat, kind='chat') to the history."""
        effects = effects or {}
        with self._lock:
            try:
                conn = self._connect()
                conn.execute("""
                    INSERT INTO interaction_history
                    (kind, timestamp, mood_delta, energy_delta, affinity_delta)
                    VALUES (?, ?, ?, ?, ?)
                """, (
                    str(kind),
                    at.isoformat(),
                    effects.get("mood", 0),
                    effects.get("energy", 0),
                    effects.get("affinity", 0),
                ))
                conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Cannot record interaction: {e}") from e

    def interaction_counts(self) -> Dict[str, int]:
        """Number of history entries per kind."""
        with self._lock:
            try:
                rows = self._connect().execute(
                    "SELECT kind, COUNT(*) AS n FROM interaction_history GROUP BY kind"
                ).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Cannot count interactions: {e}") from e
        return {row["kind"]: row["n"] for row in rows}

    def consecutive_days(self, today: date) -> int:
        """
        Days in a row, ending today, with at least one interaction.

        A day without interactions breaks the streak; no interaction today
        means a streak of 0.
        """
        with self._lock:
            try:
                rows = self._connect().execute(
                    "SELECT DISTINCT substr(timestamp, 1, 10) AS day FROM interaction_history"
                ).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Cannot read interaction days: {e}") from e

        days = set()
        for row in rows:
            try:
                days.add(date.fromisoformat(row["day"]))
            except ValueError:
                logger.warning("Skipping unreadable history date %r", row["day"])

        streak = 0
        day = today
        while day in days:
            streak += 1
            day -= timedelta(days=1)
        return streak

    def total_days(self, now: datetime) -> int:
        """Whole days since the companion was created (0 before first save)."""
        snapshot = self.load_snapshot()
        if snapshot is None:
            return 0
        elapsed = (now - snapshot.attributes.created_at).total_seconds()
        return max(0, math.floor(elapsed / 86400))

    def counters(self, affinity: float, now: datetime) -> AchievementCounters:
        """Snapshot of every number achievement conditions may mention."""
        counts = self.interaction_counts()
        pet = counts.get("pet", 0)
        feed = counts.get("feed", 0)
        play = counts.get("play", 0)
        return AchievementCounters(
            pet_count=pet,
            feed_count=feed,
            play_count=play,
            chat_count=counts.get(CHAT_KIND, 0),
            total_interactions=pet + feed + play,
            total_days=self.total_days(now),
            consecutive_days=self.consecutive_days(now.date()),
            intimacy=affinity,
        )

    # ------------------------------------------------------------------
    # Achievements
    # ------------------------------------------------------------------

    def seed_achievements(self, definitions: Sequence[AchievementDefinition]) -> int:
        """
        Insert catalog entries that are not stored yet.

        Text of existing entries is refreshed; unlock state is never touched.

        Returns:
            Number of new entries
        """
        added = 0
        with self._lock:
            try:
                conn = self._connect()
                for order, d in enumerate(definitions):
                    cursor = conn.execute("""
                        INSERT OR IGNORE INTO achievements
                        (id, category, name, description, icon, unlock_condition, sort_order)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                    """, (d.id, d.category.value, d.name, d.description, d.icon, d.unlock_condition, order))
                    if cursor.rowcount:
                        added += 1
                    else:
                        conn.execute("""
                            UPDATE achievements
                            SET category = ?, name = ?, description = ?, icon = ?,
                                unlock_condition = ?, sort_order = ?
                            WHERE id = ?
                        """, (d.category.value, d.name, d.description, d.icon, d.unlock_condition, order, d.id))
                conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Cannot seed achievements: {e}") from e
        return added

    def get_achievements(self) -> List[AchievementRecord]:
        """All stored achievements in catalog order."""
        with self._lock:
            try:
                rows = self._connect().execute(
                    "SELECT * FROM achievements ORDER BY sort_order, id"
                ).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Cannot read achievements: {e}") from e

        records = []
        for row in rows:
            try:
                category = AchievementCategory(row["category"])
            except ValueError:
                logger.warning("Achievement %s has unknown category %r", row["id"], row["category"])
                category = AchievementCategory.SPECIAL
            records.append(AchievementRecord(
                definition=AchievementDefinition(
                    id=row["id"],
                    category=category,
                    name=row["name"],
                    description=row["description"] or "",
                    unlock_condition=row["unlock_condition"],
                    icon=row["icon"] or "",
                ),
                is_unlocked=bool(row["is_unlocked"]),
                unlocked_at=datetime.fromisoformat(row["unlocked_at"]) if row["unlocked_at"] else None,
            ))
        return records

    def unlock_achievement(self, achievement_id: str, at: datetime) -> bool:
        """
        Mark an achievement unlocked.

        Returns:
            True if it was locked before this call
        """
        with self._lock:
            try:
                conn = self._connect()
                cursor = conn.execute(
                    "UPDATE achievements SET is_unlocked = 1, unlocked_at = ? "
                    "WHERE id = ? AND is_unlocked = 0",
                    (at.isoformat(), achievement_id),
                )
                conn.commit()
            except sqlite3.Error as e:
                raise StorageError(f"Cannot unlock achievement {achievement_id}: {e}") from e
        return cursor.rowcount == 1

    def close(self):
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
