"""
Tests for storage.store - SQLite pet status, history counters, achievements.

Run with: pytest tests/test_store.py -v
"""

import sqlite3
from datetime import date, datetime, timedelta

import pytest

from companion_core.achievements import ACHIEVEMENT_CATALOG
from companion_core.errors import StorageError
from companion_core.persistence import snapshot_changes
from companion_core.storage import PetStore

from conftest import T0


class TestPetStatus:

    def test_first_launch_has_no_snapshot(self, store):
        assert store.load_snapshot() is None

    def test_create_and_load(self, store, initial_state):
        store.create_snapshot(initial_state)
        assert store.load_snapshot() == initial_state

    def test_partial_write(self, store, initial_state):
        store.create_snapshot(initial_state)
        later = T0 + timedelta(hours=1)
        store.write_snapshot({"mood": 42.5, "last_decay_applied_at": later, "emotion": "sleepy"})

        loaded = store.load_snapshot()
        assert loaded.attributes.mood == 42.5
        assert loaded.attributes.energy == 100
        assert loaded.timestamps.last_decay_applied_at == later
        assert loaded.presentation.emotion == "sleepy"
        assert loaded.attributes.created_at == T0

    def test_write_is_idempotent(self, store, initial_state):
        store.create_snapshot(initial_state)
        changes = {"affinity": 55, "total_interactions": 3}
        store.write_snapshot(changes)
        first = store.load_snapshot()
        store.write_snapshot(changes)
        assert store.load_snapshot() == first

    def test_full_snapshot_round_trip(self, store, initial_state):
        store.create_snapshot(initial_state)
        store.write_snapshot(snapshot_changes(initial_state))
        assert store.load_snapshot() == initial_state

    def test_unknown_field_rejected(self, store, initial_state):
        store.create_snapshot(initial_state)
        with pytest.raises(StorageError, match="Unknown"):
            store.write_snapshot({"created_at": T0})
        with pytest.raises(StorageError):
            store.write_snapshot({"mood; DROP TABLE pet_status": 1})

    def test_write_without_row_fails(self, store):
        with pytest.raises(StorageError):
            store.write_snapshot({"mood": 10})

    def test_out_of_range_values_clamped_on_load(self, store, initial_state):
        store.create_snapshot(initial_state)
        store.write_snapshot({"mood": 250, "energy": -8})
        loaded = store.load_snapshot()
        assert loaded.attributes.mood == 100
        assert loaded.attributes.energy == 0

    def test_persists_across_connections(self, tmp_path, initial_state):
        path = str(tmp_path / "companion.db")
        first = PetStore(path)
        first.create_snapshot(initial_state)
        first.write_snapshot({"affinity": 77})
        first.close()

        second = PetStore(path)
        assert second.load_snapshot().attributes.affinity == 77
        second.close()

    def test_corrupt_row(self, store, initial_state):
        store.create_snapshot(initial_state)
        store.write_snapshot({"last_interaction_at": "not a date"})
        with pytest.raises(StorageError, match="Corrupt"):
            store.load_snapshot()

    def test_unopenable_database(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        bad = PetStore(str(blocker / "nested" / "companion.db"))
        with pytest.raises(StorageError):
            bad.load_snapshot()


class TestHistory:

    def test_interaction_counts(self, store):
        for kind in ("pet", "pet", "feed", "chat"):
            store.record_interaction(kind, T0, {"mood": 10})
        assert store.interaction_counts() == {"pet": 2, "feed": 1, "chat": 1}

    def test_deltas_stored(self, store):
        store.record_interaction("play", T0, {"mood": 12, "energy": -5, "affinity": 3})
        conn = sqlite3.connect(store.db_path)
        row = conn.execute(
            "SELECT mood_delta, energy_delta, affinity_delta FROM interaction_history"
        ).fetchone()
        conn.close()
        assert row == (12, -5, 3)

    def test_consecutive_days(self, store):
        today = date(2024, 3, 10)
        for days_ago in (0, 1, 2, 4):
            store.record_interaction("pet", datetime(2024, 3, 10, 8) - timedelta(days=days_ago))
        assert store.consecutive_days(today) == 3

    def test_streak_needs_today(self, store):
        store.record_interaction("pet", datetime(2024, 3, 9, 8))
        assert store.consecutive_days(date(2024, 3, 10)) == 0

    def test_total_days(self, store, initial_state):
        assert store.total_days(T0) == 0
        store.create_snapshot(initial_state)
        assert store.total_days(T0 + timedelta(hours=23)) == 0
        assert store.total_days(T0 + timedelta(days=7, hours=1)) == 7

    def test_counters(self, store, initial_state):
        store.create_snapshot(initial_state)
        now = T0 + timedelta(days=2)
        for kind in ("pet", "feed", "play", "chat", "chat"):
            store.record_interaction(kind, now)
        counters = store.counters(affinity=33, now=now)
        assert counters.pet_count == 1
        assert counters.chat_count == 2
        assert counters.total_interactions == 3  # Chats are not interactions
        assert counters.total_days == 2
        assert counters.consecutive_days == 1
        assert counters.intimacy == 33


class TestAchievementStorage:

    def test_seed_is_idempotent(self, store):
        assert store.seed_achievements(ACHIEVEMENT_CATALOG) == 20
        assert store.seed_achievements(ACHIEVEMENT_CATALOG) == 0
        assert [r.id for r in store.get_achievements()] == [d.id for d in ACHIEVEMENT_CATALOG]

    def test_unlock_once(self, store):
        store.seed_achievements(ACHIEVEMENT_CATALOG)
        assert store.unlock_achievement("first_pet", T0) is True
        assert store.unlock_achievement("first_pet", T0 + timedelta(days=1)) is False

        record = next(r for r in store.get_achievements() if r.id == "first_pet")
        assert record.unlocked_at == T0

    def test_reseed_keeps_unlock_state(self, store):
        store.seed_achievements(ACHIEVEMENT_CATALOG)
        store.unlock_achievement("pet_10", T0)
        store.seed_achievements(ACHIEVEMENT_CATALOG)
        record = next(r for r in store.get_achievements() if r.id == "pet_10")
        assert record.is_unlocked

    def test_unlock_unknown_id(self, store):
        store.seed_achievements(ACHIEVEMENT_CATALOG)
        assert store.unlock_achievement("does_not_exist", T0) is False

    def test_record_to_dict(self, store):
        store.seed_achievements(ACHIEVEMENT_CATALOG)
        d = store.get_achievements()[0].to_dict()
        assert d["id"] == "first_pet"
        assert d["category"] == "interaction"
        assert d["is_unlocked"] is False
        assert d["unlocked_at"] is None
