"""SQLite persistence for the companion."""

from .store import PetStore, SNAPSHOT_COLUMNS

__all__ = ["PetStore", "SNAPSHOT_COLUMNS"]
