"""
Pet State - the creature's condition as immutable values.

Three disjoint records:
- attributes: mood, energy, affinity (0-100) plus currency, experience and
  the interaction counter
- timestamps: when the last interaction and the last decay happened
- presentation: what the face shows (emotion); never read by attribute math

Every record is a frozen dataclass. Changes produce new instances via
dataclasses.replace(), so a snapshot handed to a caller can never be mutated
behind the engine's back.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

ATTRIBUTE_MIN = 0.0
ATTRIBUTE_MAX = 100.0

DEFAULT_MOOD = 100.0
DEFAULT_ENERGY = 100.0
DEFAULT_AFFINITY = 20.0
DEFAULT_EMOTION = "neutral"


def clamp(value: float, low: float = ATTRIBUTE_MIN, high: float = ATTRIBUTE_MAX) -> float:
    """Range enforcement for every numeric attribute write."""
    return max(low, min(high, value))


def clamp_count(value: float) -> int:
    """Counters (currency, experience, interactions) are whole and non-negative."""
    return int(clamp(value, 0, math.inf))


@dataclass(frozen=True)
class AttributeState:
    """Numeric condition of the creature."""

    created_at: datetime  # Set once at first launch, never changes

    mood: float = DEFAULT_MOOD          # [0, 100]
    energy: float = DEFAULT_ENERGY      # [0, 100]
    affinity: float = DEFAULT_AFFINITY  # [0, 100] - a.k.a. intimacy, drives growth stage

    currency: int = 0
    experience: int = 0
    total_interactions: int = 0

    def to_dict(self) -> dict:
        return {
            "created_at": self.created_at.isoformat(),
            "mood": self.mood,
            "energy": self.energy,
            "affinity": self.affinity,
            "currency": self.currency,
            "experience": self.experience,
            "total_interactions": self.total_interactions,
        }


@dataclass(frozen=True)
class Timestamps:
    """Clock marks used by the cooldown and decay policies."""

    last_interaction_at: datetime
    last_decay_applied_at: datetime  # Only moves forward, and only when decay applies

    def to_dict(self) -> dict:
        return {
            "last_interaction_at": self.last_interaction_at.isoformat(),
            "last_decay_applied_at": self.last_decay_applied_at.isoformat(),
        }


@dataclass(frozen=True)
class PresentationState:
    """Presentation-facing fields. Never read by attribute math."""

    emotion: str = DEFAULT_EMOTION

    def to_dict(self) -> dict:
        return {"emotion": self.emotion}


@dataclass(frozen=True)
class PetState:
    """Complete snapshot of the creature."""

    attributes: AttributeState
    timestamps: Timestamps
    presentation: PresentationState = field(default_factory=PresentationState)

    def to_dict(self) -> dict:
        return {
            "attributes": self.attributes.to_dict(),
            "timestamps": self.timestamps.to_dict(),
            "presentation": self.presentation.to_dict(),
        }


def normalize_state(state: PetState) -> PetState:
    """Force every numeric field back into range (used on load)."""
    attrs = state.attributes
    normalized = replace(
        attrs,
        mood=clamp(attrs.mood),
        energy=clamp(attrs.energy),
        affinity=clamp(attrs.affinity),
        currency=clamp_count(attrs.currency),
        experience=clamp_count(attrs.experience),
        total_interactions=clamp_count(attrs.total_interactions),
    )
    if normalized == attrs:
        return state
    return replace(state, attributes=normalized)


def create_initial_state(now: Optional[datetime] = None) -> PetState:
    """
    First-launch state.

    Args:
        now: Creation time. Defaults to the wall clock.
    """
    if now is None:
        now = datetime.now()
    return PetState(
        attributes=AttributeState(created_at=now),
        timestamps=Timestamps(last_interaction_at=now, last_decay_applied_at=now),
    )
