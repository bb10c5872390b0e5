"""
Events accepted by the transition engine.

Each variant is a small frozen dataclass. The engine matches on type; any
object it does not recognise is logged and leaves the state unchanged.
"""

from dataclasses import dataclass

from .interactions import InteractionKind


@dataclass(frozen=True)
class Event:
    """Base class for engine events."""

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class Interact(Event):
    """User interaction. Applies the kind's deltas; cooldown is not checked."""
    kind: InteractionKind


@dataclass(frozen=True)
class ApplyDecay(Event):
    """Apply time-based decay up to the engine clock's now."""
    pass


@dataclass(frozen=True)
class UpdateEmotion(Event):
    """Change the displayed emotion. Never touches attributes."""
    emotion: str


@dataclass(frozen=True)
class SetAffinity(Event):
    """Administrative override of affinity (clamped)."""
    value: float


@dataclass(frozen=True)
class GrantReward(Event):
    """Add currency and/or experience. Negative amounts grant nothing."""
    currency: int = 0
    experience: int = 0


@dataclass(frozen=True)
class SpendCurrency(Event):
    """Deduct currency if the creature can afford it."""
    amount: int
