"""
Interaction table - the one place interaction effects are defined.

Cooldown and deltas for each kind live here and nowhere else. The engine,
the cooldown policy and the service all read this table.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

# Bump when any number below changes
INTERACTION_TABLE_VERSION = 1


class InteractionKind(str, Enum):
    """What the user did to the creature."""
    PET = "pet"    # Tap on the head
    FEED = "feed"  # Tap on the body
    PLAY = "play"  # Tap on the lower body

    @classmethod
    def parse(cls, value: str) -> Optional["InteractionKind"]:
        """Lenient lookup for strings from the UI. None when unknown."""
        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError):
            return None


@dataclass(frozen=True)
class InteractionConfig:
    """Effect of a single interaction kind."""
    cooldown_seconds: float
    mood_delta: float
    energy_delta: float
    affinity_delta: float

    # Presentation hints for the UI; never touch attribute math
    animation: str = ""
    voice_responses: Tuple[str, ...] = field(default_factory=tuple)

    def effects(self) -> Dict[str, float]:
        return {
            "mood": self.mood_delta,
            "energy": self.energy_delta,
            "affinity": self.affinity_delta,
        }


INTERACTION_TABLE: Mapping[InteractionKind, InteractionConfig] = {
    InteractionKind.PET: InteractionConfig(
        cooldown_seconds=60,
        mood_delta=10,
        energy_delta=0,
        affinity_delta=2,
        animation="tap_head",
        voice_responses=("So comfy~", "Mm-hm~", "Pet me again~"),
    ),
    InteractionKind.FEED: InteractionConfig(
        cooldown_seconds=120,
        mood_delta=8,
        energy_delta=15,
        affinity_delta=1,
        animation="eat",
        voice_responses=("Yummy!", "Thank you~", "More please~"),
    ),
    InteractionKind.PLAY: InteractionConfig(
        cooldown_seconds=90,
        mood_delta=12,
        energy_delta=-5,
        affinity_delta=3,
        animation="happy",
        voice_responses=("So much fun!", "Haha~", "Again!"),
    ),
}

# Lightest first: used to break recommendation ties
INTERACTION_PRIORITY: Tuple[InteractionKind, ...] = (
    InteractionKind.PET,
    InteractionKind.FEED,
    InteractionKind.PLAY,
)


def get_interaction_config(
    kind: InteractionKind,
    table: Mapping[InteractionKind, InteractionConfig] = INTERACTION_TABLE,
) -> Optional[InteractionConfig]:
    """Config for a kind, or None if the table has no entry."""
    return table.get(kind)
