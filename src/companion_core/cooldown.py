"""
Cooldown Policy - how long until each interaction is available again.

Advisory only. The engine never consults this; the calling layer does,
before it decides whether to dispatch an interaction.
"""

from datetime import datetime
from typing import AbstractSet, Dict, Mapping, Optional

from .interactions import (
    INTERACTION_PRIORITY,
    INTERACTION_TABLE,
    InteractionConfig,
    InteractionKind,
)
from .state import PetState

# Below these the recommendation addresses the need instead of defaulting to pet
LOW_ENERGY_THRESHOLD = 40.0
LOW_MOOD_THRESHOLD = 40.0


def remaining_cooldown(
    kind: InteractionKind,
    last_interaction_at: datetime,
    now: datetime,
    table: Mapping[InteractionKind, InteractionConfig] = INTERACTION_TABLE,
) -> float:
    """
    Seconds left before `kind` may be used again (never negative).

        remaining = max(0, cooldown_seconds - (now - last_interaction_at))

    Reaches exactly 0 at last_interaction_at + cooldown_seconds.
    Unknown kinds have no cooldown.
    """
    config = table.get(kind)
    if config is None:
        return 0.0
    elapsed = (now - last_interaction_at).total_seconds()
    return max(0.0, config.cooldown_seconds - elapsed)


def is_available(
    kind: InteractionKind,
    last_interaction_at: datetime,
    now: datetime,
    table: Mapping[InteractionKind, InteractionConfig] = INTERACTION_TABLE,
) -> bool:
    return remaining_cooldown(kind, last_interaction_at, now, table) == 0


def all_cooldowns(
    last_interaction_at: datetime,
    now: datetime,
    table: Mapping[InteractionKind, InteractionConfig] = INTERACTION_TABLE,
) -> Dict[InteractionKind, float]:
    """Remaining seconds for every kind in the table."""
    return {
        kind: remaining_cooldown(kind, last_interaction_at, now, table)
        for kind in table
    }


def recommend_interaction(
    state: PetState,
    now: datetime,
    table: Mapping[InteractionKind, InteractionConfig] = INTERACTION_TABLE,
    available: Optional[AbstractSet[InteractionKind]] = None,
) -> Optional[InteractionKind]:
    """
    Pick the interaction that helps most right now.

    Low energy -> feed, low mood -> play, otherwise the lightest available
    kind in priority order (pet > feed > play). None if everything is
    cooling down.

    `available` overrides the cooldown check with an explicit set of kinds.
    """
    last = state.timestamps.last_interaction_at
    if available is None:
        available = [
            kind for kind in INTERACTION_PRIORITY
            if kind in table and is_available(kind, last, now, table)
        ]
    else:
        available = [kind for kind in INTERACTION_PRIORITY if kind in table and kind in available]
    if not available:
        return None

    attrs = state.attributes
    if attrs.energy < LOW_ENERGY_THRESHOLD and InteractionKind.FEED in available:
        return InteractionKind.FEED
    if attrs.mood < LOW_MOOD_THRESHOLD and InteractionKind.PLAY in available:
        return InteractionKind.PLAY
    return available[0]
