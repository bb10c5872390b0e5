"""
Decay Policy - mood and energy fade while nobody is around.

Loss is linear in elapsed hours but capped per application, so a process
that was suspended for days catches up by a bounded amount instead of
dropping straight to zero. Affinity never decays.
"""

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .state import PetState, clamp

# Below this much elapsed time decay is a no-op (avoids churn from rapid polling)
MIN_DECAY_HOURS = 0.1

SECONDS_PER_HOUR = 3600.0


@dataclass(frozen=True)
class DecayConfig:
    """Decay rates (points per hour) and per-application caps."""
    mood_per_hour: float = 2.0
    energy_per_hour: float = 1.5
    max_mood_decay_per_tick: float = 50.0
    max_energy_decay_per_tick: float = 40.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecayConfig":
        return cls(**data)

    def validate(self) -> Tuple[bool, Optional[str]]:
        """Rates and caps must be non-negative; caps must fit the attribute range."""
        for name, value in self.to_dict().items():
            if value < 0:
                return False, f"{name} must be >= 0"
        if self.max_mood_decay_per_tick > 100 or self.max_energy_decay_per_tick > 100:
            return False, "per-tick decay caps must be <= 100"
        return True, None


class Difficulty(str, Enum):
    EASY = "easy"
    NORMAL = "normal"
    HARD = "hard"


DECAY_PRESETS: Dict[Difficulty, DecayConfig] = {
    Difficulty.EASY: DecayConfig(
        mood_per_hour=1.0,
        energy_per_hour=0.75,
        max_mood_decay_per_tick=30.0,
        max_energy_decay_per_tick=25.0,
    ),
    Difficulty.NORMAL: DecayConfig(),
    Difficulty.HARD: DecayConfig(
        mood_per_hour=4.0,
        energy_per_hour=3.0,
        max_mood_decay_per_tick=60.0,
        max_energy_decay_per_tick=50.0,
    ),
}

DEFAULT_DECAY_CONFIG = DECAY_PRESETS[Difficulty.NORMAL]


def get_decay_config(difficulty: str = Difficulty.NORMAL.value) -> DecayConfig:
    """Preset for a difficulty name. Unknown names fall back to normal."""
    try:
        return DECAY_PRESETS[Difficulty(difficulty)]
    except ValueError:
        return DEFAULT_DECAY_CONFIG


def elapsed_hours(since: datetime, now: datetime) -> float:
    return (now - since).total_seconds() / SECONDS_PER_HOUR


def apply_decay(
    state: PetState,
    now: datetime,
    config: DecayConfig = DEFAULT_DECAY_CONFIG,
) -> PetState:
    """
    Apply time-based decay since last_decay_applied_at.

        mood_loss   = min(hours * mood_per_hour,   max_mood_decay_per_tick)
        energy_loss = min(hours * energy_per_hour, max_energy_decay_per_tick)

    Returns the same object when less than MIN_DECAY_HOURS has elapsed, so the
    decay clock is not reset without decaying. A clock that went backwards
    counts as zero elapsed time.
    """
    hours = elapsed_hours(state.timestamps.last_decay_applied_at, now)
    if hours < MIN_DECAY_HOURS:
        return state

    mood_loss = min(hours * config.mood_per_hour, config.max_mood_decay_per_tick)
    energy_loss = min(hours * config.energy_per_hour, config.max_energy_decay_per_tick)

    attrs = state.attributes
    return replace(
        state,
        attributes=replace(
            attrs,
            mood=clamp(attrs.mood - mood_loss),
            energy=clamp(attrs.energy - energy_loss),
        ),
        timestamps=replace(state.timestamps, last_decay_applied_at=now),
    )


# ---------------------------------------------------------------------------
# Attribute levels (for status display and care prompts)
# ---------------------------------------------------------------------------

class AttributeLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


LEVEL_HIGH_THRESHOLD = 70.0
LEVEL_MEDIUM_THRESHOLD = 40.0

# Below warning the creature asks for care; below critical it is urgent
DECAY_THRESHOLDS = {
    "mood": {"warning": 30.0, "critical": 15.0},
    "energy": {"warning": 25.0, "critical": 10.0},
}


def attribute_level(value: float) -> AttributeLevel:
    if value >= LEVEL_HIGH_THRESHOLD:
        return AttributeLevel.HIGH
    if value >= LEVEL_MEDIUM_THRESHOLD:
        return AttributeLevel.MEDIUM
    return AttributeLevel.LOW


def needs_attention(state: PetState) -> List[Tuple[str, str]]:
    """
    Attributes below their warning thresholds.

    Returns:
        List of (attribute, "warning" | "critical"), most severe first.
    """
    attrs = state.attributes
    values = {"mood": attrs.mood, "energy": attrs.energy}
    found = []
    for name, limits in DECAY_THRESHOLDS.items():
        value = values[name]
        if value < limits["critical"]:
            found.append((name, "critical"))
        elif value < limits["warning"]:
            found.append((name, "warning"))
    found.sort(key=lambda item: 0 if item[1] == "critical" else 1)
    return found
