"""
Growth Stages - the relationship evolves as affinity accumulates.

Stages partition the affinity range [0, 100] into contiguous bands. Each band
is half-open [min, max) except the last, which includes 100. The table is
validated at import time: a gap or overlap is a programming error and fails
fast.

Stage calculation is pure. Detecting an upgrade between two readings (and
celebrating it) is the caller's job; check_stage_upgrade() helps.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence, Tuple

from .errors import StageConfigurationError
from .state import ATTRIBUTE_MAX, ATTRIBUTE_MIN, clamp


class GrowthStage(str, Enum):
    """Relationship stage, ordered from first meeting to closest bond."""
    STRANGER = "stranger"
    FRIEND = "friend"
    SOULMATE = "soulmate"


@dataclass(frozen=True)
class StageBand:
    """One band of the affinity range."""
    stage: GrowthStage
    display_name: str
    min_affinity: float
    max_affinity: float
    description: str = ""
    celebration_message: str = ""  # Shown when the creature reaches this stage

    def contains(self, affinity: float, is_last: bool = False) -> bool:
        if is_last:
            return self.min_affinity <= affinity <= self.max_affinity
        return self.min_affinity <= affinity < self.max_affinity

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "display_name": self.display_name,
            "min_affinity": self.min_affinity,
            "max_affinity": self.max_affinity,
            "description": self.description,
        }


STAGE_BANDS: Tuple[StageBand, ...] = (
    StageBand(
        stage=GrowthStage.STRANGER,
        display_name="Stranger",
        min_affinity=0.0,
        max_affinity=31.0,
        description="You have only just met. Polite, a little distant.",
    ),
    StageBand(
        stage=GrowthStage.FRIEND,
        display_name="Friend",
        min_affinity=31.0,
        max_affinity=71.0,
        description="Friends now - livelier, shares thoughts, notices your habits.",
        celebration_message="We're friends now! I can tell you more of what I think~",
    ),
    StageBand(
        stage=GrowthStage.SOULMATE,
        display_name="Soulmate",
        min_affinity=71.0,
        max_affinity=100.0,
        description="Very close. Understands your habits and what you like.",
        celebration_message="We've become so close! You're my most important companion!",
    ),
)


def validate_bands(bands: Sequence[StageBand]) -> None:
    """
    Check that bands are ordered, non-empty, contiguous and cover [0, 100].

    Raises:
        StageConfigurationError: On the first problem found
    """
    if not bands:
        raise StageConfigurationError("No growth stage bands defined")

    if bands[0].min_affinity != ATTRIBUTE_MIN:
        raise StageConfigurationError(
            f"First band '{bands[0].stage.value}' starts at {bands[0].min_affinity}, "
            f"expected {ATTRIBUTE_MIN}"
        )
    if bands[-1].max_affinity != ATTRIBUTE_MAX:
        raise StageConfigurationError(
            f"Last band '{bands[-1].stage.value}' ends at {bands[-1].max_affinity}, "
            f"expected {ATTRIBUTE_MAX}"
        )

    seen = set()
    for i, band in enumerate(bands):
        if band.stage in seen:
            raise StageConfigurationError(f"Stage '{band.stage.value}' appears twice")
        seen.add(band.stage)

        if band.max_affinity <= band.min_affinity:
            raise StageConfigurationError(
                f"Band '{band.stage.value}' is empty: "
                f"[{band.min_affinity}, {band.max_affinity})"
            )
        if i > 0:
            prev = bands[i - 1]
            if band.min_affinity > prev.max_affinity:
                raise StageConfigurationError(
                    f"Gap between '{prev.stage.value}' and '{band.stage.value}': "
                    f"{prev.max_affinity} -> {band.min_affinity}"
                )
            if band.min_affinity < prev.max_affinity:
                raise StageConfigurationError(
                    f"Overlap between '{prev.stage.value}' and '{band.stage.value}': "
                    f"{band.min_affinity} < {prev.max_affinity}"
                )


validate_bands(STAGE_BANDS)


@dataclass(frozen=True)
class StageProgress:
    """Where the creature stands within its current stage."""
    stage: GrowthStage
    band: StageBand
    affinity: float
    progress_percent: float            # 0-100 within the band
    affinity_to_next: Optional[float]  # None at the top stage
    next_band: Optional[StageBand]

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.value,
            "display_name": self.band.display_name,
            "affinity": self.affinity,
            "progress_percent": round(self.progress_percent, 2),
            "affinity_to_next": self.affinity_to_next,
            "next_stage": self.next_band.stage.value if self.next_band else None,
        }


@dataclass(frozen=True)
class StageUpgrade:
    """A move to a higher stage between two readings."""
    from_stage: GrowthStage
    to_stage: GrowthStage
    affinity: float
    timestamp: datetime
    celebration_message: str


def _band_index(affinity: float, bands: Sequence[StageBand]) -> int:
    value = clamp(affinity)
    last = len(bands) - 1
    for i, band in enumerate(bands):
        if band.contains(value, is_last=(i == last)):
            return i
    # Unreachable for validated bands
    raise StageConfigurationError(f"No band contains affinity {value}")


def current_stage(affinity: float, bands: Sequence[StageBand] = STAGE_BANDS) -> GrowthStage:
    return bands[_band_index(affinity, bands)].stage


def stage_for(affinity: float, bands: Sequence[StageBand] = STAGE_BANDS) -> StageProgress:
    """
    Stage and progress for an affinity value.

        progress_percent = 100 * (affinity - band.min) / (band.max - band.min)

    Affinity outside [0, 100] is clamped first.
    """
    value = clamp(affinity)
    index = _band_index(value, bands)
    band = bands[index]

    span = band.max_affinity - band.min_affinity
    progress = 100.0 * (value - band.min_affinity) / span
    progress = clamp(progress)

    next_band = bands[index + 1] if index + 1 < len(bands) else None
    to_next = None
    if next_band is not None:
        to_next = next_band.min_affinity - value

    return StageProgress(
        stage=band.stage,
        band=band,
        affinity=value,
        progress_percent=progress,
        affinity_to_next=to_next,
        next_band=next_band,
    )


def check_stage_upgrade(
    old_affinity: float,
    new_affinity: float,
    now: Optional[datetime] = None,
    bands: Sequence[StageBand] = STAGE_BANDS,
) -> Optional[StageUpgrade]:
    """
    Compare two readings. Returns a StageUpgrade only for a move to a higher
    stage; staying put or dropping back returns None.
    """
    old_index = _band_index(old_affinity, bands)
    new_index = _band_index(new_affinity, bands)
    if new_index <= old_index:
        return None

    if now is None:
        now = datetime.now()
    to_band = bands[new_index]
    return StageUpgrade(
        from_stage=bands[old_index].stage,
        to_stage=to_band.stage,
        affinity=clamp(new_affinity),
        timestamp=now,
        celebration_message=to_band.celebration_message or "Our bond has grown stronger!",
    )


def get_band(stage: GrowthStage, bands: Sequence[StageBand] = STAGE_BANDS) -> StageBand:
    for band in bands:
        if band.stage == stage:
            return band
    raise KeyError(stage)
