"""
Achievements - milestones unlocked by declarative conditions.

The catalog is static and seeded into storage once at startup. Unlocking is
one-way: a record that has been unlocked keeps its unlock time forever.

Checks run against an AchievementCounters snapshot supplied by the caller,
never against live state.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from .conditions import ConditionEvaluator

logger = logging.getLogger(__name__)


class AchievementCategory(str, Enum):
    INTERACTION = "interaction"
    DURATION = "duration"
    INTIMACY = "intimacy"
    SPECIAL = "special"


@dataclass(frozen=True)
class AchievementDefinition:
    """Static catalog entry. unlock_condition is condition text, not code."""
    id: str
    category: AchievementCategory
    name: str
    description: str
    unlock_condition: str
    icon: str = ""


@dataclass(frozen=True)
class AchievementRecord:
    """Catalog entry plus unlock state."""
    definition: AchievementDefinition
    is_unlocked: bool = False
    unlocked_at: Optional[datetime] = None

    @property
    def id(self) -> str:
        return self.definition.id

    def unlock(self, at: datetime) -> "AchievementRecord":
        """Unlocked copy. Already-unlocked records are returned as is."""
        if self.is_unlocked:
            return self
        return replace(self, is_unlocked=True, unlocked_at=at)

    def to_dict(self) -> dict:
        d = self.definition
        return {
            "id": d.id,
            "category": d.category.value,
            "name": d.name,
            "description": d.description,
            "icon": d.icon,
            "unlock_condition": d.unlock_condition,
            "is_unlocked": self.is_unlocked,
            "unlocked_at": self.unlocked_at.isoformat() if self.unlocked_at else None,
        }


_I = AchievementCategory.INTERACTION
_D = AchievementCategory.DURATION
_A = AchievementCategory.INTIMACY
_S = AchievementCategory.SPECIAL

ACHIEVEMENT_CATALOG: Tuple[AchievementDefinition, ...] = (
    # Interaction milestones
    AchievementDefinition("first_pet", _I, "First Touch", "Pet your companion for the first time", "pet_count >= 1", "Hand"),
    AchievementDefinition("pet_10", _I, "Familiar Touch", "Pet your companion 10 times", "pet_count >= 10", "HandHeart"),
    AchievementDefinition("pet_100", _I, "Petting Master", "Pet your companion 100 times", "pet_count >= 100", "Medal"),
    AchievementDefinition("feed_10", _I, "Nutritionist", "Feed your companion 10 times", "feed_count >= 10", "Utensils"),
    AchievementDefinition("play_10", _I, "Playmate", "Play together 10 times", "play_count >= 10", "Gamepad2"),
    AchievementDefinition("chat_10", _I, "Chatterbox", "Chat 10 times", "chat_count >= 10", "MessageSquare"),
    AchievementDefinition("interaction_100", _I, "Regular", "100 interactions in total", "total_interactions >= 100", "Star"),
    AchievementDefinition("interaction_500", _I, "Devoted", "500 interactions in total", "total_interactions >= 500", "Trophy"),
    # Time together
    AchievementDefinition("companion_1", _D, "First Day", "Together for 1 day", "total_days >= 1", "Sprout"),
    AchievementDefinition("companion_7", _D, "One Week", "Together for 7 days", "total_days >= 7", "Leaf"),
    AchievementDefinition("companion_30", _D, "One Month", "Together for 30 days", "total_days >= 30", "TreeDeciduous"),
    AchievementDefinition("companion_100", _D, "Hundred Days", "Together for 100 days", "total_days >= 100", "TreePine"),
    AchievementDefinition("consecutive_7", _D, "Persistent", "Interact 7 days in a row", "consecutive_days >= 7", "Calendar"),
    AchievementDefinition("consecutive_30", _D, "Inseparable", "Interact 30 days in a row", "consecutive_days >= 30", "Heart"),
    # Affinity
    AchievementDefinition("intimacy_30", _A, "Ice Breaker", "Reach 30 affinity", "intimacy >= 30", "Snowflake"),
    AchievementDefinition("intimacy_50", _A, "Good Friends", "Reach 50 affinity", "intimacy >= 50", "Users"),
    AchievementDefinition("intimacy_70", _A, "Close Friends", "Reach 70 affinity", "intimacy >= 70", "HeartHandshake"),
    AchievementDefinition("intimacy_100", _A, "Soulmates", "Reach 100 affinity", "intimacy >= 100", "Sparkles"),
    # Special
    AchievementDefinition("first_chat", _S, "First Words", "Have a first conversation", "chat_count >= 1", "MessagesSquare"),
    AchievementDefinition(
        "all_interactions", _S, "All-Rounder",
        "Try every kind of interaction (pet, feed, play, chat)",
        "pet_count >= 1 AND feed_count >= 1 AND play_count >= 1 AND chat_count >= 1",
        "Target",
    ),
)


@dataclass(frozen=True)
class AchievementCounters:
    """Snapshot of the aggregate numbers conditions are evaluated against."""
    pet_count: int = 0
    feed_count: int = 0
    play_count: int = 0
    chat_count: int = 0
    total_interactions: int = 0
    total_days: int = 0
    consecutive_days: int = 0
    intimacy: float = 0.0

    def to_context(self) -> Dict[str, float]:
        return {
            "pet_count": self.pet_count,
            "feed_count": self.feed_count,
            "play_count": self.play_count,
            "chat_count": self.chat_count,
            "total_interactions": self.total_interactions,
            "total_days": self.total_days,
            "consecutive_days": self.consecutive_days,
            "intimacy": self.intimacy,
        }


class AchievementStore(Protocol):
    """Storage the tracker needs (implemented by storage.store.PetStore)."""

    def seed_achievements(self, definitions: Sequence[AchievementDefinition]) -> int: ...

    def get_achievements(self) -> List[AchievementRecord]: ...

    def unlock_achievement(self, achievement_id: str, at: datetime) -> bool: ...


def validate_catalog(
    catalog: Sequence[AchievementDefinition] = ACHIEVEMENT_CATALOG,
    evaluator: Optional[ConditionEvaluator] = None,
) -> Dict[str, List[str]]:
    """
    Condition problems per achievement id (empty dict when all are well formed).

    Duplicate ids are reported under the duplicated id.
    """
    evaluator = evaluator or ConditionEvaluator()
    problems: Dict[str, List[str]] = {}
    seen = set()
    for definition in catalog:
        found = evaluator.problems(definition.unlock_condition)
        if definition.id in seen:
            found = found + ["duplicate achievement id"]
        seen.add(definition.id)
        if found:
            problems[definition.id] = found
    return problems


class AchievementTracker:
    """Checks locked achievements against counters and unlocks the ones that hold."""

    def __init__(
        self,
        store: AchievementStore,
        catalog: Sequence[AchievementDefinition] = ACHIEVEMENT_CATALOG,
        evaluator: Optional[ConditionEvaluator] = None,
    ):
        self._store = store
        self._catalog = tuple(catalog)
        self._evaluator = evaluator or ConditionEvaluator()

    def initialize(self) -> int:
        """Seed the catalog into storage. Returns how many entries were new."""
        problems = validate_catalog(self._catalog, self._evaluator)
        for achievement_id, issues in problems.items():
            logger.warning("Achievement '%s' has a malformed condition: %s",
                           achievement_id, "; ".join(issues))
            self._evaluator.mark_reported(achievement_id)
        added = self._store.seed_achievements(self._catalog)
        logger.info("Achievements initialized (%d new, %d total)", added, len(self._catalog))
        return added

    def check_and_unlock(
        self,
        counters: AchievementCounters,
        now: Optional[datetime] = None,
    ) -> List[AchievementRecord]:
        """
        Unlock every locked achievement whose condition holds.

        Returns:
            Newly unlocked records, in catalog order.
        """
        if now is None:
            now = datetime.now()
        context = counters.to_context()

        newly_unlocked = []
        for record in self._store.get_achievements():
            if record.is_unlocked:
                continue
            definition = record.definition
            if not self._evaluator.evaluate(definition.unlock_condition, context, label=definition.id):
                continue
            if self._store.unlock_achievement(definition.id, now):
                newly_unlocked.append(record.unlock(now))
                logger.info("Achievement unlocked: %s", definition.name)
        return newly_unlocked

    def summary(self) -> Dict[str, float]:
        """Total, unlocked and percentage unlocked."""
        records = self._store.get_achievements()
        total = len(records)
        unlocked = sum(1 for record in records if record.is_unlocked)
        percentage = round(100.0 * unlocked / total, 1) if total else 0.0
        return {"total": total, "unlocked": unlocked, "percentage": percentage}
