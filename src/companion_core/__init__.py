"""
Companion Core - the simulation behind a virtual companion.

Mood, energy and affinity evolve through interactions and time. Affinity
drives the relationship stage; counters drive achievements. State is held
by a single engine and written to SQLite by a debouncing coordinator.
"""

__version__ = "0.1.0"

from .achievements import (
    ACHIEVEMENT_CATALOG,
    AchievementCounters,
    AchievementDefinition,
    AchievementRecord,
    AchievementTracker,
)
from .conditions import ConditionEvaluator, check_condition, evaluate_condition
from .config import CompanionConfig, ConfigManager
from .cooldown import all_cooldowns, is_available, recommend_interaction, remaining_cooldown
from .decay import DecayConfig, Difficulty, apply_decay, get_decay_config
from .engine import StateManager, transition
from .errors import CompanionError, ConfigurationError, StageConfigurationError, StorageError
from .events import ApplyDecay, GrantReward, Interact, SetAffinity, SpendCurrency, UpdateEmotion
from .growth import GrowthStage, StageUpgrade, check_stage_upgrade, stage_for
from .interactions import INTERACTION_TABLE, InteractionKind
from .persistence import PersistenceCoordinator, ThreadingScheduler, snapshot_changes
from .service import CompanionService, InteractionResult
from .state import PetState, clamp, create_initial_state
from .storage import PetStore

__all__ = [
    "__version__",
    # State and engine
    "PetState", "clamp", "create_initial_state",
    "StateManager", "transition",
    "ApplyDecay", "GrantReward", "Interact", "SetAffinity", "SpendCurrency", "UpdateEmotion",
    # Policies
    "INTERACTION_TABLE", "InteractionKind",
    "all_cooldowns", "is_available", "recommend_interaction", "remaining_cooldown",
    "DecayConfig", "Difficulty", "apply_decay", "get_decay_config",
    "GrowthStage", "StageUpgrade", "check_stage_upgrade", "stage_for",
    # Achievements
    "ACHIEVEMENT_CATALOG", "AchievementCounters", "AchievementDefinition",
    "AchievementRecord", "AchievementTracker",
    "ConditionEvaluator", "check_condition", "evaluate_condition",
    # Persistence
    "PersistenceCoordinator", "ThreadingScheduler", "snapshot_changes", "PetStore",
    # Service and config
    "CompanionService", "InteractionResult",
    "CompanionConfig", "ConfigManager",
    # Errors
    "CompanionError", "ConfigurationError", "StageConfigurationError", "StorageError",
]
