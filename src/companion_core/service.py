"""
Companion Service - wires the engine, policies, storage and achievements.

This is the layer the UI talks to. It owns the decisions the engine
leaves out:
- whether an interaction is allowed right now (cooldown gating)
- when state reaches disk (debounced, or immediately on a stage upgrade)
- when achievements are checked
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .achievements import ACHIEVEMENT_CATALOG, AchievementRecord, AchievementTracker
from .cooldown import all_cooldowns, recommend_interaction, remaining_cooldown
from .config import CompanionConfig
from .decay import attribute_level, needs_attention
from .engine import Clock, StateChangeListener, StateManager
from .errors import ConfigurationError, StorageError
from .events import ApplyDecay, Event, GrantReward, Interact, SpendCurrency, UpdateEmotion
from .growth import StageUpgrade, check_stage_upgrade, stage_for
from .interactions import INTERACTION_TABLE, InteractionKind, get_interaction_config
from .persistence import PersistenceCoordinator, Scheduler, snapshot_changes
from .state import PetState, create_initial_state
from .storage import PetStore
from .storage.store import CHAT_KIND

logger = logging.getLogger(__name__)

StageUpgradeListener = Callable[[StageUpgrade], None]


@dataclass(frozen=True)
class InteractionResult:
    """Outcome of CompanionService.interact()."""
    accepted: bool
    state: PetState
    kind: Optional[InteractionKind] = None
    effects: Dict[str, float] = field(default_factory=dict)
    remaining_cooldown: float = 0.0
    stage_upgrade: Optional[StageUpgrade] = None
    achievements: Tuple[AchievementRecord, ...] = ()
    reason: Optional[str] = None  # Why it was not accepted
    animation: str = ""
    voice_responses: Tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "kind": self.kind.value if self.kind else None,
            "effects": dict(self.effects),
            "remaining_cooldown": self.remaining_cooldown,
            "stage_upgrade": {
                "from": self.stage_upgrade.from_stage.value,
                "to": self.stage_upgrade.to_stage.value,
                "message": self.stage_upgrade.celebration_message,
            } if self.stage_upgrade else None,
            "achievements": [a.id for a in self.achievements],
            "reason": self.reason,
            "animation": self.animation,
            "voice_responses": list(self.voice_responses),
            "state": self.state.to_dict(),
        }


class CompanionService:
    """
    One companion, one process.

    Usage:
        service = CompanionService.from_config(ConfigManager().load())
        service.start()
        result = service.interact("pet")
        ...
        service.shutdown()
    """

    def __init__(
        self,
        store: PetStore,
        config: Optional[CompanionConfig] = None,
        clock: Clock = datetime.now,
        scheduler: Optional[Scheduler] = None,
    ):
        self._store = store
        self._config = config or CompanionConfig()
        self._clock = clock
        self._scheduler = scheduler
        self._interactions = INTERACTION_TABLE

        self._manager: Optional[StateManager] = None
        self._coordinator: Optional[PersistenceCoordinator] = None
        self._tracker = AchievementTracker(store, ACHIEVEMENT_CATALOG)
        self._stage_listeners: List[StageUpgradeListener] = []

    @classmethod
    def from_config(
        cls,
        config: CompanionConfig,
        clock: Clock = datetime.now,
        scheduler: Optional[Scheduler] = None,
    ) -> "CompanionService":
        """Build a service whose store lives at config.db_path."""
        return cls(PetStore(config.db_path), config, clock=clock, scheduler=scheduler)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._manager is not None

    def start(self) -> PetState:
        """
        Load (or create) the companion and catch up on decay.

        Raises:
            ConfigurationError: Invalid configuration
            StorageError: Storage cannot be opened or read
        """
        if self.started:
            return self.get_state()

        valid, error = self._config.validate()
        if not valid:
            raise ConfigurationError(f"Invalid configuration: {error}")

        now = self._clock()
        state = self._store.load_snapshot()
        if state is None:
            state = create_initial_state(now)
            self._store.create_snapshot(state)
            logger.info("Created new companion at %s", now.isoformat())
        else:
            logger.info("Loaded companion (affinity %.1f, %d interactions)",
                        state.attributes.affinity, state.attributes.total_interactions)

        self._coordinator = PersistenceCoordinator(
            self._store,
            self._scheduler,
            debounce_seconds=self._config.debounce_seconds,
        )
        self._manager = StateManager(
            state,
            clock=self._clock,
            interactions=self._interactions,
            decay_config=self._config.decay_config(),
        )
        self._manager.subscribe(self._persist)

        self._tracker.initialize()

        # Time passed while we were away
        self._manager.dispatch(ApplyDecay())
        return self.get_state()

    def shutdown(self) -> bool:
        """
        Write everything pending and close storage.

        Returns:
            False if the final write failed (the error is logged)
        """
        if not self.started:
            return True
        ok = True
        try:
            self._coordinator.close()
        except StorageError as e:
            logger.error("Final write failed, %d fields not saved: %s",
                         len(self._coordinator.pending()), e)
            ok = False
        self._manager = None
        self._coordinator = None
        self._store.close()
        return ok

    def _require_started(self) -> StateManager:
        if self._manager is None:
            raise RuntimeError("CompanionService.start() has not been called")
        return self._manager

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return self._clock()

    def get_state(self) -> PetState:
        return self._require_started().get_state()

    @property
    def coordinator(self) -> Optional[PersistenceCoordinator]:
        return self._coordinator

    def subscribe(self, listener: StateChangeListener) -> Callable[[], None]:
        """Called as listener(old_state, new_state, event) after each change."""
        return self._require_started().subscribe(listener)

    def subscribe_stage_upgrade(self, listener: StageUpgradeListener) -> Callable[[], None]:
        """Called with a StageUpgrade whenever the companion reaches a higher stage."""
        self._stage_listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._stage_listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def interact(
        self,
        kind: Union[InteractionKind, str],
        force: bool = False,
    ) -> InteractionResult:
        """
        Handle a user interaction.

        Rejected (state untouched) when the kind is unknown or still cooling
        down. `force` skips the cooldown check.
        """
        manager = self._require_started()
        parsed = kind if isinstance(kind, InteractionKind) else InteractionKind.parse(kind)
        old_state = manager.get_state()

        if parsed is None or parsed not in self._interactions:
            logger.warning("Rejected unknown interaction %r", kind)
            return InteractionResult(accepted=False, state=old_state, reason="unknown interaction")

        now = self._clock()
        remaining = self.remaining_cooldown(parsed, old_state, now)
        if remaining > 0 and not force:
            logger.debug("%s cooling down, %.1fs left", parsed.value, remaining)
            return InteractionResult(
                accepted=False,
                state=old_state,
                kind=parsed,
                remaining_cooldown=remaining,
                reason="cooldown",
            )

        new_state = manager.dispatch(Interact(parsed))
        effects = {
            "mood": new_state.attributes.mood - old_state.attributes.mood,
            "energy": new_state.attributes.energy - old_state.attributes.energy,
            "affinity": new_state.attributes.affinity - old_state.attributes.affinity,
        }

        try:
            self._store.record_interaction(parsed.value, now, effects)
        except StorageError as e:
            logger.warning("Interaction not recorded in history: %s", e)

        upgrade = check_stage_upgrade(
            old_state.attributes.affinity,
            new_state.attributes.affinity,
            now,
        )
        if upgrade is not None:
            self._on_stage_upgrade(upgrade)

        unlocked = self._check_achievements(new_state, now)
        presentation = get_interaction_config(parsed, self._interactions)

        return InteractionResult(
            accepted=True,
            state=new_state,
            kind=parsed,
            effects=effects,
            remaining_cooldown=remaining if force else 0.0,
            stage_upgrade=upgrade,
            achievements=tuple(unlocked),
            animation=presentation.animation,
            voice_responses=tuple(presentation.voice_responses),
        )

    def tick(self) -> PetState:
        """Apply decay up to now. Call periodically."""
        return self._require_started().dispatch(ApplyDecay())

    def record_chat(self) -> List[AchievementRecord]:
        """
        Count a chat exchange toward achievements. Attributes are untouched.

        Returns:
            Achievements unlocked by this chat
        """
        manager = self._require_started()
        now = self._clock()
        try:
            self._store.record_interaction(CHAT_KIND, now)
        except StorageError as e:
            logger.warning("Chat not recorded in history: %s", e)
            return []
        return self._check_achievements(manager.get_state(), now)

    def set_emotion(self, emotion: str) -> PetState:
        return self._require_started().dispatch(UpdateEmotion(emotion))

    def grant_reward(self, currency: int = 0, experience: int = 0) -> PetState:
        return self._require_started().dispatch(GrantReward(currency, experience))

    def spend_currency(self, amount: int) -> bool:
        """True if the companion could afford it and the amount was deducted."""
        manager = self._require_started()
        before = manager.get_state()
        return manager.dispatch(SpendCurrency(amount)) is not before

    def dispatch(self, event: Event) -> PetState:
        """Escape hatch for events without a dedicated method."""
        return self._require_started().dispatch(event)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def remaining_cooldown(
        self,
        kind: InteractionKind,
        state: Optional[PetState] = None,
        now: Optional[datetime] = None,
    ) -> float:
        """Seconds until `kind` is available. A companion never interacted with has none."""
        state = state or self.get_state()
        if state.attributes.total_interactions == 0:
            return 0.0
        return remaining_cooldown(
            kind,
            state.timestamps.last_interaction_at,
            now or self._clock(),
            self._interactions,
        )

    def status(self) -> Dict[str, Any]:
        """Everything a status panel needs, as plain data."""
        state = self.get_state()
        now = self._clock()
        attrs = state.attributes
        if attrs.total_interactions == 0:
            cooldowns = {kind: 0.0 for kind in self._interactions}
            recommended = recommend_interaction(
                state, now, self._interactions, available=set(self._interactions))
        else:
            cooldowns = all_cooldowns(state.timestamps.last_interaction_at, now, self._interactions)
            recommended = recommend_interaction(state, now, self._interactions)
        return {
            "state": state.to_dict(),
            "levels": {
                "mood": attribute_level(attrs.mood).value,
                "energy": attribute_level(attrs.energy).value,
                "affinity": attribute_level(attrs.affinity).value,
            },
            "stage": stage_for(attrs.affinity).to_dict(),
            "cooldowns": {kind.value: seconds for kind, seconds in cooldowns.items()},
            "recommended": recommended.value if recommended else None,
            "needs_attention": [
                {"attribute": name, "severity": severity}
                for name, severity in needs_attention(state)
            ],
            "achievements": self._tracker.summary(),
        }

    def achievements(self) -> List[AchievementRecord]:
        return self._store.get_achievements()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _persist(self, old_state: PetState, new_state: PetState, event: object) -> None:
        changes = snapshot_changes(new_state, old_state)
        if changes:
            self._coordinator.update(changes)

    def _on_stage_upgrade(self, upgrade: StageUpgrade) -> None:
        logger.info("Stage upgrade: %s -> %s (affinity %.1f)",
                    upgrade.from_stage.value, upgrade.to_stage.value, upgrade.affinity)
        try:
            self._coordinator.flush()
        except StorageError as e:
            logger.warning("Stage upgrade not saved yet, will retry: %s", e)

        for listener in list(self._stage_listeners):
            try:
                listener(upgrade)
            except Exception:
                logger.exception("Stage upgrade listener %r failed", listener)

    def _check_achievements(self, state: PetState, now: datetime) -> List[AchievementRecord]:
        try:
            counters = self._store.counters(state.attributes.affinity, now)
            return self._tracker.check_and_unlock(counters, now)
        except StorageError as e:
            logger.warning("Achievement check skipped: %s", e)
            return []
