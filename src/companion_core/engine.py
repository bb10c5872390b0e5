"""
Transition Engine - the only place attribute math happens.

transition() is a pure reducer: (state, event, now) -> new state. It is total:
every event has a defined outcome, and unknown events come back unchanged
with a warning instead of an exception.

StateManager owns the current state for the life of the process, hands out
immutable snapshots, and notifies subscribers after each state change.

Cooldowns are NOT enforced here. The engine applies any
interaction it is given; gating belongs to the calling layer (see
service.CompanionService.interact).
"""

import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Mapping

from .decay import DEFAULT_DECAY_CONFIG, DecayConfig, apply_decay
from .events import (
    ApplyDecay,
    GrantReward,
    Interact,
    SetAffinity,
    SpendCurrency,
    UpdateEmotion,
)
from .interactions import INTERACTION_TABLE, InteractionConfig, InteractionKind
from .state import PetState, clamp, clamp_count, normalize_state

logger = logging.getLogger(__name__)

# (old_state, new_state, event)
StateChangeListener = Callable[[PetState, PetState, object], None]
Clock = Callable[[], datetime]


def _interact(
    state: PetState,
    event: Interact,
    now: datetime,
    table: Mapping[InteractionKind, InteractionConfig],
) -> PetState:
    kind = event.kind
    if not isinstance(kind, InteractionKind):
        kind = InteractionKind.parse(kind)
    config = table.get(kind) if kind is not None else None
    if config is None:
        logger.warning("Unknown interaction kind %r; state unchanged", event.kind)
        return state

    attrs = state.attributes
    return replace(
        state,
        attributes=replace(
            attrs,
            mood=clamp(attrs.mood + config.mood_delta),
            energy=clamp(attrs.energy + config.energy_delta),
            affinity=clamp(attrs.affinity + config.affinity_delta),
            total_interactions=attrs.total_interactions + 1,
        ),
        timestamps=replace(state.timestamps, last_interaction_at=now),
    )


def _grant_reward(state: PetState, event: GrantReward) -> PetState:
    if not (math.isfinite(event.currency) and math.isfinite(event.experience)):
        logger.warning("Non-finite reward %r ignored", event)
        return state
    if event.currency < 0 or event.experience < 0:
        logger.warning("Negative reward %r ignored (rewards only add)", event)
    currency_gain = clamp(event.currency, 0, math.inf)
    experience_gain = clamp(event.experience, 0, math.inf)
    if currency_gain == 0 and experience_gain == 0:
        return state

    attrs = state.attributes
    return replace(
        state,
        attributes=replace(
            attrs,
            currency=clamp_count(attrs.currency + currency_gain),
            experience=clamp_count(attrs.experience + experience_gain),
        ),
    )


def _spend_currency(state: PetState, event: SpendCurrency) -> PetState:
    attrs = state.attributes
    if not math.isfinite(event.amount):
        logger.warning("Spend amount must be finite, got %r", event.amount)
        return state
    if event.amount <= 0:
        logger.warning("Spend amount must be positive, got %r", event.amount)
        return state
    if event.amount > attrs.currency:
        logger.warning(
            "Insufficient currency: need %s, have %s", event.amount, attrs.currency
        )
        return state
    return replace(
        state,
        attributes=replace(attrs, currency=clamp_count(attrs.currency - event.amount)),
    )


def transition(
    state: PetState,
    event: object,
    now: datetime,
    interactions: Mapping[InteractionKind, InteractionConfig] = INTERACTION_TABLE,
    decay_config: DecayConfig = DEFAULT_DECAY_CONFIG,
) -> PetState:
    """
    Compute the state that results from applying `event` at time `now`.

    Args:
        state: Current state (not modified)
        event: One of the events in companion_core.events
        now: Evaluation time
        interactions: Interaction table
        decay_config: Decay rates for ApplyDecay

    Returns:
        New state, or `state` itself when the event changes nothing.
    """
    if isinstance(event, Interact):
        return _interact(state, event, now, interactions)

    if isinstance(event, ApplyDecay):
        return apply_decay(state, now, decay_config)

    if isinstance(event, UpdateEmotion):
        if event.emotion == state.presentation.emotion:
            return state
        return replace(
            state,
            presentation=replace(state.presentation, emotion=event.emotion),
        )

    if isinstance(event, SetAffinity):
        if not math.isfinite(event.value):
            logger.warning("Non-finite affinity %r ignored", event.value)
            return state
        return replace(
            state,
            attributes=replace(state.attributes, affinity=clamp(event.value)),
        )

    if isinstance(event, GrantReward):
        return _grant_reward(state, event)

    if isinstance(event, SpendCurrency):
        return _spend_currency(state, event)

    logger.warning("Unhandled event %r; state unchanged", event)
    return state


class StateManager:
    """
    Owner of the creature's current state.

    Single-threaded: dispatch runs to completion and callers
    serialize access by calling from one control flow.
    """

    def __init__(
        self,
        initial_state: PetState,
        clock: Clock = datetime.now,
        interactions: Mapping[InteractionKind, InteractionConfig] = INTERACTION_TABLE,
        decay_config: DecayConfig = DEFAULT_DECAY_CONFIG,
    ):
        self._state = normalize_state(initial_state)
        self._clock = clock
        self._interactions = interactions
        self._decay_config = decay_config
        self._listeners: List[StateChangeListener] = []

    @property
    def decay_config(self) -> DecayConfig:
        return self._decay_config

    def now(self) -> datetime:
        return self._clock()

    def get_state(self) -> PetState:
        """Snapshot of the current state. Immutable, safe to keep."""
        return self._state

    def subscribe(self, listener: StateChangeListener) -> Callable[[], None]:
        """
        Register a listener called as listener(old_state, new_state, event).

        Returns:
            Function that removes this registration.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass  # Already removed

        return unsubscribe

    def dispatch(self, event: object) -> PetState:
        """
        Apply an event and notify listeners if the state changed.

        Never raises for unknown events or failing listeners.

        Returns:
            The resulting state snapshot.
        """
        old_state = self._state
        new_state = transition(
            old_state,
            event,
            self._clock(),
            self._interactions,
            self._decay_config,
        )
        if new_state != old_state:
            self._state = new_state
            self._notify(old_state, new_state, event)
        return self._state

    def _notify(self, old_state: PetState, new_state: PetState, event: object) -> None:
        # Copy: a listener may unsubscribe while we iterate
        for listener in list(self._listeners):
            try:
                listener(old_state, new_state, event)
            except Exception:
                logger.exception("State listener %r failed for %r", listener, event)
