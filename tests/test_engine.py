"""
Tests for engine module - transitions, totality, subscriptions.

Run with: pytest tests/test_engine.py -v
"""

from dataclasses import dataclass, replace
from datetime import timedelta

import pytest

from companion_core.engine import StateManager, transition
from companion_core.events import (
    ApplyDecay,
    GrantReward,
    Interact,
    SetAffinity,
    SpendCurrency,
    UpdateEmotion,
)
from companion_core.interactions import InteractionKind

from conftest import T0


def with_attrs(state, **changes):
    return replace(state, attributes=replace(state.attributes, **changes))


@dataclass(frozen=True)
class Teleport:
    """An event the engine has never heard of."""
    where: str = "moon"


# ---------------------------------------------------------------------------
# transition()
# ---------------------------------------------------------------------------

class TestInteract:

    def test_pet_from_defaults_clamps_mood(self, initial_state):
        now = T0 + timedelta(minutes=5)
        new = transition(initial_state, Interact(InteractionKind.PET), now)
        attrs = new.attributes
        assert attrs.mood == 100
        assert attrs.energy == 100
        assert attrs.affinity == 22
        assert attrs.total_interactions == 1
        assert new.timestamps.last_interaction_at == now

    def test_play_spends_energy(self, initial_state):
        state = with_attrs(initial_state, mood=50, energy=50)
        new = transition(state, Interact(InteractionKind.PLAY), T0)
        assert (new.attributes.mood, new.attributes.energy, new.attributes.affinity) == (62, 45, 23)

    def test_energy_never_below_zero(self, initial_state):
        state = with_attrs(initial_state, energy=2)
        new = transition(state, Interact(InteractionKind.PLAY), T0)
        assert new.attributes.energy == 0

    def test_affinity_never_above_hundred(self, initial_state):
        state = with_attrs(initial_state, affinity=99)
        new = transition(state, Interact(InteractionKind.PLAY), T0)
        assert new.attributes.affinity == 100

    def test_string_kind_accepted(self, initial_state):
        new = transition(initial_state, Interact("FEED"), T0)
        assert new.attributes.total_interactions == 1

    def test_cooldown_is_not_enforced(self, initial_state):
        # Three feeds at the same instant all apply
        state = with_attrs(initial_state, mood=10, energy=10)
        for _ in range(3):
            state = transition(state, Interact(InteractionKind.FEED), T0)
        assert state.attributes.total_interactions == 3
        assert state.attributes.energy == 55

    def test_unknown_kind_leaves_state_unchanged(self, initial_state, caplog):
        new = transition(initial_state, Interact("tickle"), T0)
        assert new is initial_state
        assert "Unknown interaction kind" in caplog.text

    def test_kind_missing_from_table(self, initial_state):
        new = transition(initial_state, Interact(InteractionKind.FEED), T0, interactions={})
        assert new is initial_state

    def test_input_state_not_modified(self, initial_state):
        before = initial_state.to_dict()
        transition(initial_state, Interact(InteractionKind.PLAY), T0)
        assert initial_state.to_dict() == before


class TestOtherEvents:

    def test_update_emotion_touches_only_presentation(self, initial_state):
        new = transition(initial_state, UpdateEmotion("happy"), T0)
        assert new.presentation.emotion == "happy"
        assert new.attributes == initial_state.attributes
        assert new.timestamps == initial_state.timestamps

    def test_same_emotion_is_no_change(self, initial_state):
        assert transition(initial_state, UpdateEmotion("neutral"), T0) is initial_state

    @pytest.mark.parametrize("value,expected", [(55, 55), (-10, 0), (250, 100)])
    def test_set_affinity_clamped(self, initial_state, value, expected):
        new = transition(initial_state, SetAffinity(value), T0)
        assert new.attributes.affinity == expected

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_set_affinity_non_finite_ignored(self, initial_state, value, caplog):
        assert transition(initial_state, SetAffinity(value), T0) is initial_state
        assert "Non-finite affinity" in caplog.text

    def test_apply_decay_delegates(self, initial_state):
        new = transition(initial_state, ApplyDecay(), T0 + timedelta(hours=2))
        assert new.attributes.mood == 96
        assert new.attributes.energy == 97
        assert new.attributes.affinity == 20

    def test_unknown_event_is_logged_not_raised(self, initial_state, caplog):
        new = transition(initial_state, Teleport(), T0)
        assert new is initial_state
        assert "Unhandled event" in caplog.text


class TestEconomy:

    def test_grant_reward(self, initial_state):
        new = transition(initial_state, GrantReward(currency=10, experience=5), T0)
        assert new.attributes.currency == 10
        assert new.attributes.experience == 5

    def test_negative_reward_grants_nothing(self, initial_state, caplog):
        new = transition(initial_state, GrantReward(currency=-10), T0)
        assert new is initial_state
        assert "Negative reward" in caplog.text

    def test_spend_when_affordable(self, initial_state):
        state = with_attrs(initial_state, currency=30)
        new = transition(state, SpendCurrency(12), T0)
        assert new.attributes.currency == 18

    def test_spend_more_than_owned(self, initial_state, caplog):
        state = with_attrs(initial_state, currency=5)
        assert transition(state, SpendCurrency(12), T0) is state
        assert "Insufficient currency" in caplog.text

    def test_spend_non_positive(self, initial_state):
        state = with_attrs(initial_state, currency=5)
        assert transition(state, SpendCurrency(0), T0) is state

    @pytest.mark.parametrize("reward", [
        GrantReward(currency=float("inf")),
        GrantReward(experience=float("nan")),
        GrantReward(currency=5, experience=float("-inf")),
    ])
    def test_non_finite_reward_ignored(self, initial_state, reward, caplog):
        assert transition(initial_state, reward, T0) is initial_state
        assert "Non-finite reward" in caplog.text

    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_spend_ignored(self, initial_state, amount, caplog):
        state = with_attrs(initial_state, currency=5)
        assert transition(state, SpendCurrency(amount), T0) is state
        assert "must be finite" in caplog.text


# ---------------------------------------------------------------------------
# StateManager
# ---------------------------------------------------------------------------

class TestStateManager:

    def test_dispatch_uses_injected_clock(self, initial_state, clock):
        manager = StateManager(initial_state, clock=clock)
        clock.advance(minutes=3)
        state = manager.dispatch(Interact(InteractionKind.PET))
        assert state.timestamps.last_interaction_at == clock.current
        assert manager.get_state() is state

    def test_normalizes_initial_state(self, initial_state, clock):
        manager = StateManager(with_attrs(initial_state, mood=300), clock=clock)
        assert manager.get_state().attributes.mood == 100

    def test_listener_receives_old_new_event(self, initial_state, clock):
        manager = StateManager(initial_state, clock=clock)
        calls = []
        manager.subscribe(lambda old, new, event: calls.append((old, new, event)))

        event = Interact(InteractionKind.PET)
        new = manager.dispatch(event)

        assert calls == [(initial_state, new, event)]

    def test_no_notification_without_change(self, initial_state, clock):
        manager = StateManager(initial_state, clock=clock)
        calls = []
        manager.subscribe(lambda *args: calls.append(args))
        manager.dispatch(ApplyDecay())  # Zero time elapsed
        manager.dispatch(Teleport())
        assert calls == []

    def test_listeners_run_in_registration_order(self, initial_state, clock):
        manager = StateManager(initial_state, clock=clock)
        order = []
        manager.subscribe(lambda *a: order.append("first"))
        manager.subscribe(lambda *a: order.append("second"))
        manager.dispatch(SetAffinity(50))
        assert order == ["first", "second"]

    def test_failing_listener_does_not_break_dispatch(self, initial_state, clock, caplog):
        manager = StateManager(initial_state, clock=clock)
        seen = []

        def broken(*args):
            raise RuntimeError("boom")

        manager.subscribe(broken)
        manager.subscribe(lambda *a: seen.append(True))

        state = manager.dispatch(SetAffinity(50))
        assert state.attributes.affinity == 50
        assert seen == [True]
        assert "State listener" in caplog.text

    def test_unsubscribe(self, initial_state, clock):
        manager = StateManager(initial_state, clock=clock)
        calls = []
        unsubscribe = manager.subscribe(lambda *a: calls.append(a))
        unsubscribe()
        unsubscribe()  # Second call is harmless
        manager.dispatch(SetAffinity(50))
        assert calls == []

    def test_snapshot_survives_later_dispatch(self, initial_state, clock):
        manager = StateManager(initial_state, clock=clock)
        snapshot = manager.get_state()
        manager.dispatch(SetAffinity(90))
        assert snapshot.attributes.affinity == 20
