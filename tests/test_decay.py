"""
Tests for decay module - linear loss, caps, granularity, presets, levels.

Run with: pytest tests/test_decay.py -v
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from companion_core.decay import (
    DEFAULT_DECAY_CONFIG,
    AttributeLevel,
    DecayConfig,
    Difficulty,
    apply_decay,
    attribute_level,
    get_decay_config,
    needs_attention,
)

from conftest import T0


def hours(h):
    return T0 + timedelta(hours=h)


def with_attrs(state, **changes):
    return replace(state, attributes=replace(state.attributes, **changes))


class TestApplyDecay:

    def test_below_granularity_returns_identical_state(self, initial_state):
        new = apply_decay(initial_state, hours(0.09))
        assert new is initial_state
        assert new.timestamps.last_decay_applied_at == T0

    def test_linear_loss(self, initial_state):
        new = apply_decay(initial_state, hours(3))
        assert new.attributes.mood == pytest.approx(94)
        assert new.attributes.energy == pytest.approx(95.5)
        assert new.timestamps.last_decay_applied_at == hours(3)

    def test_affinity_never_decays(self, initial_state):
        assert apply_decay(initial_state, hours(200)).attributes.affinity == 20

    def test_caps_long_absence(self, initial_state):
        # 100 hours would be 200 mood / 150 energy uncapped
        new = apply_decay(initial_state, hours(100))
        assert new.attributes.mood == 50
        assert new.attributes.energy == 60

    def test_loss_never_exceeds_cap(self, initial_state):
        for h in (0.5, 10, 24, 48, 1000):
            new = apply_decay(initial_state, hours(h))
            assert 100 - new.attributes.mood <= DEFAULT_DECAY_CONFIG.max_mood_decay_per_tick
            assert 100 - new.attributes.energy <= DEFAULT_DECAY_CONFIG.max_energy_decay_per_tick

    def test_clamped_at_zero(self, initial_state):
        state = with_attrs(initial_state, mood=3, energy=1)
        new = apply_decay(state, hours(10))
        assert new.attributes.mood == 0
        assert new.attributes.energy == 0

    def test_clock_going_backwards_is_noop(self, initial_state):
        assert apply_decay(initial_state, hours(-5)) is initial_state

    def test_repeated_small_polls_still_accumulate(self, initial_state):
        # Polls under the granularity do not reset the decay clock
        state = initial_state
        for minutes in (3, 5):
            state = apply_decay(state, T0 + timedelta(minutes=minutes))
        assert state is initial_state
        state = apply_decay(state, T0 + timedelta(minutes=6))
        assert state.attributes.mood == pytest.approx(99.8)


class TestDecayConfig:

    def test_defaults(self):
        cfg = DecayConfig()
        assert (cfg.mood_per_hour, cfg.energy_per_hour) == (2.0, 1.5)
        assert (cfg.max_mood_decay_per_tick, cfg.max_energy_decay_per_tick) == (50.0, 40.0)
        assert cfg.validate() == (True, None)

    def test_negative_rate_invalid(self):
        valid, error = DecayConfig(mood_per_hour=-1).validate()
        assert valid is False
        assert "mood_per_hour" in error

    def test_cap_above_range_invalid(self):
        valid, error = DecayConfig(max_energy_decay_per_tick=150).validate()
        assert valid is False

    def test_round_trip(self):
        cfg = DecayConfig(mood_per_hour=3.0)
        assert DecayConfig.from_dict(cfg.to_dict()) == cfg

    def test_presets(self):
        assert get_decay_config("easy").mood_per_hour < get_decay_config("hard").mood_per_hour
        assert get_decay_config(Difficulty.NORMAL.value) == DEFAULT_DECAY_CONFIG

    def test_unknown_difficulty_falls_back(self):
        assert get_decay_config("nightmare") == DEFAULT_DECAY_CONFIG

    def test_hard_decays_faster(self, initial_state):
        easy = apply_decay(initial_state, hours(5), get_decay_config("easy"))
        hard = apply_decay(initial_state, hours(5), get_decay_config("hard"))
        assert hard.attributes.mood < easy.attributes.mood


class TestLevels:

    @pytest.mark.parametrize("value,level", [
        (100, AttributeLevel.HIGH),
        (70, AttributeLevel.HIGH),
        (69.9, AttributeLevel.MEDIUM),
        (40, AttributeLevel.MEDIUM),
        (39, AttributeLevel.LOW),
    ])
    def test_attribute_level(self, value, level):
        assert attribute_level(value) == level

    def test_healthy_needs_nothing(self, initial_state):
        assert needs_attention(initial_state) == []

    def test_critical_listed_first(self, initial_state):
        state = with_attrs(initial_state, mood=25, energy=5)
        assert needs_attention(state) == [("energy", "critical"), ("mood", "warning")]
