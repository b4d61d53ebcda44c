"""
Unit tests for the mastery environment.

Covers mastery updates, reward shaping, the done flag and snapshot isolation.
"""

import random

import pytest

from src.core.exceptions import ConfigurationError, InvalidActionError
from src.environment.mastery_env import MasteryEnvironment, MasteryState, RewardPolicy


class TestReset:
    """Initial state and reset."""

    def test_reset_sets_initial_mastery(self, env):
        state = env.get_state()
        assert state.mastery == (0.6, 0.6, 0.6)
        assert state.done is False

    def test_reset_restores_after_steps(self, env):
        env.step(0, True)
        env.step(1, False)
        env.reset()
        assert env.get_state().mastery == (0.6, 0.6, 0.6)
        assert env.done is False

    def test_reset_is_idempotent(self, env):
        env.step(2, True)
        for _ in range(3):
            env.reset()
            assert env.get_state() == MasteryState((0.6, 0.6, 0.6), done=False)

    def test_custom_initial_mastery(self):
        env = MasteryEnvironment(2, RewardPolicy(initial_mastery=0.2))
        assert env.get_state().mastery == (0.2, 0.2)

    @pytest.mark.parametrize("bad", [0, -1, True, 2.5, "3"])
    def test_rejects_invalid_num_concepts(self, bad):
        with pytest.raises(ConfigurationError):
            MasteryEnvironment(bad)


class TestStepReward:
    """Reward shaping for the three prior-mastery regions."""

    def test_learning_zone_correct(self, env):
        """Prior 0.6 is in the zone: 1.0 + 0.1 * 2.0."""
        next_state, reward, correct = env.step(0, True)
        assert reward == pytest.approx(1.2)
        assert correct is True
        assert next_state.mastery[0] == pytest.approx(0.7)

    def test_learning_zone_incorrect(self, env):
        next_state, reward, correct = env.step(0, False)
        assert reward == pytest.approx(1.0)
        assert correct is False
        assert next_state.mastery[0] == pytest.approx(0.55)

    def test_mastered_incorrect_is_penalised(self):
        env = MasteryEnvironment.from_state(MasteryState.from_values([0.8, 0.5, 0.5]))
        next_state, reward, _ = env.step(0, False)
        assert reward == pytest.approx(-2.0)
        assert next_state.mastery[0] == pytest.approx(0.75)

    def test_mastered_correct_still_penalised(self):
        env = MasteryEnvironment.from_state(MasteryState.from_values([0.8, 0.5, 0.5]))
        _, reward, _ = env.step(0, True)
        assert reward == pytest.approx(-1.8)

    def test_between_zone_and_mastered(self):
        """Prior 0.7 gets neither bonus nor penalty."""
        env = MasteryEnvironment.from_state(MasteryState.from_values([0.7, 0.5, 0.5]))
        _, reward, _ = env.step(0, True)
        assert reward == pytest.approx(0.2)

    def test_below_zone(self):
        env = MasteryEnvironment.from_state(MasteryState.from_values([0.1, 0.5, 0.5]))
        _, reward, _ = env.step(0, False)
        assert reward == pytest.approx(0.0)

    def test_zone_boundaries_inclusive(self):
        env = MasteryEnvironment.from_state(MasteryState.from_values([0.4, 0.6, 0.75]))
        assert env.step(0, False).reward == pytest.approx(1.0)
        assert env.step(1, False).reward == pytest.approx(1.0)
        assert env.step(2, False).reward == pytest.approx(-2.0)


class TestRewardContract:
    """Literal reward cases on concept 0."""

    @pytest.mark.parametrize(
        "old, correct, expected_reward, expected_mastery",
        [
            (0.5, True, 1.2, 0.6),
            (0.8, False, -2.0, 0.75),
            (0.3, True, 0.2, 0.4),
        ],
    )
    def test_literal_cases(self, old, correct, expected_reward, expected_mastery):
        env = MasteryEnvironment.from_state(MasteryState.from_values([old, 0.5]))
        next_state, reward, _ = env.step(0, correct)
        assert reward == pytest.approx(expected_reward)
        assert next_state.mastery[0] == pytest.approx(expected_mastery)

    def test_clamp_on_last_concept_finishes_session(self):
        env = MasteryEnvironment.from_state(
            MasteryState.from_values([0.95, 0.85, 0.9], done=False)
        )
        next_state, reward, _ = env.step(0, True)
        assert next_state.mastery[0] == 1.0
        assert next_state.done is True
        assert reward == pytest.approx(-1.8)

    def test_random_walk_stays_in_bounds(self):
        rng = random.Random(0)
        env = MasteryEnvironment(4)
        for _ in range(500):
            state = env.step(rng.randrange(4), rng.random() < 0.5).next_state
            assert all(0.0 <= m <= 1.0 for m in state.mastery)
            if not state.done:
                assert not all(m >= 0.8 for m in state.mastery)


class TestStepMastery:
    """Mastery bounds, isolation and the done flag."""

    def test_only_attempted_concept_changes(self, env):
        next_state, _, _ = env.step(1, True)
        assert next_state.mastery[0] == 0.6
        assert next_state.mastery[2] == 0.6

    def test_clamped_at_one(self):
        env = MasteryEnvironment.from_state(MasteryState.from_values([0.95, 0.2]))
        next_state, _, _ = env.step(0, True)
        assert next_state.mastery[0] == 1.0

    def test_clamped_at_zero(self):
        env = MasteryEnvironment.from_state(MasteryState.from_values([0.02, 0.2]))
        next_state, _, _ = env.step(0, False)
        assert next_state.mastery[0] == 0.0

    def test_repeated_updates_stay_stable(self, env):
        """Two correct answers from 0.6 land exactly on 0.8."""
        env.step(0, True)
        next_state, _, _ = env.step(0, True)
        assert next_state.mastery[0] == 0.8

    def test_done_when_all_reach_threshold(self):
        env = MasteryEnvironment(2)
        for action in (0, 0, 1):
            assert env.step(action, True).next_state.done is False
        result = env.step(1, True)
        assert result.next_state.mastery == (0.8, 0.8)
        assert result.next_state.done is True
        assert env.done is True

    def test_done_is_sticky_until_reset(self):
        env = MasteryEnvironment.from_state(MasteryState.from_values([0.8, 0.8]))
        assert env.done is True
        next_state, _, _ = env.step(0, False)
        assert next_state.mastery[0] == pytest.approx(0.75)
        assert next_state.done is True

    def test_invalid_action_mutates_nothing(self, env):
        before = env.get_state()
        for action in (-1, 3, 1.0, "0", None, True):
            with pytest.raises(InvalidActionError):
                env.step(action, True)
        assert env.get_state() == before

    def test_deterministic_given_same_inputs(self):
        a, b = MasteryEnvironment(4), MasteryEnvironment(4)
        attempts = [(0, True), (3, False), (0, True), (2, True), (3, False)]
        for action, correct in attempts:
            assert a.step(action, correct) == b.step(action, correct)


class TestSnapshots:
    """States returned to callers are copies."""

    def test_snapshot_is_immutable(self, env):
        state = env.get_state()
        with pytest.raises(AttributeError):
            state.done = True

    def test_as_list_is_a_copy(self, env):
        values = env.get_state().as_list()
        values[0] = 0.0
        assert env.get_state().mastery[0] == 0.6

    def test_old_snapshot_unchanged_by_step(self, env):
        before = env.get_state()
        env.step(0, True)
        assert before.mastery == (0.6, 0.6, 0.6)

    def test_from_values_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            MasteryState.from_values([0.5, 1.2])

    def test_from_values_derives_done(self):
        assert MasteryState.from_values([0.8, 0.9]).done is True
        assert MasteryState.from_values([0.8, 0.7]).done is False
        assert MasteryState.from_values([0.8, 0.7], done=True).done is True


class TestRewardPolicy:

    def test_rejects_inverted_zone(self):
        with pytest.raises(ConfigurationError):
            RewardPolicy(learning_zone_low=0.7, learning_zone_high=0.5)

    def test_rejects_initial_mastery_out_of_range(self):
        with pytest.raises(ConfigurationError):
            RewardPolicy(initial_mastery=1.5)
