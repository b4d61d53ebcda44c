"""
Mastery Environment: state transitions and reward shaping.

Tracks one learner's per-concept mastery for a single tutoring session and
turns each graded attempt into a (next_state, reward) pair:

- Correct answers raise the attempted concept's mastery, incorrect ones lower it
- Quizzing a concept in the learning zone (mid mastery) is rewarded
- Re-testing an already mastered concept is penalised
- The session is done once every concept reaches the done threshold

The environment hands out immutable snapshots only; the live mastery vector
never leaves this module.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Sequence

from loguru import logger

from src.core.exceptions import ConfigurationError, InvalidActionError

# Mastery values are rounded after each update so threshold comparisons
# stay stable under repeated +/- deltas.
MASTERY_PRECISION = 10


@dataclass(frozen=True)
class RewardPolicy:
    """Numeric policy for mastery updates and reward shaping."""

    initial_mastery: float = 0.6
    correct_delta: float = 0.1
    incorrect_delta: float = -0.05
    learning_zone_low: float = 0.4
    learning_zone_high: float = 0.6
    mastered_threshold: float = 0.75
    done_threshold: float = 0.8
    zone_bonus: float = 1.0
    mastered_penalty: float = 2.0
    correct_bonus_scale: float = 2.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.initial_mastery <= 1.0:
            raise ConfigurationError(
                f"initial_mastery must be within [0, 1], got {self.initial_mastery}"
            )
        if self.learning_zone_low > self.learning_zone_high:
            raise ConfigurationError("learning_zone_low must not exceed learning_zone_high")

    def is_done(self, mastery: Sequence[float]) -> bool:
        """True when every concept is at or above the done threshold."""
        return all(m >= self.done_threshold for m in mastery)

    def delta(self, was_correct: bool) -> float:
        return self.correct_delta if was_correct else self.incorrect_delta

    def reward(self, old_mastery: float, was_correct: bool) -> float:
        """
        Reward for quizzing a concept whose mastery was old_mastery.

        Order matters: the learning-zone bonus and the mastered penalty are
        exclusive, and the correctness bonus is added on top.
        """
        reward = 0.0
        if self.learning_zone_low <= old_mastery <= self.learning_zone_high:
            reward += self.zone_bonus
        elif old_mastery >= self.mastered_threshold:
            reward -= self.mastered_penalty

        if was_correct:
            reward += self.delta(was_correct) * self.correct_bonus_scale

        return reward


@dataclass(frozen=True)
class MasteryState:
    """Immutable snapshot of a learner's per-concept mastery."""

    mastery: tuple[float, ...]
    done: bool = False

    @property
    def num_concepts(self) -> int:
        return len(self.mastery)

    def as_list(self) -> list[float]:
        """Return a fresh, mutable copy of the mastery vector."""
        return list(self.mastery)

    def to_dict(self) -> dict:
        return {"mastery": self.as_list(), "done": self.done}

    @classmethod
    def from_values(
        cls, mastery: Sequence[float], done: bool | None = None, done_threshold: float = 0.8
    ) -> MasteryState:
        """
        Build a snapshot from a plain vector.

        When done is not given it is derived from the vector and done_threshold.
        """
        values = tuple(float(m) for m in mastery)
        for value in values:
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"Mastery value {value} outside [0, 1]")
        if done is None:
            done = all(m >= done_threshold for m in values)
        return cls(mastery=values, done=bool(done))


@dataclass(frozen=True)
class Transition:
    """One (state, action, reward, next_state) record used for training."""

    state: MasteryState
    action: int
    reward: float
    next_state: MasteryState

    @property
    def done(self) -> bool:
        return self.next_state.done


class StepResult(NamedTuple):
    """Outcome of a single environment step."""

    next_state: MasteryState
    reward: float
    correct: bool


class MasteryEnvironment:
    """
    Per-session mastery environment.

    One instance per learner session. Not thread-safe on its own; callers
    serialize steps for a given session.
    """

    def __init__(self, num_concepts: int, policy: RewardPolicy | None = None):
        if isinstance(num_concepts, bool) or not isinstance(num_concepts, int) or num_concepts < 1:
            raise ConfigurationError(f"num_concepts must be a positive integer, got {num_concepts!r}")

        self.policy = policy or RewardPolicy()
        self._num_concepts = num_concepts
        self._mastery: list[float] = [self.policy.initial_mastery] * num_concepts
        self._done = False

    @classmethod
    def from_state(cls, state: MasteryState, policy: RewardPolicy | None = None) -> MasteryEnvironment:
        """Create an environment resumed from a previously captured snapshot."""
        env = cls(state.num_concepts, policy)
        env._mastery = state.as_list()
        env._done = state.done or env.policy.is_done(env._mastery)
        return env

    @property
    def num_concepts(self) -> int:
        return self._num_concepts

    @property
    def done(self) -> bool:
        return self._done

    def reset(self) -> None:
        """Restore every concept to the initial mastery and clear done."""
        self._mastery = [self.policy.initial_mastery] * self._num_concepts
        self._done = False

    def get_state(self) -> MasteryState:
        """Return a snapshot of the current state."""
        return MasteryState(mastery=tuple(self._mastery), done=self._done)

    def validate_action(self, action: object) -> int:
        """Return action as a concept index or raise InvalidActionError."""
        if isinstance(action, bool) or not isinstance(action, int):
            raise InvalidActionError(action, self._num_concepts)
        if not 0 <= action < self._num_concepts:
            raise InvalidActionError(action, self._num_concepts)
        return action

    def step(self, action: int, was_correct: bool) -> StepResult:
        """
        Apply a graded attempt on concept `action`.

        Args:
            action: Concept index in [0, num_concepts)
            was_correct: Whether the learner's answer matched the expected result

        Returns:
            StepResult with a snapshot of the post-update state
        """
        action = self.validate_action(action)
        was_correct = bool(was_correct)

        old = self._mastery[action]
        delta = self.policy.delta(was_correct)
        new = round(min(1.0, max(0.0, old + delta)), MASTERY_PRECISION)
        self._mastery[action] = new

        reward = self.policy.reward(old, was_correct)

        if self.policy.is_done(self._mastery):
            self._done = True

        logger.debug(
            f"Concept {action}: {old:.2f} -> {new:.2f} "
            f"({'correct' if was_correct else 'incorrect'}), reward={reward:+.2f}, done={self._done}"
        )
        return StepResult(next_state=self.get_state(), reward=reward, correct=was_correct)
