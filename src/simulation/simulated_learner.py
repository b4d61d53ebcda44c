"""
Simulated learners for dataset generation and offline evaluation.

A SimulatedLearner keeps a hidden skill per concept. Practising a concept
moves its skill towards 1, and the chance of answering correctly follows a
guess/slip model:

    P(correct) = guess + (1 - guess - slip) * skill
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from loguru import logger

from src.environment.mastery_env import MasteryEnvironment, RewardPolicy, Transition


@dataclass
class SimulatedLearner:
    """Synthetic learner answering with skill-dependent accuracy."""

    num_concepts: int
    initial_skill: float = 0.3
    learn_rate: float = 0.15
    guess: float = 0.2
    slip: float = 0.1
    seed: int | None = None
    skills: list[float] = field(init=False)

    def __post_init__(self) -> None:
        self._rng = random.Random(self.seed)
        self.skills = [self.initial_skill] * self.num_concepts

    def p_correct(self, action: int) -> float:
        return self.guess + (1.0 - self.guess - self.slip) * self.skills[action]

    def answer(self, action: int) -> bool:
        """Attempt an item on concept `action`; practice improves the skill."""
        correct = self._rng.random() < self.p_correct(action)
        self.skills[action] += self.learn_rate * (1.0 - self.skills[action])
        return correct


def generate_transitions(
    num_concepts: int,
    episodes: int = 50,
    steps_per_episode: int = 40,
    policy: RewardPolicy | None = None,
    seed: int | None = None,
) -> list[Transition]:
    """
    Roll out simulated learners under a uniformly random tutor.

    Episodes end early once the environment reports done.
    """
    rng = random.Random(seed)
    transitions: list[Transition] = []

    for episode in range(episodes):
        env = MasteryEnvironment(num_concepts, policy)
        learner = SimulatedLearner(num_concepts, seed=rng.randrange(2**32))
        for _ in range(steps_per_episode):
            action = rng.randrange(num_concepts)
            old_state = env.get_state()
            next_state, reward, _ = env.step(action, learner.answer(action))
            transitions.append(Transition(old_state, action, reward, next_state))
            if next_state.done:
                break

    logger.info(f"Generated {len(transitions)} transitions from {episodes} simulated episodes")
    return transitions


def run_simulated_session(orchestrator, learner: SimulatedLearner, max_steps: int = 50) -> list:
    """
    Drive one online session with a simulated learner.

    Returns:
        List of AttemptResult, one per attempt, stopping early when done
    """
    session = orchestrator.init_session(learner.num_concepts)
    results = []
    try:
        for _ in range(max_steps):
            action = session.current_action
            result = orchestrator.process_attempt(session.session_id, action, learner.answer(action))
            results.append(result)
            if result.done:
                break
    finally:
        orchestrator.end_session(session.session_id)
    return results
