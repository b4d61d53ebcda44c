"""
Environment: per-learner mastery state and reward shaping.

- mastery_env: MasteryState, Transition, RewardPolicy, MasteryEnvironment
"""

from src.environment.mastery_env import (
    MasteryEnvironment,
    MasteryState,
    RewardPolicy,
    StepResult,
    Transition,
)

__all__ = [
    "MasteryEnvironment",
    "MasteryState",
    "RewardPolicy",
    "StepResult",
    "Transition",
]
