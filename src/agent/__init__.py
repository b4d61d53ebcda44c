"""
Agent: replay memory, value estimator and the training loop.

- experience_store: bounded FIFO replay of transitions
- policy_estimator: epsilon-greedy Q-network (NumPy)
- orchestrator: session registry + online/offline training protocol
"""

from src.agent.experience_store import ExperienceStore
from src.agent.orchestrator import AttemptResult, LearnerSession, SharedAgent, TrainingOrchestrator
from src.agent.policy_estimator import PolicyEstimator

__all__ = [
    "AttemptResult",
    "ExperienceStore",
    "LearnerSession",
    "PolicyEstimator",
    "SharedAgent",
    "TrainingOrchestrator",
]
