"""Simulated learners for dataset generation and evaluation."""

from src.simulation.simulated_learner import (
    SimulatedLearner,
    generate_transitions,
    run_simulated_session,
)

__all__ = ["SimulatedLearner", "generate_transitions", "run_simulated_session"]
