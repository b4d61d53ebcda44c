"""
Policy Estimator: per-concept value estimates and action selection.

A small feed-forward Q-network over the mastery vector:

    q(s) = W2 . tanh(W1 . s + b1) + b2        (one value per concept)

Training minimises the mean squared temporal-difference error

    target = reward + gamma * max_a q(next_state)[a]     (non-terminal)
    target = reward                                      (terminal)

with plain SGD and gradient-norm clipping. Targets are computed from the
parameters as they were before the update step.

The estimator owns only its parameters. Transitions come in from the caller
(an ExperienceStore or a historical dataset) and are never modified.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

import numpy as np
from loguru import logger

from src.agent.experience_store import ExperienceStore
from src.core.exceptions import ConfigurationError
from src.environment.mastery_env import Transition

MAX_GRAD_NORM = 5.0


class PolicyEstimator:
    """Epsilon-greedy Q-value estimator sized to num_concepts inputs/outputs."""

    def __init__(
        self,
        num_concepts: int,
        discount_factor: float = 0.9,
        exploration_rate: float = 0.1,
        learning_rate: float = 0.01,
        hidden_units: int = 32,
        seed: int | None = None,
    ):
        """
        Initialize the estimator.

        Args:
            num_concepts: Size of the mastery vector and of the action space
            discount_factor: Gamma for TD targets, in [0, 1)
            exploration_rate: Epsilon for exploratory action selection, in [0, 1]
            learning_rate: SGD step size
            hidden_units: Hidden layer width
            seed: Seed for weight init and exploration
        """
        if num_concepts < 1:
            raise ConfigurationError(f"num_concepts must be positive, got {num_concepts}")
        if not 0.0 <= discount_factor < 1.0:
            raise ConfigurationError(f"discount_factor must be in [0, 1), got {discount_factor}")
        if not 0.0 <= exploration_rate <= 1.0:
            raise ConfigurationError(f"exploration_rate must be in [0, 1], got {exploration_rate}")
        if learning_rate <= 0:
            raise ConfigurationError(f"learning_rate must be positive, got {learning_rate}")

        self.num_concepts = num_concepts
        self.discount_factor = discount_factor
        self.exploration_rate = exploration_rate
        self.learning_rate = learning_rate
        self.hidden_units = hidden_units
        self._rng = np.random.default_rng(seed)

        self.w1 = self._rng.normal(0.0, 1.0 / np.sqrt(num_concepts), (num_concepts, hidden_units))
        self.b1 = np.zeros(hidden_units)
        self.w2 = self._rng.normal(0.0, 1.0 / np.sqrt(hidden_units), (hidden_units, num_concepts))
        self.b2 = np.zeros(num_concepts)

        self.updates = 0

    # =========================================================================
    # Inference
    # =========================================================================

    def _as_batch(self, states: np.ndarray | Sequence[float]) -> np.ndarray:
        x = np.atleast_2d(np.asarray(states, dtype=float))
        if x.shape[1] != self.num_concepts:
            raise ConfigurationError(
                f"Expected mastery vectors of length {self.num_concepts}, got {x.shape[1]}"
            )
        return x

    def _forward(self, x: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        hidden = np.tanh(x @ self.w1 + self.b1)
        return hidden, hidden @ self.w2 + self.b2

    def q_values(self, mastery: Sequence[float]) -> np.ndarray:
        """Estimated value of each action from a single mastery vector."""
        _, q = self._forward(self._as_batch(mastery))
        return q[0]

    def choose_action(self, mastery: Sequence[float], explore: bool = True) -> int:
        """
        Select a concept to quiz next.

        Args:
            mastery: Current mastery vector
            explore: Use epsilon-greedy when True, pure argmax when False

        Returns:
            Concept index in [0, num_concepts)
        """
        if explore and self._rng.random() < self.exploration_rate:
            return int(self._rng.integers(self.num_concepts))
        return int(np.argmax(self.q_values(mastery)))

    # =========================================================================
    # Training
    # =========================================================================

    def compute_targets(self, transitions: Sequence[Transition]) -> np.ndarray:
        """TD targets for a batch; terminal transitions use the reward alone."""
        rewards = np.array([t.reward for t in transitions], dtype=float)
        not_done = np.array([0.0 if t.done else 1.0 for t in transitions])
        next_states = self._as_batch([t.next_state.mastery for t in transitions])
        _, next_q = self._forward(next_states)
        return rewards + self.discount_factor * not_done * next_q.max(axis=1)

    def update(self, transitions: Sequence[Transition]) -> float:
        """
        Perform one SGD step on a batch of transitions.

        Returns:
            Mean squared TD error before the step
        """
        if not transitions:
            return 0.0

        targets = self.compute_targets(transitions)
        states = self._as_batch([t.state.mastery for t in transitions])
        actions = np.array([t.action for t in transitions], dtype=int)
        rows = np.arange(len(transitions))

        hidden, q = self._forward(states)
        errors = q[rows, actions] - targets
        loss = float(np.mean(errors**2))

        grad_q = np.zeros_like(q)
        grad_q[rows, actions] = 2.0 * errors / len(transitions)

        grad_w2 = hidden.T @ grad_q
        grad_b2 = grad_q.sum(axis=0)
        grad_z = (grad_q @ self.w2.T) * (1.0 - hidden**2)
        grad_w1 = states.T @ grad_z
        grad_b1 = grad_z.sum(axis=0)

        grads = [grad_w1, grad_b1, grad_w2, grad_b2]
        norm = float(np.sqrt(sum(np.sum(g**2) for g in grads)))
        scale = MAX_GRAD_NORM / norm if norm > MAX_GRAD_NORM else 1.0

        self.w1 -= self.learning_rate * scale * grad_w1
        self.b1 -= self.learning_rate * scale * grad_b1
        self.w2 -= self.learning_rate * scale * grad_w2
        self.b2 -= self.learning_rate * scale * grad_b2
        self.updates += 1

        return loss

    def train_batch(self, store: ExperienceStore, batch_size: int) -> float:
        """
        Sample a batch from the store and take one update step.

        Raises:
            InsufficientDataError: If the store holds fewer than batch_size
                transitions (parameters are left untouched)
        """
        batch = store.sample_batch(batch_size)
        loss = self.update(batch)
        logger.debug(f"Online update #{self.updates}: batch={batch_size}, loss={loss:.4f}")
        return loss

    def offline_train(
        self,
        transitions: Sequence[Transition],
        epochs: int = 10,
        batch_size: int = 32,
    ) -> list[float]:
        """
        Warm-start on a historical dataset.

        Each epoch shuffles the dataset and updates on successive batches
        that together cover every transition once.

        Returns:
            Mean loss per epoch (empty when there is nothing to train on)
        """
        if not transitions or epochs <= 0:
            return []
        if batch_size < 1:
            raise ConfigurationError(f"batch_size must be positive, got {batch_size}")

        data = list(transitions)
        epoch_losses = []
        for epoch in range(epochs):
            order = self._rng.permutation(len(data))
            losses = [
                self.update([data[i] for i in order[start : start + batch_size]])
                for start in range(0, len(data), batch_size)
            ]
            epoch_losses.append(float(np.mean(losses)))
            logger.debug(f"Offline epoch {epoch + 1}/{epochs}: loss={epoch_losses[-1]:.4f}")

        logger.info(
            f"Offline training done: {len(data)} transitions x {epochs} epochs, "
            f"final loss={epoch_losses[-1]:.4f}"
        )
        return epoch_losses

    # =========================================================================
    # Persistence
    # =========================================================================

    def get_parameters(self) -> dict[str, np.ndarray]:
        """Copies of the current parameters."""
        return {"w1": self.w1.copy(), "b1": self.b1.copy(), "w2": self.w2.copy(), "b2": self.b2.copy()}

    def set_parameters(self, params: dict[str, np.ndarray]) -> None:
        current = self.get_parameters()
        for name, value in params.items():
            if name not in current:
                continue
            if np.shape(value) != current[name].shape:
                raise ConfigurationError(
                    f"Parameter {name} has shape {np.shape(value)}, expected {current[name].shape}"
                )
        self.w1 = np.array(params["w1"], dtype=float)
        self.b1 = np.array(params["b1"], dtype=float)
        self.w2 = np.array(params["w2"], dtype=float)
        self.b2 = np.array(params["b2"], dtype=float)

    def save(self, path: str | Path) -> Path:
        """Save parameters as a NumPy .npz archive."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            np.savez(f, **self.get_parameters())
        logger.info(f"Saved policy estimator to {path}")
        return path

    def load(self, path: str | Path) -> None:
        """Load parameters saved by save(); shapes must match this estimator."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Model file not found: {path}")
        with np.load(path) as archive:
            self.set_parameters({name: archive[name] for name in ("w1", "b1", "w2", "b2")})
        logger.info(f"Loaded policy estimator from {path}")
