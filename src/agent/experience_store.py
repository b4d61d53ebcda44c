"""
Experience Store: bounded replay history of transitions.

Ring-buffer discipline: once full, appending evicts the oldest transition,
so the most recent experience is always retained. Batches are drawn
uniformly at random WITH replacement.
"""

from __future__ import annotations

import random
from collections import deque
from typing import Deque, Iterable, Iterator

from loguru import logger

from src.core.exceptions import ConfigurationError, InsufficientDataError
from src.environment.mastery_env import Transition


class ExperienceStore:
    """Fixed-capacity FIFO store of transitions."""

    def __init__(self, capacity: int = 5000, seed: int | None = None):
        """
        Initialize the store.

        Args:
            capacity: Maximum number of transitions kept
            seed: Seed for batch sampling (None = nondeterministic)
        """
        if capacity < 1:
            raise ConfigurationError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._buffer: Deque[Transition] = deque(maxlen=capacity)
        self._rng = random.Random(seed)
        self.total_appended = 0

    def __len__(self) -> int:
        return len(self._buffer)

    def __iter__(self) -> Iterator[Transition]:
        return iter(list(self._buffer))

    @property
    def is_full(self) -> bool:
        return len(self._buffer) == self.capacity

    def append(self, transition: Transition) -> None:
        """Insert a transition, evicting the oldest one when at capacity."""
        self._buffer.append(transition)
        self.total_appended += 1

    def bulk_load(self, transitions: Iterable[Transition]) -> int:
        """
        Append many transitions in order, under the same eviction rule.

        Returns:
            Number of transitions appended
        """
        count = 0
        for transition in transitions:
            self.append(transition)
            count += 1
        logger.debug(f"Bulk loaded {count} transitions ({len(self)}/{self.capacity} stored)")
        return count

    def sample_batch(self, n: int) -> list[Transition]:
        """
        Draw n transitions uniformly at random, with replacement.

        Raises:
            InsufficientDataError: If fewer than n transitions are stored
        """
        available = len(self._buffer)
        if n < 1:
            raise ConfigurationError(f"batch size must be positive, got {n}")
        if available < n:
            raise InsufficientDataError(requested=n, available=available)
        return [self._buffer[self._rng.randrange(available)] for _ in range(n)]

    def clear(self) -> None:
        self._buffer.clear()
