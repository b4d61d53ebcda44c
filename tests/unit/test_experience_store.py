"""
Unit tests for the experience store (bounded replay memory).
"""

import pytest

from src.agent.experience_store import ExperienceStore
from src.core.exceptions import ConfigurationError, InsufficientDataError


class TestCapacity:
    """FIFO eviction once the store is full."""

    def test_keeps_most_recent(self, transition_factory):
        store = ExperienceStore(capacity=3)
        transitions = [transition_factory(reward=float(i)) for i in range(4)]
        for t in transitions:
            store.append(t)

        assert len(store) == 3
        assert store.is_full
        assert list(store) == transitions[1:]
        assert store.total_appended == 4

    def test_bulk_load_follows_eviction_rule(self, transition_factory):
        store = ExperienceStore(capacity=5)
        transitions = [transition_factory(reward=float(i)) for i in range(8)]

        assert store.bulk_load(transitions) == 8
        assert list(store) == transitions[3:]

    def test_bulk_load_accepts_generator(self, transition_factory):
        store = ExperienceStore(capacity=5)
        assert store.bulk_load(transition_factory(reward=float(i)) for i in range(2)) == 2
        assert len(store) == 2

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ConfigurationError):
            ExperienceStore(capacity=0)

    def test_clear(self, store, sample_transitions):
        store.bulk_load(sample_transitions)
        store.clear()
        assert len(store) == 0


class TestSampling:
    """Uniform sampling with replacement."""

    def test_insufficient_data(self, store, sample_transitions):
        store.bulk_load(sample_transitions[:3])
        with pytest.raises(InsufficientDataError) as exc_info:
            store.sample_batch(4)
        assert exc_info.value.requested == 4
        assert exc_info.value.available == 3

    def test_empty_store(self, store):
        with pytest.raises(InsufficientDataError):
            store.sample_batch(1)

    def test_batch_members_come_from_store(self, store, sample_transitions):
        store.bulk_load(sample_transitions)
        batch = store.sample_batch(10)
        assert len(batch) == 10
        assert all(t in sample_transitions for t in batch)

    def test_batch_equal_to_size_allowed(self, store, transition_factory):
        only = transition_factory()
        store.append(only)
        assert store.sample_batch(1) == [only]

    def test_sampling_with_replacement(self, transition_factory):
        store = ExperienceStore(capacity=10, seed=1)
        store.bulk_load([transition_factory(reward=0.0), transition_factory(reward=1.0)])
        batch = store.sample_batch(2)
        # Repeated draws of size == len(store) must eventually repeat an item
        seen_duplicate = any(
            len({t.reward for t in store.sample_batch(2)}) == 1 for _ in range(50)
        )
        assert len(batch) == 2
        assert seen_duplicate

    def test_sampling_does_not_modify_store(self, store, sample_transitions):
        store.bulk_load(sample_transitions)
        store.sample_batch(5)
        assert list(store) == sample_transitions

    def test_seeded_sampling_is_reproducible(self, sample_transitions):
        a, b = ExperienceStore(seed=3), ExperienceStore(seed=3)
        a.bulk_load(sample_transitions)
        b.bulk_load(sample_transitions)
        assert a.sample_batch(6) == b.sample_batch(6)

    def test_rejects_non_positive_batch(self, store, sample_transitions):
        store.bulk_load(sample_transitions)
        with pytest.raises(ConfigurationError):
            store.sample_batch(0)
