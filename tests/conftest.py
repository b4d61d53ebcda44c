"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.agent.experience_store import ExperienceStore
from src.agent.orchestrator import TrainingOrchestrator
from src.environment.mastery_env import MasteryEnvironment, MasteryState, RewardPolicy, Transition


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (HTTP API, practice database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def policy():
    """Default reward policy."""
    return RewardPolicy()


@pytest.fixture
def env():
    """Fresh three-concept environment."""
    environment = MasteryEnvironment(3)
    environment.reset()
    return environment


@pytest.fixture
def store():
    return ExperienceStore(capacity=100, seed=7)


def make_transition(
    state=(0.6, 0.6, 0.6),
    action=0,
    reward=1.2,
    next_state=(0.7, 0.6, 0.6),
    done=None,
):
    """Build a Transition from plain vectors."""
    return Transition(
        state=MasteryState.from_values(state),
        action=action,
        reward=reward,
        next_state=MasteryState.from_values(next_state, done=done),
    )


@pytest.fixture
def transition_factory():
    return make_transition


@pytest.fixture
def sample_transitions():
    """A handful of distinct three-concept transitions."""
    return [
        make_transition(action=i % 3, reward=float(i))
        for i in range(10)
    ]


@pytest.fixture
def orchestrator():
    """Orchestrator without pretraining, deterministic and greedy."""
    return TrainingOrchestrator(
        agent_config={"exploration_rate": 0.0, "seed": 42},
        replay_capacity=50,
        batch_size=4,
        pretrain_on_setup=False,
    )
