"""
Training Orchestrator: session lifecycle and the online training loop.

Sharing discipline:
- Each learner session owns a private MasteryEnvironment, kept in an
  explicit registry keyed by session id. A per-session lock makes attempts
  for one session strictly sequential, so its transitions reach the
  experience store in step order.
- One PolicyEstimator and one ExperienceStore are shared process-wide per
  concept count, so training signal accumulates across sessions. Every
  mutation of them (append, train_batch, offline_train, bulk_load) runs
  under a single orchestrator-wide lock.

The environment is only mutated once the correctness signal for an attempt
is known; an attempt that never gets graded leaves no trace.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Sequence

from loguru import logger

from src.agent.experience_store import ExperienceStore
from src.agent.policy_estimator import PolicyEstimator
from src.core.exceptions import (
    ConfigurationError,
    InsufficientDataError,
    NotInitializedError,
    SessionNotFoundError,
)
from src.environment.mastery_env import MasteryEnvironment, MasteryState, RewardPolicy, Transition

# Produces the historical dataset for a given concept count
DatasetLoader = Callable[[int], Sequence[Transition]]


@dataclass
class SharedAgent:
    """Estimator and replay store shared by all sessions with the same concept count."""

    estimator: PolicyEstimator
    store: ExperienceStore
    pretrained: bool = False


@dataclass
class LearnerSession:
    """Registry entry for one learner's tutoring session."""

    session_id: str
    environment: MasteryEnvironment
    current_action: int
    created_at: datetime = field(default_factory=datetime.now)
    attempts: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def num_concepts(self) -> int:
        return self.environment.num_concepts


@dataclass
class AttemptResult:
    """Outcome of one graded attempt, reported back to the session driver."""

    session_id: str
    action: int
    correct: bool
    reward: float
    mastery: list[float]
    done: bool
    next_action: int
    trained: bool
    loss: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "action": self.action,
            "correct": self.correct,
            "reward": self.reward,
            "mastery": self.mastery,
            "done": self.done,
            "next_action": self.next_action,
            "trained": self.trained,
            "loss": self.loss,
        }


class TrainingOrchestrator:
    """Sequences environment steps, replay insertion and estimator updates."""

    def __init__(
        self,
        policy: RewardPolicy | None = None,
        agent_config: dict[str, Any] | None = None,
        replay_capacity: int = 5000,
        batch_size: int = 16,
        offline_batch_size: int = 32,
        offline_epochs: int = 10,
        pretrain_on_setup: bool = True,
        dataset_loader: DatasetLoader | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            policy: Mastery/reward policy for every session environment
            agent_config: Keyword arguments for PolicyEstimator (besides num_concepts)
            replay_capacity: Capacity of each shared ExperienceStore
            batch_size: Online mini-batch size after each attempt
            offline_batch_size: Mini-batch size for pretraining
            offline_epochs: Pretraining passes over the historical dataset
            pretrain_on_setup: Pretrain a newly created estimator on init_session
            dataset_loader: Historical dataset source used for pretraining
        """
        if batch_size < 1:
            raise ConfigurationError(f"batch_size must be positive, got {batch_size}")

        self.policy = policy or RewardPolicy()
        self.agent_config = dict(agent_config or {})
        self.replay_capacity = replay_capacity
        self.batch_size = batch_size
        self.offline_batch_size = offline_batch_size
        self.offline_epochs = offline_epochs
        self.pretrain_on_setup = pretrain_on_setup
        self.dataset_loader = dataset_loader

        self._agents: dict[int, SharedAgent] = {}
        self._sessions: dict[str, LearnerSession] = {}
        # Serializes every mutation of shared estimators/stores
        self._agent_lock = threading.RLock()
        self._registry_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Any, dataset_loader: DatasetLoader | None = None) -> TrainingOrchestrator:
        """Build an orchestrator from a config.Settings instance."""
        training = settings.get_training_config()
        return cls(
            policy=RewardPolicy(**settings.get_reward_config()),
            agent_config=settings.get_agent_config(),
            replay_capacity=training["replay_capacity"],
            batch_size=training["batch_size"],
            offline_batch_size=training["offline_batch_size"],
            offline_epochs=training["offline_epochs"],
            pretrain_on_setup=training["pretrain_on_setup"],
            dataset_loader=dataset_loader,
        )

    # =========================================================================
    # Shared agents
    # =========================================================================

    def get_agent(self, num_concepts: int) -> SharedAgent:
        """Return the shared agent for num_concepts or raise NotInitializedError."""
        with self._agent_lock:
            agent = self._agents.get(num_concepts)
        if agent is None:
            raise NotInitializedError(f"No estimator initialized for {num_concepts} concepts")
        return agent

    def _get_or_create_agent(self, num_concepts: int) -> tuple[SharedAgent, bool]:
        with self._agent_lock:
            agent = self._agents.get(num_concepts)
            if agent is not None:
                return agent, False
            agent = SharedAgent(
                estimator=PolicyEstimator(num_concepts, **self.agent_config),
                store=ExperienceStore(self.replay_capacity, seed=self.agent_config.get("seed")),
            )
            self._agents[num_concepts] = agent
            logger.info(f"Created policy estimator for {num_concepts} concepts")
            return agent, True

    def pretrain(
        self,
        num_concepts: int,
        transitions: Sequence[Transition],
        epochs: int | None = None,
    ) -> list[float]:
        """
        Offline-train the shared estimator on historical transitions.

        The transitions are also loaded into the replay store so online
        training has data from the first attempt on. An empty dataset is a
        no-op.

        Returns:
            Mean loss per epoch
        """
        agent, _ = self._get_or_create_agent(num_concepts)
        epochs = self.offline_epochs if epochs is None else epochs
        if not transitions:
            logger.info("No historical transitions, skipping offline pretraining")
            return []
        mismatched = sum(1 for t in transitions if t.state.num_concepts != num_concepts)
        if mismatched:
            raise ConfigurationError(
                f"{mismatched} historical transitions do not have {num_concepts} concepts"
            )

        logger.info(
            f"Starting offline training ({epochs} epochs) on {len(transitions)} transitions "
            f"with batch_size={self.offline_batch_size}"
        )
        with self._agent_lock:
            agent.store.bulk_load(transitions)
            losses = agent.estimator.offline_train(transitions, epochs, self.offline_batch_size)
            agent.pretrained = True
        return losses

    def load_estimator(self, num_concepts: int, path: str | Path) -> SharedAgent:
        """Load saved estimator parameters for num_concepts; skips setup pretraining."""
        agent, _ = self._get_or_create_agent(num_concepts)
        with self._agent_lock:
            agent.estimator.load(path)
            agent.pretrained = True
        return agent

    def save_estimator(self, num_concepts: int, path: str | Path) -> Path:
        agent = self.get_agent(num_concepts)
        with self._agent_lock:
            return agent.estimator.save(path)

    def _pretrain_from_loader(self, num_concepts: int) -> None:
        if self.dataset_loader is None:
            logger.debug("No dataset loader configured, skipping offline pretraining")
            return
        try:
            transitions = self.dataset_loader(num_concepts)
        except OSError as e:
            logger.warning(f"Historical dataset unavailable, skipping pretraining: {e}")
            return
        self.pretrain(num_concepts, transitions)

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def init_session(self, num_concepts: int, session_id: str | None = None) -> LearnerSession:
        """
        Set up a learner session and choose its first concept.

        Creates a fresh environment, reuses (or creates and optionally
        pretrains) the shared estimator for num_concepts, and registers the
        session. Re-initializing an existing session id replaces it.
        """
        environment = MasteryEnvironment(num_concepts, self.policy)
        environment.reset()

        agent, created = self._get_or_create_agent(num_concepts)
        if created and self.pretrain_on_setup:
            self._pretrain_from_loader(num_concepts)

        with self._agent_lock:
            action = agent.estimator.choose_action(environment.get_state().mastery)

        session = LearnerSession(
            session_id=session_id or uuid.uuid4().hex,
            environment=environment,
            current_action=action,
        )
        with self._registry_lock:
            self._sessions[session.session_id] = session

        logger.info(f"Session {session.session_id} started ({num_concepts} concepts), first action={action}")
        return session

    def get_session(self, session_id: str) -> LearnerSession:
        with self._registry_lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list_sessions(self) -> list[str]:
        with self._registry_lock:
            return list(self._sessions)

    def get_state(self, session_id: str) -> MasteryState:
        """Snapshot of a session's mastery state."""
        session = self.get_session(session_id)
        with session.lock:
            return session.environment.get_state()

    def get_current_action(self, session_id: str) -> int:
        """Concept the session should be quizzed on next."""
        return self.get_session(session_id).current_action

    def reset_session(self, session_id: str) -> MasteryState:
        """Restart a session from initial mastery; the shared estimator is kept."""
        session = self.get_session(session_id)
        agent = self.get_agent(session.num_concepts)
        with session.lock:
            session.environment.reset()
            state = session.environment.get_state()
            with self._agent_lock:
                session.current_action = agent.estimator.choose_action(state.mastery)
            session.attempts = 0
        logger.info(f"Session {session_id} reset")
        return state

    def end_session(self, session_id: str) -> bool:
        """Discard a session. Returns False if it was not registered."""
        with self._registry_lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        logger.info(f"Session {session_id} ended after {session.attempts} attempts")
        return True

    # =========================================================================
    # Online loop
    # =========================================================================

    def process_attempt(self, session_id: str, action: int, was_correct: bool) -> AttemptResult:
        """
        Apply one graded attempt and train on the replay store.

        Raises:
            SessionNotFoundError: Unknown or uninitialized session
            InvalidActionError: Action outside [0, num_concepts); nothing is mutated
        """
        session = self.get_session(session_id)
        agent = self.get_agent(session.num_concepts)

        with session.lock:
            env = session.environment
            action = env.validate_action(action)

            old_state = env.get_state()
            next_state, reward, correct = env.step(action, was_correct)
            transition = Transition(state=old_state, action=action, reward=reward, next_state=next_state)

            trained, loss = False, None
            with self._agent_lock:
                agent.store.append(transition)
                try:
                    loss = agent.estimator.train_batch(agent.store, self.batch_size)
                    trained = True
                except InsufficientDataError as e:
                    logger.debug(f"Skipping training this round: {e}")
                next_action = agent.estimator.choose_action(next_state.mastery)

            session.current_action = next_action
            session.attempts += 1

        return AttemptResult(
            session_id=session_id,
            action=action,
            correct=correct,
            reward=reward,
            mastery=next_state.as_list(),
            done=next_state.done,
            next_action=next_action,
            trained=trained,
            loss=loss,
        )
