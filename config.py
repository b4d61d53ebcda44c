"""
Configuration settings for the adaptive SQL tutor.

Uses Pydantic Settings for environment variable management with .env file support.
Every numeric policy of the mastery environment and the training loop is
exposed here so it can be tuned without touching code.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Session
    # ========================================
    num_concepts: int = Field(
        default=10,
        ge=1,
        description="Number of SQL concepts (query types) the agent chooses between",
    )
    pretrain_on_setup: bool = Field(
        default=True,
        description="Run offline pretraining when a new estimator is created",
    )

    # ========================================
    # Mastery Environment
    # ========================================
    initial_mastery: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Mastery every concept starts at (and returns to on reset)",
    )
    correct_delta: float = Field(
        default=0.1,
        description="Mastery change after a correct answer",
    )
    incorrect_delta: float = Field(
        default=-0.05,
        description="Mastery change after an incorrect answer",
    )
    learning_zone_low: float = Field(
        default=0.4,
        description="Lower bound (inclusive) of the learning zone",
    )
    learning_zone_high: float = Field(
        default=0.6,
        description="Upper bound (inclusive) of the learning zone",
    )
    mastered_threshold: float = Field(
        default=0.75,
        description="Prior mastery at or above which re-testing is penalised",
    )
    done_threshold: float = Field(
        default=0.8,
        description="Every concept at or above this value ends the session",
    )
    zone_bonus: float = Field(
        default=1.0,
        description="Reward for quizzing a concept inside the learning zone",
    )
    mastered_penalty: float = Field(
        default=2.0,
        description="Penalty for quizzing an already mastered concept",
    )
    correct_bonus_scale: float = Field(
        default=2.0,
        description="Correct answers add correct_delta * correct_bonus_scale",
    )

    # ========================================
    # Agent
    # ========================================
    replay_capacity: int = Field(
        default=5000,
        ge=1,
        description="Maximum number of transitions kept in the experience store",
    )
    discount_factor: float = Field(
        default=0.9,
        ge=0.0,
        lt=1.0,
        description="Discount factor (gamma) for temporal-difference targets",
    )
    exploration_rate: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Epsilon for epsilon-greedy action selection",
    )
    learning_rate: float = Field(
        default=0.01,
        gt=0.0,
        description="SGD step size for the value estimator",
    )
    hidden_units: int = Field(
        default=32,
        ge=1,
        description="Hidden layer width of the value estimator",
    )
    random_seed: int | None = Field(
        default=None,
        description="Seed for exploration, sampling and weight init (None = random)",
    )

    # ========================================
    # Training
    # ========================================
    batch_size: int = Field(
        default=16,
        ge=1,
        description="Mini-batch size for online training after each attempt",
    )
    offline_batch_size: int = Field(
        default=32,
        ge=1,
        description="Mini-batch size for offline pretraining",
    )
    offline_epochs: int = Field(
        default=10,
        ge=0,
        description="Passes over the historical dataset during pretraining",
    )
    dataset_path: str = Field(
        default="data/generated_data.csv",
        description="Historical transition dataset (CSV) used for pretraining",
    )
    model_path: str = Field(
        default="data/policy_estimator.npz",
        description="Where pretrained estimator parameters are saved/loaded",
    )

    # ========================================
    # Practice Database
    # ========================================
    practice_database_url: str = Field(
        default="sqlite://",
        description="SQLAlchemy URL of the database learner queries run against",
    )

    # ========================================
    # API / Logging
    # ========================================
    api_host: str = Field(default="127.0.0.1", description="API bind host")
    api_port: int = Field(default=8100, description="API bind port")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Loguru sink level",
    )

    @model_validator(mode="after")
    def _check_thresholds(self) -> Settings:
        if self.learning_zone_low > self.learning_zone_high:
            raise ValueError("learning_zone_low must not exceed learning_zone_high")
        return self

    def get_reward_config(self) -> dict[str, Any]:
        """Get mastery environment policy as keyword arguments for RewardPolicy."""
        return {
            "initial_mastery": self.initial_mastery,
            "correct_delta": self.correct_delta,
            "incorrect_delta": self.incorrect_delta,
            "learning_zone_low": self.learning_zone_low,
            "learning_zone_high": self.learning_zone_high,
            "mastered_threshold": self.mastered_threshold,
            "done_threshold": self.done_threshold,
            "zone_bonus": self.zone_bonus,
            "mastered_penalty": self.mastered_penalty,
            "correct_bonus_scale": self.correct_bonus_scale,
        }

    def get_agent_config(self) -> dict[str, Any]:
        """Get estimator construction parameters (without the input size)."""
        return {
            "discount_factor": self.discount_factor,
            "exploration_rate": self.exploration_rate,
            "learning_rate": self.learning_rate,
            "hidden_units": self.hidden_units,
            "seed": self.random_seed,
        }

    def get_training_config(self) -> dict[str, Any]:
        """Get training loop parameters for the orchestrator."""
        return {
            "replay_capacity": self.replay_capacity,
            "batch_size": self.batch_size,
            "offline_batch_size": self.offline_batch_size,
            "offline_epochs": self.offline_epochs,
            "pretrain_on_setup": self.pretrain_on_setup,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
