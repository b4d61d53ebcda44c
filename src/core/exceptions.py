"""
Error kinds raised by the tutoring core.

Validation errors (invalid action, not initialized) are surfaced to the
session driver. Data sparsity and malformed dataset records are absorbed by
the training loop and only degrade how much training happens.
"""

from __future__ import annotations


class TutorError(Exception):
    """Base class for all tutoring core errors."""
    pass


class ConfigurationError(TutorError):
    """Raised when core components are constructed with invalid parameters."""
    pass


class InvalidActionError(TutorError):
    """Raised when a concept index is outside [0, num_concepts)."""

    def __init__(self, action: object, num_concepts: int):
        self.action = action
        self.num_concepts = num_concepts
        super().__init__(
            f"Action {action!r} is not a valid concept index (expected 0..{num_concepts - 1})"
        )


class NotInitializedError(TutorError):
    """Raised when a session operation runs before the session was set up."""
    pass


class SessionNotFoundError(NotInitializedError):
    """Raised when a session id is not present in the session registry."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id!r} not found or not initialized")


class InsufficientDataError(TutorError):
    """Raised when a batch is requested from a store holding too few transitions."""

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Requested batch of {requested} transitions but only {available} stored"
        )


class MalformedDatasetRecordError(TutorError):
    """Raised when a historical dataset record cannot be parsed into a Transition."""

    def __init__(self, message: str, line_number: int | None = None):
        self.line_number = line_number
        prefix = f"line {line_number}: " if line_number is not None else ""
        super().__init__(f"{prefix}{message}")
