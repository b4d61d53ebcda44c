"""
Core Module - error kinds shared by every tutoring component.

Components:
- exceptions: TutorError hierarchy (invalid action, not initialized,
  insufficient data, malformed dataset record, configuration)
"""

from src.core.exceptions import (
    ConfigurationError,
    InsufficientDataError,
    InvalidActionError,
    MalformedDatasetRecordError,
    NotInitializedError,
    SessionNotFoundError,
    TutorError,
)

__all__ = [
    "ConfigurationError",
    "InsufficientDataError",
    "InvalidActionError",
    "MalformedDatasetRecordError",
    "NotInitializedError",
    "SessionNotFoundError",
    "TutorError",
]
