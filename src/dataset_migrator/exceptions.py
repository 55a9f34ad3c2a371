"""
Custom exception classes for the dataset migration tool.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class ConfigurationError(MigrationError):
    """Raised when settings cannot be loaded or are invalid."""


class InvalidUrlError(MigrationError):
    """Raised when a source URL cannot be parsed for its platform."""


class PlatformError(MigrationError):
    """Raised when a platform API call fails."""

    status: int | None

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class UnsupportedPlatformError(MigrationError):
    """Raised when no adapter exists for the requested platform role."""


class AnalysisError(MigrationError):
    """Raised when the analysis provider fails or returns an unusable reply."""


class StepTimeoutError(MigrationError):
    """Raised when a migration step exceeds the configured timeout."""


class InvalidTransitionError(MigrationError):
    """Raised when a job status change would move backwards."""


class RequestValidationError(MigrationError):
    """Raised when a migration request body is malformed."""

    errors: dict[str, str]

    def __init__(self, message: str, errors: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or {}


class NotFoundError(MigrationError):
    """Raised when a requested record does not exist."""


class InvalidStateError(MigrationError):
    """Raised when an operation is not allowed in the record's current state."""
