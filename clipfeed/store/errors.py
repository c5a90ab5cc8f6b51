"""Domain exceptions for the signal store.

This module defines a hierarchy of exceptions for the signal store layer,
separating infrastructure errors (database issues) from domain errors.
Callers treat a missing clip as an empty result; these exceptions are
raised only where an operation cannot proceed at all.
"""


class SignalStoreError(Exception):
    """Base exception for all signal store errors.

    Store unavailability is propagated to the caller through this
    hierarchy; the ranking layer performs no retries of its own.
    """


class StoreConnectionError(SignalStoreError):
    """Raised when the database connection fails or is not established."""

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)


class ClipNotFoundError(SignalStoreError):
    """Raised by write operations that target a clip that does not exist."""

    def __init__(self, clip_id: str) -> None:
        """Initialize the error with the missing clip ID.

        Args:
            clip_id: The clip ID that was not found.
        """
        self.clip_id = clip_id
        super().__init__(f"Clip not found: {clip_id}")


class MigrationError(SignalStoreError):
    """Raised when a schema migration fails."""

    def __init__(self, version: int, message: str) -> None:
        """Initialize the migration error.

        Args:
            version: The migration version that failed.
            message: Human-readable error message.
        """
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")
