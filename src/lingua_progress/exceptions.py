"""Custom exception hierarchy for lingua-progress."""


class LinguaProgressError(Exception):
    """Base exception for all lingua-progress errors."""


class ValidationError(LinguaProgressError):
    """Invalid input (malformed interchange document, out-of-range level)."""


class EntityNotFoundError(LinguaProgressError):
    """Entity doesn't exist in the store."""


class StoreTransactionFailure(LinguaProgressError):
    """A multi-table write failed and was rolled back."""


class DatabaseError(LinguaProgressError):
    """Schema version mismatch, connection failure."""


class SyncSessionError(LinguaProgressError):
    """Network pairing failed, timed out, or was cancelled."""


class ConfigError(LinguaProgressError):
    """Unreadable or invalid configuration file."""

    def __init__(self, message: str, line: int | None = None):
        self.line = line
        super().__init__(message)
