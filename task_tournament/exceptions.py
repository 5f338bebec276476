"""
Exception classes for the task tournament system.

Centralized location for all custom exceptions to avoid circular imports.
"""


class TournamentError(Exception):
    """Base exception for all ranking-engine errors."""
    pass


class InsufficientTasks(TournamentError):
    """Fewer than two open tasks are available for a comparison."""
    pass


class StaleComparison(TournamentError):
    """A task in the comparison vanished or was closed after selection."""
    pass


class OutcomeMismatch(TournamentError):
    """The outcome names a different pair than the comparison it answers."""
    pass


class ConcurrentUpdateConflict(TournamentError):
    """Score update kept losing the version race until retries ran out."""
    pass


class VoteLimitExceeded(TournamentError):
    """The voter has used up their weekly vote allowance."""
    pass


class StorageError(TournamentError):
    """Base exception for storage-layer errors."""
    pass


class StorageUnavailable(StorageError):
    """The storage backend failed or could not be read."""
    pass


class TaskNotFound(StorageError):
    """No task with the requested id exists."""
    pass


class VoterNotFound(StorageError):
    """No voter with the requested id exists."""
    pass


class VersionConflict(StorageError):
    """An expected task version did not match the stored version."""
    pass


class ValidationError(Exception):
    """Base exception for validation-related errors."""
    pass


class ConfigurationError(Exception):
    """Base exception for configuration-related errors."""
    pass
