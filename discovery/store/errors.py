"""Domain exceptions for the discovery store.

Infrastructure errors (connection, migration, slow queries) are kept apart
from domain errors (missing rows, write conflicts) so callers can decide which
ones are retryable.
"""


class DiscoveryStoreError(Exception):
    """Base exception for all discovery store errors."""


class ConnectionError(DiscoveryStoreError):
    """Raised when the database connection is missing or unusable."""

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)


class ContentNotFoundError(DiscoveryStoreError):
    """Raised when a content id does not exist."""

    def __init__(self, content_id: str) -> None:
        """Initialize the error with the missing content id.

        Args:
            content_id: The content id that was not found.
        """
        self.content_id = content_id
        super().__init__(f"Content not found: {content_id}")


class QueryTimeoutError(DiscoveryStoreError):
    """Raised when a query exceeds its latency budget and is interrupted."""

    def __init__(self, operation: str, budget_ms: float) -> None:
        """Initialize the timeout error.

        Args:
            operation: Name of the interrupted operation.
            budget_ms: Budget that was exceeded, in milliseconds.
        """
        self.operation = operation
        self.budget_ms = budget_ms
        super().__init__(f"Query '{operation}' exceeded budget of {budget_ms:.0f}ms")


class AssignmentConflictError(DiscoveryStoreError):
    """Raised when an experiment assignment already exists for the pair.

    Never surfaced to users: the experiment manager re-reads the stored row.
    """

    def __init__(self, user_id: str, experiment_id: str) -> None:
        """Initialize the conflict error.

        Args:
            user_id: User whose assignment already exists.
            experiment_id: Experiment the assignment belongs to.
        """
        self.user_id = user_id
        self.experiment_id = experiment_id
        super().__init__(
            f"Assignment already exists for user {user_id} in experiment {experiment_id}"
        )


class MigrationError(DiscoveryStoreError):
    """Raised when a schema migration fails."""

    def __init__(self, version: int, message: str) -> None:
        """Initialize the migration error.

        Args:
            version: The migration version that failed.
            message: Human-readable error message.
        """
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")
