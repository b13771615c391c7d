"""Errors raised while serving a discovery request."""


class ScoringError(Exception):
    """Base exception for scoring engine errors."""


class NoCandidatesError(ScoringError):
    """Raised when no eligible candidate remains for the user."""

    def __init__(self, user_id: str, relaxed: bool = False) -> None:
        """Initialize the error.

        Args:
            user_id: Requesting user.
            relaxed: Whether relaxed filters were already in use.
        """
        self.user_id = user_id
        self.relaxed = relaxed
        mode = "relaxed" if relaxed else "standard"
        super().__init__(f"No candidates available for user {user_id} ({mode} filters)")


class CandidateFetchTimeout(ScoringError):
    """Raised when the candidate query exceeds the request budget (retryable)."""

    def __init__(self, budget_ms: float, pool_size: int) -> None:
        """Initialize the error.

        Args:
            budget_ms: Budget that was exceeded.
            pool_size: Candidate pool size requested.
        """
        self.budget_ms = budget_ms
        self.pool_size = pool_size
        super().__init__(
            f"Candidate fetch exceeded {budget_ms:.0f}ms (pool size {pool_size})"
        )
