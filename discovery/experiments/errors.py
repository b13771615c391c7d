"""Errors raised by the experiment manager."""

from discovery.experiments.state_machine import ExperimentStateTransitionError
from discovery.store.errors import AssignmentConflictError


class ExperimentError(Exception):
    """Base exception for experiment management errors."""


class InvalidExperimentConfigError(ExperimentError):
    """Raised when an experiment definition fails validation."""

    def __init__(self, errors: list[str]) -> None:
        """Initialize the error.

        Args:
            errors: Human-readable validation problems.
        """
        self.errors = errors
        super().__init__("Invalid experiment configuration: " + "; ".join(errors))


class ExperimentLockedError(ExperimentError):
    """Raised when a change is not allowed in the experiment's current state."""

    def __init__(self, experiment_id: str, reason: str) -> None:
        """Initialize the error.

        Args:
            experiment_id: Experiment identifier.
            reason: Why the change is rejected.
        """
        self.experiment_id = experiment_id
        self.reason = reason
        super().__init__(f"Experiment {experiment_id} is locked: {reason}")


class ExperimentNotFoundError(ExperimentError):
    """Raised when an experiment id does not exist."""

    def __init__(self, experiment_id: str) -> None:
        """Initialize the error.

        Args:
            experiment_id: The missing experiment id.
        """
        self.experiment_id = experiment_id
        super().__init__(f"Experiment not found: {experiment_id}")


__all__ = [
    "AssignmentConflictError",
    "ExperimentError",
    "ExperimentLockedError",
    "ExperimentNotFoundError",
    "ExperimentStateTransitionError",
    "InvalidExperimentConfigError",
]
