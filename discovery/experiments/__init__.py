"""A/B experiments over scoring weight sets."""

from discovery.experiments.errors import (
    AssignmentConflictError,
    ExperimentError,
    ExperimentLockedError,
    ExperimentNotFoundError,
    ExperimentStateTransitionError,
    InvalidExperimentConfigError,
)
from discovery.experiments.manager import ExperimentManager
from discovery.experiments.metrics import ExperimentMetrics
from discovery.experiments.models import (
    ExperimentDefinition,
    ExperimentResults,
    ExperimentUpdate,
    Recommendation,
    RecommendationStatus,
    VariantComparison,
    VariantMetrics,
)
from discovery.experiments.state_machine import ExperimentStateMachine


__all__ = [
    # Errors
    "AssignmentConflictError",
    "ExperimentError",
    "ExperimentLockedError",
    "ExperimentNotFoundError",
    "ExperimentStateTransitionError",
    "InvalidExperimentConfigError",
    # Manager
    "ExperimentManager",
    "ExperimentMetrics",
    "ExperimentStateMachine",
    # Models
    "ExperimentDefinition",
    "ExperimentResults",
    "ExperimentUpdate",
    "Recommendation",
    "RecommendationStatus",
    "VariantComparison",
    "VariantMetrics",
]
