"""Metrics collection for the experiment manager."""

from dataclasses import dataclass
from typing import ClassVar


@dataclass
class ExperimentMetrics:
    """Metrics for experiment operations.

    Attributes:
        assignments_total: New sticky assignments created.
        assignment_conflicts_total: Concurrent inserts resolved by re-reading.
        events_logged_total: Events appended to the log.
        events_dropped_total: Events lost because the append failed.
        transitions_total: Status transitions applied.
    """

    assignments_total: int = 0
    assignment_conflicts_total: int = 0
    events_logged_total: int = 0
    events_dropped_total: int = 0
    transitions_total: int = 0

    _instance: ClassVar["ExperimentMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "ExperimentMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def to_dict(self) -> dict[str, int]:
        """Convert metrics to dictionary."""
        return {
            "assignments_total": self.assignments_total,
            "assignment_conflicts_total": self.assignment_conflicts_total,
            "events_logged_total": self.events_logged_total,
            "events_dropped_total": self.events_dropped_total,
            "transitions_total": self.transitions_total,
        }
