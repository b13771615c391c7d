"""Metrics collection for batch jobs."""

from collections import Counter
from dataclasses import dataclass, field
from threading import Lock


# Module-level singleton state
_metrics_instance: "BatchMetrics | None" = None
_metrics_lock: Lock = Lock()


@dataclass
class BatchMetrics:
    """Thread-safe metrics for batch job runs.

    Use get_instance() for singleton access.
    """

    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    # Unit outcomes keyed by (job, "succeeded" | "failed")
    units_by_job_outcome: Counter[tuple[str, str]] = field(default_factory=Counter)

    # Duration of the most recent run per job
    last_run_duration_ms: dict[str, float] = field(default_factory=dict)

    runs_total: int = 0

    @classmethod
    def get_instance(cls) -> "BatchMetrics":
        """Get the singleton instance (thread-safe).

        Returns:
            The shared BatchMetrics instance.
        """
        global _metrics_instance  # noqa: PLW0603
        if _metrics_instance is None:
            with _metrics_lock:
                if _metrics_instance is None:
                    _metrics_instance = cls()
        return _metrics_instance

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton instance (for testing)."""
        global _metrics_instance  # noqa: PLW0603
        with _metrics_lock:
            _metrics_instance = None

    def record_unit(self, job: str, *, success: bool) -> None:
        """Record the outcome of one unit.

        Args:
            job: Job name.
            success: Whether the unit completed.
        """
        with self._lock:
            self.units_by_job_outcome[(job, "succeeded" if success else "failed")] += 1

    def record_run(self, job: str, duration_ms: float) -> None:
        """Record a finished run.

        Args:
            job: Job name.
            duration_ms: Run duration in milliseconds.
        """
        with self._lock:
            self.last_run_duration_ms[job] = duration_ms
            self.runs_total += 1

    def get_failed_total(self, job: str | None = None) -> int:
        """Get failed units, optionally for one job."""
        with self._lock:
            return sum(
                count
                for (unit_job, outcome), count in self.units_by_job_outcome.items()
                if outcome == "failed" and (job is None or unit_job == job)
            )

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary."""
        with self._lock:
            return {
                "runs_total": self.runs_total,
                "units": {
                    f"{job}.{outcome}": count
                    for (job, outcome), count in sorted(self.units_by_job_outcome.items())
                },
                "last_run_duration_ms": dict(self.last_run_duration_ms),
            }
