"""Batch job runner with per-unit failure isolation."""

import time
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from discovery.batch.metrics import BatchMetrics


logger = structlog.get_logger()


@dataclass
class UnitResult:
    """Result of one unit of a batch job (a window, a domain, ...)."""

    unit_id: str
    success: bool
    duration_ms: float = 0.0
    value: Any = None
    error: str | None = None


@dataclass
class BatchResult:
    """Result of a complete batch job execution."""

    job: str
    run_id: str
    started_at: datetime
    finished_at: datetime
    unit_results: dict[str, UnitResult] = field(default_factory=dict)
    units_succeeded: int = 0
    units_failed: int = 0

    @property
    def success(self) -> bool:
        """Check that no unit failed."""
        return self.units_failed == 0

    @property
    def duration_ms(self) -> float:
        """Get total duration in milliseconds."""
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        """Summarize the run for logs and CLI output."""
        return {
            "job": self.job,
            "run_id": self.run_id,
            "units_succeeded": self.units_succeeded,
            "units_failed": self.units_failed,
            "duration_ms": round(self.duration_ms, 2),
            "failed_units": {
                unit_id: r.error for unit_id, r in self.unit_results.items() if not r.success
            },
        }


class BatchRunner:
    """Runs independent units of a batch job sequentially.

    One unit raising never stops the others; its error is logged and counted
    in the returned BatchResult.
    """

    def __init__(self, job: str, run_id: str | None = None) -> None:
        """Initialize the runner.

        Args:
            job: Job name (``trending``, ``reputation``, ...).
            run_id: Run identifier for logging (generated when omitted).
        """
        self._job = job
        self._run_id = run_id or str(uuid.uuid4())
        self._metrics = BatchMetrics.get_instance()
        self._log = logger.bind(component="batch", job=job, run_id=self._run_id)

    @property
    def run_id(self) -> str:
        """Get the run identifier."""
        return self._run_id

    def run(self, units: Mapping[str, Callable[[], Any]]) -> BatchResult:
        """Execute every unit and collect results.

        Args:
            units: Mapping of unit id to a zero-argument callable.

        Returns:
            BatchResult with per-unit outcomes.
        """
        started_at = datetime.now(UTC)
        self._log.info("batch_started", unit_count=len(units))

        result = BatchResult(
            job=self._job,
            run_id=self._run_id,
            started_at=started_at,
            finished_at=started_at,
        )

        for unit_id, unit in units.items():
            start = time.perf_counter()
            try:
                value = unit()
            except Exception as e:  # noqa: BLE001
                duration_ms = (time.perf_counter() - start) * 1000
                self._log.error(
                    "batch_unit_failed",
                    unit_id=unit_id,
                    error=str(e),
                    error_type=type(e).__name__,
                    duration_ms=round(duration_ms, 2),
                )
                result.unit_results[unit_id] = UnitResult(
                    unit_id=unit_id,
                    success=False,
                    duration_ms=duration_ms,
                    error=str(e),
                )
                result.units_failed += 1
                self._metrics.record_unit(self._job, success=False)
                continue

            duration_ms = (time.perf_counter() - start) * 1000
            result.unit_results[unit_id] = UnitResult(
                unit_id=unit_id,
                success=True,
                duration_ms=duration_ms,
                value=value,
            )
            result.units_succeeded += 1
            self._metrics.record_unit(self._job, success=True)

        result.finished_at = datetime.now(UTC)
        self._metrics.record_run(self._job, result.duration_ms)
        self._log.info(
            "batch_finished",
            units_succeeded=result.units_succeeded,
            units_failed=result.units_failed,
            duration_ms=round(result.duration_ms, 2),
        )
        return result
