"""Metrics collection for the scoring engine."""

from collections import deque
from dataclasses import dataclass, field
from threading import Lock


# Module-level singleton state
_metrics_instance: "EngineMetrics | None" = None
_metrics_lock: Lock = Lock()

# Recent selected scores kept for percentile reporting
_SCORE_SAMPLE_SIZE = 1000


def _percentile(values: list[float], fraction: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    index = min(len(ordered) - 1, int(round(fraction * (len(ordered) - 1))))
    return ordered[index]


@dataclass
class EngineMetrics:
    """Thread-safe metrics for discovery requests.

    Use get_instance() for singleton access.
    """

    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    requests_total: int = 0
    selections_total: int = 0
    empty_pools_total: int = 0
    fetch_timeouts_total: int = 0
    relaxed_retries_total: int = 0
    candidates_scored_total: int = 0
    selections_by_variant: dict[str, int] = field(default_factory=dict)
    selected_scores: deque[float] = field(
        default_factory=lambda: deque(maxlen=_SCORE_SAMPLE_SIZE)
    )

    @classmethod
    def get_instance(cls) -> "EngineMetrics":
        """Get the singleton instance (thread-safe).

        Returns:
            The shared EngineMetrics instance.
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

    def record_request(self) -> None:
        """Record an incoming discovery request."""
        with self._lock:
            self.requests_total += 1

    def record_selection(self, score: float, candidates: int, variant: str | None) -> None:
        """Record a completed selection.

        Args:
            score: Score of the selected item.
            candidates: Number of candidates scored.
            variant: Experiment variant, if any.
        """
        with self._lock:
            self.selections_total += 1
            self.candidates_scored_total += candidates
            self.selected_scores.append(score)
            key = variant or "default"
            self.selections_by_variant[key] = self.selections_by_variant.get(key, 0) + 1

    def record_empty_pool(self) -> None:
        """Record a request whose candidate pool was empty."""
        with self._lock:
            self.empty_pools_total += 1

    def record_fetch_timeout(self) -> None:
        """Record a candidate fetch over budget."""
        with self._lock:
            self.fetch_timeouts_total += 1

    def record_relaxed_retry(self) -> None:
        """Record a retry with relaxed filters."""
        with self._lock:
            self.relaxed_retries_total += 1

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary."""
        with self._lock:
            scores = list(self.selected_scores)
            return {
                "requests_total": self.requests_total,
                "selections_total": self.selections_total,
                "empty_pools_total": self.empty_pools_total,
                "fetch_timeouts_total": self.fetch_timeouts_total,
                "relaxed_retries_total": self.relaxed_retries_total,
                "candidates_scored_total": self.candidates_scored_total,
                "selections_by_variant": dict(self.selections_by_variant),
                "score_p50": _percentile(scores, 0.5),
                "score_p95": _percentile(scores, 0.95),
            }
