"""Metrics collection for the discovery store."""

from dataclasses import dataclass, field
from typing import ClassVar, Protocol


class MetricsRecorder(Protocol):
    """Protocol for store metrics recording.

    Lets tests inject a recorder that discards or inspects metrics.
    """

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record transaction duration in milliseconds."""
        ...

    def record_content_upsert(self) -> None:
        """Record a content row insert or update."""
        ...

    def record_interaction(self) -> None:
        """Record an appended interaction."""
        ...

    def record_candidate_fetch(self, duration_ms: float, rows: int) -> None:
        """Record a candidate query."""
        ...

    def record_query_timeout(self) -> None:
        """Record a query interrupted by its latency budget."""
        ...

    def record_rows_pruned(self, table: str, count: int) -> None:
        """Record rows removed by retention."""
        ...


@dataclass
class NullMetricsRecorder:
    """No-op metrics recorder for testing."""

    def record_tx_duration(self, duration_ms: float) -> None:  # noqa: ARG002
        """No-op."""

    def record_content_upsert(self) -> None:
        """No-op."""

    def record_interaction(self) -> None:
        """No-op."""

    def record_candidate_fetch(self, duration_ms: float, rows: int) -> None:  # noqa: ARG002
        """No-op."""

    def record_query_timeout(self) -> None:
        """No-op."""

    def record_rows_pruned(self, table: str, count: int) -> None:  # noqa: ARG002
        """No-op."""


@dataclass
class StoreMetrics:
    """Metrics for discovery store operations.

    Attributes:
        db_tx_duration_ms: Cumulative transaction duration in milliseconds.
        db_tx_count: Number of committed transactions.
        content_upserts_total: Content rows inserted or updated.
        interactions_total: Interactions appended.
        candidate_fetches_total: Candidate queries executed.
        candidate_fetch_duration_ms: Cumulative candidate query time.
        candidate_rows_total: Candidate rows returned.
        query_timeouts_total: Queries interrupted by the latency budget.
        rows_pruned: Rows removed by retention, per table.
    """

    db_tx_duration_ms: float = 0.0
    db_tx_count: int = 0
    content_upserts_total: int = 0
    interactions_total: int = 0
    candidate_fetches_total: int = 0
    candidate_fetch_duration_ms: float = 0.0
    candidate_rows_total: int = 0
    query_timeouts_total: int = 0
    rows_pruned: dict[str, int] = field(default_factory=dict)

    _instance: ClassVar["StoreMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "StoreMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_tx_duration(self, duration_ms: float) -> None:
        """Record transaction duration.

        Args:
            duration_ms: Duration in milliseconds.
        """
        self.db_tx_duration_ms += duration_ms
        self.db_tx_count += 1

    def record_content_upsert(self) -> None:
        """Record a content upsert."""
        self.content_upserts_total += 1

    def record_interaction(self) -> None:
        """Record an appended interaction."""
        self.interactions_total += 1

    def record_candidate_fetch(self, duration_ms: float, rows: int) -> None:
        """Record a candidate query.

        Args:
            duration_ms: Query duration in milliseconds.
            rows: Number of candidates returned.
        """
        self.candidate_fetches_total += 1
        self.candidate_fetch_duration_ms += duration_ms
        self.candidate_rows_total += rows

    def record_query_timeout(self) -> None:
        """Record a query interrupted by its latency budget."""
        self.query_timeouts_total += 1

    def record_rows_pruned(self, table: str, count: int) -> None:
        """Record pruned rows.

        Args:
            table: Table the rows were removed from.
            count: Number of rows removed.
        """
        self.rows_pruned[table] = self.rows_pruned.get(table, 0) + count

    @property
    def avg_tx_duration_ms(self) -> float:
        """Average transaction duration in milliseconds."""
        if self.db_tx_count == 0:
            return 0.0
        return self.db_tx_duration_ms / self.db_tx_count

    def to_dict(self) -> dict[str, object]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "db_tx_duration_ms": self.db_tx_duration_ms,
            "db_tx_count": self.db_tx_count,
            "content_upserts_total": self.content_upserts_total,
            "interactions_total": self.interactions_total,
            "candidate_fetches_total": self.candidate_fetches_total,
            "candidate_fetch_duration_ms": self.candidate_fetch_duration_ms,
            "candidate_rows_total": self.candidate_rows_total,
            "query_timeouts_total": self.query_timeouts_total,
            "rows_pruned": dict(self.rows_pruned),
        }


@dataclass
class TransactionContext:
    """Context for a single transaction with timing.

    Attributes:
        tx_id: Unique transaction identifier.
        start_time_ns: Start time in nanoseconds.
        operation: The operation being performed.
    """

    tx_id: str
    start_time_ns: int
    operation: str
    affected_rows: int = field(default=0)

    def add_affected_rows(self, rows: int) -> None:
        """Add to the affected row count.

        Args:
            rows: Number of rows affected.
        """
        self.affected_rows += rows
