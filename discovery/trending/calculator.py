"""Time-windowed trending velocity.

Each window (hour, day, week) is scored independently: interactions inside the
window are weighted by action and decayed by age, normalized by views, and
boosted by absolute view volume. The result is written as a full replacement
of that window's snapshot.
"""

import math
import time
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog

from discovery.batch.runner import BatchResult, BatchRunner
from discovery.store.models import InteractionAction, TrendingRecord, TrendingWindow
from discovery.store.store import DiscoveryStore
from discovery.trending.constants import (
    ACTION_WEIGHTS,
    MAX_RECORDS_PER_WINDOW,
    MIN_TRENDING_SCORE,
    RECORD_RETENTION,
    WINDOW_HALF_LIVES,
)


logger = structlog.get_logger()


@dataclass(frozen=True)
class TrendingRunResult:
    """Outcome of recomputing one window."""

    window: TrendingWindow
    interactions_read: int
    records_written: int
    records_pruned: int
    duration_ms: float

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary."""
        return {
            "window": self.window.value,
            "interactions_read": self.interactions_read,
            "records_written": self.records_written,
            "records_pruned": self.records_pruned,
            "duration_ms": round(self.duration_ms, 2),
        }


def recency_decay(age: timedelta, half_life: timedelta) -> float:
    """Exponential decay of an event's weight by its age."""
    seconds = max(0.0, age.total_seconds())
    return math.exp(-math.log(2) * seconds / half_life.total_seconds())


def volume_boost(views: int) -> float:
    """Reward absolute popularity: ``1 + log10(1 + views) / 2``."""
    return 1.0 + math.log10(1 + views) / 2


def score_window(
    interactions: Iterable[tuple[str, InteractionAction, datetime]],
    window: TrendingWindow,
    now: datetime,
    min_score: float = MIN_TRENDING_SCORE,
    max_records: int = MAX_RECORDS_PER_WINDOW,
) -> list[TrendingRecord]:
    """Score content from the interactions of one window.

    Pure function; the caller supplies interactions already limited to the
    window.

    Args:
        interactions: (content id, action, occurred at) tuples.
        window: Window being scored.
        now: Computation time (end of the window).
        min_score: Records below this score are dropped.
        max_records: Maximum records kept.

    Returns:
        Records ordered by score descending.
    """
    half_life = WINDOW_HALF_LIVES[window]
    weighted: dict[str, float] = defaultdict(float)
    views: dict[str, int] = defaultdict(int)
    counts: dict[str, int] = defaultdict(int)

    for content_id, action, occurred_at in interactions:
        weighted[content_id] += ACTION_WEIGHTS[action] * recency_decay(
            now - occurred_at, half_life
        )
        counts[content_id] += 1
        if action == InteractionAction.VIEW:
            views[content_id] += 1

    records: list[TrendingRecord] = []
    for content_id, weighted_sum in weighted.items():
        view_count = views[content_id]
        velocity = max(0.0, weighted_sum) / max(1, view_count)
        score = velocity * volume_boost(view_count)
        if score < min_score:
            continue
        records.append(
            TrendingRecord(
                content_id=content_id,
                window=window,
                score=score,
                velocity=velocity,
                interaction_count=counts[content_id],
                view_count=view_count,
                computed_at=now,
            )
        )

    records.sort(key=lambda r: (-r.score, r.content_id))
    return records[:max_records]


class TrendingCalculator:
    """Recomputes trending snapshots for each window."""

    def __init__(
        self,
        store: DiscoveryStore,
        run_id: str | None = None,
        now: datetime | None = None,
        retention: timedelta = RECORD_RETENTION,
    ) -> None:
        """Initialize the calculator.

        Args:
            store: Connected store.
            run_id: Run identifier for logging.
            now: Fixed computation time (defaults to the wall clock per call).
            retention: Age after which stored records are deleted.
        """
        self._store = store
        self._run_id = run_id
        self._now = now
        self._retention = retention
        self._log = logger.bind(component="trending", run_id=run_id)

    def recompute(self, window: TrendingWindow) -> TrendingRunResult:
        """Recompute and replace one window's snapshot.

        Args:
            window: Window to recompute.

        Returns:
            TrendingRunResult with counts.
        """
        start = time.perf_counter()
        now = self._now or datetime.now(UTC)

        interactions = self._store.fetch_window_interactions(now - window.duration, now)
        records = score_window(interactions, window, now)
        pruned = self._store.upsert_trending_records(
            window, records, retention_cutoff=now - self._retention
        )

        result = TrendingRunResult(
            window=window,
            interactions_read=len(interactions),
            records_written=len(records),
            records_pruned=pruned,
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        self._log.info("trending_window_recomputed", **result.to_dict())
        return result

    def recompute_all(
        self, windows: Sequence[TrendingWindow] = tuple(TrendingWindow)
    ) -> BatchResult:
        """Recompute several windows; one failing never blocks the others.

        Args:
            windows: Windows to recompute.

        Returns:
            BatchResult keyed by window name.
        """
        runner = BatchRunner("trending", run_id=self._run_id)
        return runner.run({w.value: (lambda w=w: self.recompute(w)) for w in windows})
