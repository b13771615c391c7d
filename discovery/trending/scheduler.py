"""Fixed-interval trending recomputation."""

import sqlite3
import time
from collections.abc import Callable, Sequence
from datetime import timedelta
from pathlib import Path

import structlog

from discovery.batch.runner import BatchResult
from discovery.store.errors import DiscoveryStoreError
from discovery.store.models import TrendingWindow
from discovery.store.store import DiscoveryStore
from discovery.trending.calculator import TrendingCalculator
from discovery.trending.constants import DEFAULT_RECOMPUTE_INTERVAL


logger = structlog.get_logger()


class TrendingScheduler:
    """Recomputes every trending window on a fixed interval.

    Each tick opens the store, runs :meth:`TrendingCalculator.recompute_all`
    and closes it again. A tick that cannot reach the store is logged and the
    loop carries on with the next one.
    """

    def __init__(
        self,
        db_path: Path,
        interval: timedelta = DEFAULT_RECOMPUTE_INTERVAL,
        windows: Sequence[TrendingWindow] = tuple(TrendingWindow),
        run_id: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the scheduler.

        Args:
            db_path: SQLite database path.
            interval: Time between the starts of consecutive ticks.
            windows: Windows recomputed on each tick.
            run_id: Run identifier for logging.
            sleep: Sleep function, replaceable in tests.
        """
        if interval <= timedelta(0):
            raise ValueError(f"interval must be positive, got {interval}")
        self._db_path = db_path
        self._interval = interval
        self._windows = list(windows)
        self._run_id = run_id
        self._sleep = sleep
        self._log = logger.bind(component="trending_scheduler", run_id=run_id)

    def tick(self) -> BatchResult | None:
        """Recompute all windows once.

        Returns:
            The batch result, or None if the store could not be used.
        """
        try:
            with DiscoveryStore(self._db_path, run_id=self._run_id) as store:
                result = TrendingCalculator(store, run_id=self._run_id).recompute_all(
                    self._windows
                )
        except (DiscoveryStoreError, sqlite3.Error) as e:
            self._log.error("trending_tick_failed", error=str(e))
            return None

        self._log.info(
            "trending_tick_completed",
            succeeded=result.units_succeeded,
            failed=result.units_failed,
            duration_ms=round(result.duration_ms, 2),
        )
        return result

    def run(self, max_ticks: int | None = None) -> int:
        """Tick until ``max_ticks`` is reached, or forever when it is None.

        Args:
            max_ticks: Number of ticks to run.

        Returns:
            Number of ticks run.
        """
        interval_s = self._interval.total_seconds()
        self._log.info(
            "trending_scheduler_started",
            interval_s=interval_s,
            windows=[w.value for w in self._windows],
        )
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            started = time.monotonic()
            self.tick()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            self._sleep(max(0.0, interval_s - (time.monotonic() - started)))
        return ticks
