"""Constants for trending computation."""

from datetime import timedelta

from discovery.store.models import InteractionAction, TrendingWindow


# Weight of each interaction in the velocity sum
ACTION_WEIGHTS: dict[InteractionAction, float] = {
    InteractionAction.VIEW: 1.0,
    InteractionAction.LIKE: 3.0,
    InteractionAction.SAVE: 5.0,
    InteractionAction.SHARE: 4.0,
    InteractionAction.SKIP: -2.0,
    InteractionAction.DISLIKE: -2.0,
}

# Per-event recency decay half-life within each window
WINDOW_HALF_LIVES: dict[TrendingWindow, timedelta] = {
    TrendingWindow.HOUR: timedelta(minutes=15),
    TrendingWindow.DAY: timedelta(hours=6),
    TrendingWindow.WEEK: timedelta(days=2),
}

MIN_TRENDING_SCORE: float = 0.05
MAX_RECORDS_PER_WINDOW: int = 100

# Records computed before now - retention are deleted on each write
RECORD_RETENTION: timedelta = timedelta(days=7)

# Window whose score feeds the request-time trending boost
BOOST_WINDOW: TrendingWindow = TrendingWindow.DAY

# Time between scheduled recomputations of every window
DEFAULT_RECOMPUTE_INTERVAL: timedelta = timedelta(minutes=15)
