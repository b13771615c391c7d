"""Trending velocity computation per time window."""

from discovery.trending.calculator import (
    TrendingCalculator,
    TrendingRunResult,
    score_window,
)
from discovery.trending.scheduler import TrendingScheduler


__all__ = ["TrendingCalculator", "TrendingRunResult", "TrendingScheduler", "score_window"]
