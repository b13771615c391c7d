"""Scheduled batch jobs with per-unit failure isolation."""

from discovery.batch.metrics import BatchMetrics
from discovery.batch.runner import BatchResult, BatchRunner, UnitResult


__all__ = ["BatchMetrics", "BatchResult", "BatchRunner", "UnitResult"]
