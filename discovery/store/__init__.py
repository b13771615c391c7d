"""SQLite store adapter for discovery content, snapshots, and experiments.

This module provides persistent storage for:
- Content items, users, and the append-only interaction log
- Domain reputation, trending, and similar-edge snapshots
- Experiment definitions, sticky assignments, and the event log
"""

from discovery.store.errors import (
    AssignmentConflictError,
    ConnectionError,
    ContentNotFoundError,
    DiscoveryStoreError,
    MigrationError,
    QueryTimeoutError,
)
from discovery.store.metrics import MetricsRecorder, NullMetricsRecorder, StoreMetrics
from discovery.store.models import (
    ContentItem,
    DomainStats,
    Experiment,
    ExperimentAssignment,
    ExperimentEvent,
    ExperimentEventType,
    ExperimentStatus,
    HistoryEntry,
    InteractionAction,
    ModerationStatus,
    OrderHint,
    ReputationRecord,
    SimilarEdge,
    TrendingRecord,
    TrendingWindow,
    UserContext,
    Variant,
    VariantEventCounts,
)
from discovery.store.store import DiscoveryStore


__all__ = [
    # Errors
    "AssignmentConflictError",
    "ConnectionError",
    "ContentNotFoundError",
    "DiscoveryStoreError",
    "MigrationError",
    "QueryTimeoutError",
    # Metrics
    "MetricsRecorder",
    "NullMetricsRecorder",
    "StoreMetrics",
    # Models
    "ContentItem",
    "DomainStats",
    "Experiment",
    "ExperimentAssignment",
    "ExperimentEvent",
    "ExperimentEventType",
    "ExperimentStatus",
    "HistoryEntry",
    "InteractionAction",
    "ModerationStatus",
    "OrderHint",
    "ReputationRecord",
    "SimilarEdge",
    "TrendingRecord",
    "TrendingWindow",
    "UserContext",
    "Variant",
    "VariantEventCounts",
    # Store
    "DiscoveryStore",
]
