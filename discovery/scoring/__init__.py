"""Candidate scoring and explore/exploit selection."""

from discovery.scoring.engine import DiscoveryEngine
from discovery.scoring.errors import CandidateFetchTimeout, NoCandidatesError, ScoringError
from discovery.scoring.metrics import EngineMetrics
from discovery.scoring.models import ScoreComponents, ScoredCandidate, Selection
from discovery.scoring.personalization import (
    ClusterStrategy,
    NeutralClusterStrategy,
    PeerEngagementClusterStrategy,
    build_cluster_strategy,
)
from discovery.scoring.scorer import CandidateScorer, ScorerConfig, score_candidates_pure
from discovery.scoring.selection import select_top_k, top_k_size, weighted_choice


__all__ = [
    "CandidateFetchTimeout",
    "CandidateScorer",
    "ClusterStrategy",
    "DiscoveryEngine",
    "EngineMetrics",
    "NeutralClusterStrategy",
    "NoCandidatesError",
    "PeerEngagementClusterStrategy",
    "ScoreComponents",
    "ScoredCandidate",
    "ScorerConfig",
    "ScoringError",
    "Selection",
    "build_cluster_strategy",
    "score_candidates_pure",
    "select_top_k",
    "top_k_size",
    "weighted_choice",
]
