"""Multiplicative candidate scorer."""

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog

from discovery.config.schemas.scoring import ScoringWeights
from discovery.reputation.aggregator import reputation_multiplier
from discovery.scoring.models import ScoreComponents, ScoredCandidate
from discovery.scoring.personalization import (
    NEUTRAL_SIGNAL,
    diversity_score,
    history_affinity,
    time_of_day_score,
)
from discovery.similarity.matcher import TopicSimilarityMatcher
from discovery.store.models import ContentItem, UserContext


logger = structlog.get_logger()


@dataclass
class ScorerConfig:
    """Configuration bundle for CandidateScorer.

    Attributes:
        weights: Versioned scoring weights (exponents and parameters).
        now: Current time for freshness and time-of-day.
        matcher: Topic matcher carrying corpus IDF statistics.
        reputations: Reputation score per domain (missing domains are neutral).
        trending_scores: Day-window trending score per content id.
        cluster_scores: Collaborative signal per content id.
    """

    weights: ScoringWeights
    now: datetime | None = None
    matcher: TopicSimilarityMatcher = field(default_factory=TopicSimilarityMatcher)
    reputations: Mapping[str, float] = field(default_factory=dict)
    trending_scores: Mapping[str, float] = field(default_factory=dict)
    cluster_scores: Mapping[str, float] = field(default_factory=dict)


class CandidateScorer:
    """Computes scores for discovery candidates.

    Scoring formula:
        score = quality^wq * freshness^wf * topic^wt * reputation^wr
              * personalization^wp * diversity^wd * trending^wtr

    Where every exponent comes from ScoringWeights and an exponent of 0
    removes that factor.
    """

    def __init__(self, config: ScorerConfig) -> None:
        """Initialize the scorer.

        Args:
            config: Scorer configuration bundle.
        """
        self._weights = config.weights
        self._now = config.now or datetime.now(UTC)
        self._matcher = config.matcher
        self._reputations = config.reputations
        self._trending = config.trending_scores
        self._cluster = config.cluster_scores
        self._log = logger.bind(component="scoring", subcomponent="scorer")

    def score_candidate(self, user: UserContext, content: ContentItem) -> ScoredCandidate:
        """Compute the score of one candidate for one user.

        Args:
            user: Requesting user.
            content: Candidate item.

        Returns:
            ScoredCandidate with computed components.
        """
        w = self._weights
        quality = content.quality_score
        freshness = self._compute_freshness(content)
        topic = self._compute_topic_similarity(user, content)
        reputation = reputation_multiplier(self._reputations.get(content.domain))
        personalization = self._compute_personalization(user, content)
        diversity = self._compute_diversity(user, content)
        trending = self._compute_trending_boost(content)

        total = (
            quality**w.quality_weight
            * freshness**w.freshness_weight
            * topic**w.topic_weight
            * reputation**w.reputation_weight
            * personalization**w.personalization_weight
            * diversity**w.diversity_weight
            * trending**w.trending_weight
        )

        return ScoredCandidate(
            content=content,
            components=ScoreComponents(
                quality=quality,
                freshness=freshness,
                topic_similarity=topic,
                reputation_multiplier=reputation,
                personalization=personalization,
                diversity=diversity,
                trending_boost=trending,
                total_score=total,
            ),
        )

    def score_candidates(
        self, user: UserContext, candidates: Sequence[ContentItem]
    ) -> list[ScoredCandidate]:
        """Score multiple candidates.

        Args:
            user: Requesting user.
            candidates: Candidate items.

        Returns:
            List of ScoredCandidate objects in input order.
        """
        scored = [self.score_candidate(user, c) for c in candidates]
        self._log.debug(
            "scoring_complete",
            user_id=user.user_id,
            candidates_scored=len(scored),
            weights_version=self._weights.version,
            min_score=min((s.score for s in scored), default=0.0),
            max_score=max((s.score for s in scored), default=0.0),
        )
        return scored

    def _compute_freshness(self, content: ContentItem) -> float:
        """Exponential decay: ``exp(-ln 2 * age_days / half_life)``."""
        age_days = content.age_days(self._now)
        return math.exp(-math.log(2) * age_days / self._weights.freshness_half_life_days)

    def _compute_topic_similarity(self, user: UserContext, content: ContentItem) -> float:
        """Floored similarity between preferred topics and the candidate."""
        if not user.preferred_topics:
            return NEUTRAL_SIGNAL
        floor = self._weights.topic_similarity_floor
        similarity = self._matcher.profile_similarity(user.preferred_topics, content.topics)
        return floor + (1.0 - floor) * similarity

    def _compute_personalization(self, user: UserContext, content: ContentItem) -> float:
        """Share-weighted blend of history, time-of-day, and cluster signals."""
        w = self._weights
        history = history_affinity(user.history, content) if user.history else NEUTRAL_SIGNAL
        time_of_day = time_of_day_score(user.history, content.topics, self._now)
        cluster = self._cluster.get(content.id, NEUTRAL_SIGNAL)

        shares = (
            w.personalization_topic_share
            + w.personalization_time_share
            + w.personalization_cluster_share
        )
        blended = (
            w.personalization_topic_share * history
            + w.personalization_time_share * time_of_day
            + w.personalization_cluster_share * cluster
        ) / shares
        return max(0.0, min(1.0, blended))

    def _compute_diversity(self, user: UserContext, content: ContentItem) -> float:
        """Floored novelty against recent history."""
        floor = self._weights.diversity_floor
        return floor + (1.0 - floor) * diversity_score(user.history, content)

    def _compute_trending_boost(self, content: ContentItem) -> float:
        """``1 + scale * min(1, trending score)``."""
        trending = self._trending.get(content.id, 0.0)
        return 1.0 + self._weights.trending_boost_scale * min(1.0, trending)


def score_candidates_pure(
    user: UserContext,
    candidates: Sequence[ContentItem],
    config: ScorerConfig,
) -> list[ScoredCandidate]:
    """Pure function API for scoring candidates.

    Args:
        user: Requesting user.
        candidates: Candidate items.
        config: Scorer configuration bundle.

    Returns:
        List of ScoredCandidate objects.
    """
    return CandidateScorer(config).score_candidates(user, candidates)
