"""Data models for candidate scoring and selection."""

from dataclasses import dataclass

from discovery.store.models import ContentItem


@dataclass(frozen=True)
class ScoreComponents:
    """Breakdown of a candidate's score into factors.

    Every factor is positive; the total is their weighted product.

    Attributes:
        quality: Content quality score.
        freshness: Exponential age decay.
        topic_similarity: Match against the user's preferred topics.
        reputation_multiplier: Domain reputation multiplier in [0.8, 1.2].
        personalization: Blend of history, time-of-day, and peer signals.
        diversity: Novelty against recent history.
        trending_boost: Boost from the day-window trending score.
        total_score: Weighted product of all factors.
    """

    quality: float
    freshness: float
    topic_similarity: float
    reputation_multiplier: float
    personalization: float
    diversity: float
    trending_boost: float
    total_score: float = 0.0

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary for serialization.

        Returns:
            Dictionary of component name to value.
        """
        return {
            "quality": self.quality,
            "freshness": self.freshness,
            "topic_similarity": self.topic_similarity,
            "reputation_multiplier": self.reputation_multiplier,
            "personalization": self.personalization,
            "diversity": self.diversity,
            "trending_boost": self.trending_boost,
            "total_score": self.total_score,
        }


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate with its computed score components."""

    content: ContentItem
    components: ScoreComponents

    @property
    def score(self) -> float:
        """Total score."""
        return self.components.total_score


@dataclass(frozen=True)
class Selection:
    """Outcome of one discovery request.

    Attributes:
        content: Selected item.
        score: Its total score.
        rationale: Short human-readable reason for the pick.
        components: Score breakdown.
        weights_version: Version of the scoring weights used.
        variant: Experiment variant name, if the user is in an experiment.
        experiment_id: Experiment id, if any.
        pool_size: Number of candidates scored.
        top_k: Size of the pool the pick was drawn from.
    """

    content: ContentItem
    score: float
    rationale: str
    components: ScoreComponents
    weights_version: str
    variant: str | None = None
    experiment_id: str | None = None
    pool_size: int = 0
    top_k: int = 0
