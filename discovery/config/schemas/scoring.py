"""Versioned scoring weights schema."""

from typing import Annotated, Any

from pydantic import Field, model_validator

from discovery.data_model import StrictBaseModel


class ScoringWeights(StrictBaseModel):
    """Weights and parameters consumed by the candidate scorer.

    Each ``*_weight`` is the exponent applied to its factor in the
    multiplicative score; a weight of 0 removes the factor entirely.

    Attributes:
        version: Identifier of this weight set (logged with every selection).
        quality_weight: Exponent for the content quality score.
        freshness_weight: Exponent for the freshness decay.
        topic_weight: Exponent for user-topic similarity.
        reputation_weight: Exponent for the domain reputation multiplier.
        personalization_weight: Exponent for the personalization bonus.
        diversity_weight: Exponent for the diversity bonus.
        trending_weight: Exponent for the trending boost.
        freshness_half_life_days: Half-life of the freshness decay.
        topic_similarity_floor: Lowest topic factor for unrelated content.
        diversity_floor: Lowest diversity factor for fully familiar content.
        trending_boost_scale: Maximum extra boost for trending content.
        personalization_topic_share: Share of history affinity in personalization.
        personalization_time_share: Share of time-of-day match in personalization.
        personalization_cluster_share: Share of collaborative signal in personalization.
        explore_k_min: Top-K pool size at wildness 0.
        explore_k_max: Top-K pool size at wildness 100.
    """

    version: Annotated[str, Field(min_length=1, max_length=64)] = "v1"

    quality_weight: Annotated[float, Field(ge=0.0, le=5.0)] = 1.0
    freshness_weight: Annotated[float, Field(ge=0.0, le=5.0)] = 1.0
    topic_weight: Annotated[float, Field(ge=0.0, le=5.0)] = 1.0
    reputation_weight: Annotated[float, Field(ge=0.0, le=5.0)] = 1.0
    personalization_weight: Annotated[float, Field(ge=0.0, le=5.0)] = 1.0
    diversity_weight: Annotated[float, Field(ge=0.0, le=5.0)] = 0.5
    trending_weight: Annotated[float, Field(ge=0.0, le=5.0)] = 1.0

    freshness_half_life_days: Annotated[float, Field(gt=0.0, le=365.0)] = 14.0
    topic_similarity_floor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.2
    diversity_floor: Annotated[float, Field(ge=0.0, le=1.0)] = 0.5
    trending_boost_scale: Annotated[float, Field(ge=0.0, le=2.0)] = 0.2

    personalization_topic_share: Annotated[float, Field(ge=0.0, le=1.0)] = 0.6
    personalization_time_share: Annotated[float, Field(ge=0.0, le=1.0)] = 0.2
    personalization_cluster_share: Annotated[float, Field(ge=0.0, le=1.0)] = 0.2

    explore_k_min: Annotated[int, Field(ge=1, le=50)] = 1
    explore_k_max: Annotated[int, Field(ge=1, le=50)] = 8

    @model_validator(mode="after")
    def validate_ranges(self) -> "ScoringWeights":
        """Ensure the explore range is ordered and shares are usable."""
        if self.explore_k_min > self.explore_k_max:
            msg = "explore_k_min must not exceed explore_k_max"
            raise ValueError(msg)
        shares = (
            self.personalization_topic_share
            + self.personalization_time_share
            + self.personalization_cluster_share
        )
        if shares <= 0.0:
            msg = "At least one personalization share must be positive"
            raise ValueError(msg)
        return self

    def with_overrides(self, overrides: dict[str, Any]) -> "ScoringWeights":
        """Build a validated copy with selected fields replaced.

        Args:
            overrides: Field values to replace (e.g. an experiment variant payload).

        Returns:
            New ScoringWeights instance.

        Raises:
            pydantic.ValidationError: If the merged weights are invalid.
        """
        merged = self.model_dump()
        merged.update(overrides)
        return ScoringWeights.model_validate(merged)
