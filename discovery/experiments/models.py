"""Experiment definitions and analysis results."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any

from pydantic import Field

from discovery.data_model import StrictBaseModel
from discovery.experiments.stats import ProportionTest, WelchTest
from discovery.store.models import Experiment, Variant


class ExperimentDefinition(StrictBaseModel):
    """Input for creating an experiment."""

    name: Annotated[str, Field(min_length=1, max_length=200)]
    description: str = ""
    variants: list[Variant] = Field(default_factory=list)
    min_sample_size: Annotated[int, Field(ge=1)] = 100
    significance_level: Annotated[float, Field(gt=0.0, lt=1.0)] = 0.05


class ExperimentUpdate(StrictBaseModel):
    """Partial update of an experiment; ``None`` fields are left unchanged."""

    name: Annotated[str, Field(min_length=1, max_length=200)] | None = None
    description: str | None = None
    variants: list[Variant] | None = None
    min_sample_size: Annotated[int, Field(ge=1)] | None = None
    significance_level: Annotated[float, Field(gt=0.0, lt=1.0)] | None = None


@dataclass(frozen=True)
class VariantMetrics:
    """Per-variant outcome metrics.

    Attributes:
        variant: Variant name.
        users: Distinct users with at least one event.
        discoveries: ``discovery_shown`` events.
        likes: Liked events.
        saves: Saved events.
        shares: Shared events.
        skips: Skipped events.
        like_rate: Likes per discovery.
        save_rate: Saves per discovery.
        share_rate: Shares per discovery.
        skip_rate: Skips per discovery.
        engagement_rate: Share of discoveries that drew a like, save, or share.
        avg_time_to_action_ms: Mean time-to-action, if any was reported.
        standard_error: Standard error of the engagement rate.
        ci_lower: Lower bound of the 95% interval of the engagement rate.
        ci_upper: Upper bound of the 95% interval of the engagement rate.
    """

    variant: str
    users: int
    discoveries: int
    likes: int
    saves: int
    shares: int
    skips: int
    like_rate: float
    save_rate: float
    share_rate: float
    skip_rate: float
    engagement_rate: float
    avg_time_to_action_ms: float | None
    standard_error: float
    ci_lower: float
    ci_upper: float

    @property
    def engagements(self) -> int:
        """Positive outcomes (likes, saves, shares)."""
        return self.likes + self.saves + self.shares

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "variant": self.variant,
            "users": self.users,
            "discoveries": self.discoveries,
            "likes": self.likes,
            "saves": self.saves,
            "shares": self.shares,
            "skips": self.skips,
            "like_rate": self.like_rate,
            "save_rate": self.save_rate,
            "share_rate": self.share_rate,
            "skip_rate": self.skip_rate,
            "engagement_rate": self.engagement_rate,
            "avg_time_to_action_ms": self.avg_time_to_action_ms,
            "standard_error": self.standard_error,
            "ci_lower": self.ci_lower,
            "ci_upper": self.ci_upper,
        }


@dataclass(frozen=True)
class VariantComparison:
    """Pairwise comparison of two variants."""

    variant_a: str
    variant_b: str
    engagement: ProportionTest
    time_to_action: WelchTest | None
    is_significant: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "variant_a": self.variant_a,
            "variant_b": self.variant_b,
            "engagement": self.engagement.to_dict(),
            "time_to_action": (
                self.time_to_action.to_dict() if self.time_to_action else None
            ),
            "is_significant": self.is_significant,
        }


class RecommendationStatus(str, Enum):
    """Conclusion drawn from an experiment's data."""

    SIGNIFICANT = "significant"
    NOT_SIGNIFICANT = "not_significant"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class Recommendation:
    """Which variant to ship, if the data supports it."""

    status: RecommendationStatus
    reason: str
    winner_variant: str | None = None
    leading_variant: str | None = None
    confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "reason": self.reason,
            "winner_variant": self.winner_variant,
            "leading_variant": self.leading_variant,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class ExperimentResults:
    """Metrics, comparisons, and recommendation for one experiment."""

    experiment: Experiment
    variants: list[VariantMetrics] = field(default_factory=list)
    comparisons: list[VariantComparison] = field(default_factory=list)
    recommendation: Recommendation | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "experiment": self.experiment.model_dump(mode="json"),
            "variants": [v.to_dict() for v in self.variants],
            "comparisons": [c.to_dict() for c in self.comparisons],
            "recommendation": (
                self.recommendation.to_dict() if self.recommendation else None
            ),
        }
