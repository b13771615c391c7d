"""Data models for the discovery store."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from discovery.data_model import utc_now


def _normalize_topics(value: Any) -> list[str]:
    """Lowercase, strip, and de-duplicate topic labels (sorted)."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    cleaned = {str(t).strip().lower() for t in value}
    return sorted(t for t in cleaned if t)


class ModerationStatus(str, Enum):
    """Outcome of the external moderation pipeline for a content item."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class InteractionAction(str, Enum):
    """User action recorded against a content item."""

    VIEW = "view"
    LIKE = "like"
    SAVE = "save"
    SHARE = "share"
    SKIP = "skip"
    DISLIKE = "dislike"

    @property
    def is_positive(self) -> bool:
        """Whether the action signals interest."""
        return self in (
            InteractionAction.LIKE,
            InteractionAction.SAVE,
            InteractionAction.SHARE,
        )

    @property
    def is_negative(self) -> bool:
        """Whether the action signals disinterest."""
        return self in (InteractionAction.SKIP, InteractionAction.DISLIKE)


class OrderHint(str, Enum):
    """Ordering applied by the store when trimming the candidate pool."""

    TOPIC_MATCH = "topic_match"
    RECENT = "recent"
    QUALITY = "quality"


class ContentItem(BaseModel):
    """Active content eligible for discovery.

    Rows are written by the ingestion collaborator; the engine only reads them
    and bumps aggregate counters through ``record_interaction``.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1, description="Opaque content identifier")]
    url: Annotated[str, Field(min_length=1)]
    title: str = ""
    domain: Annotated[str, Field(min_length=1, description="Source domain")]
    topics: list[str] = Field(default_factory=list)
    quality_score: Annotated[float, Field(ge=0.0, le=1.0)] = 0.5
    created_at: datetime = Field(default_factory=utc_now)
    views: Annotated[int, Field(ge=0)] = 0
    likes: Annotated[int, Field(ge=0)] = 0
    saves: Annotated[int, Field(ge=0)] = 0
    shares: Annotated[int, Field(ge=0)] = 0
    skips: Annotated[int, Field(ge=0)] = 0
    is_active: bool = True
    moderation_status: ModerationStatus = ModerationStatus.APPROVED
    flag_count: Annotated[int, Field(ge=0)] = 0

    @field_validator("topics", mode="before")
    @classmethod
    def normalize_topics(cls, v: Any) -> list[str]:
        """Normalize topic labels."""
        return _normalize_topics(v)

    @field_validator("domain", mode="before")
    @classmethod
    def normalize_domain(cls, v: Any) -> str:
        """Lowercase the domain and drop a leading ``www.``."""
        domain = str(v).strip().lower()
        return domain.removeprefix("www.")

    @property
    def engagement_rate(self) -> float:
        """Positive interactions per view, capped at 1.0."""
        if self.views <= 0:
            return 0.0
        return min(1.0, (self.likes + self.saves + self.shares) / self.views)

    def age_days(self, now: datetime) -> float:
        """Age of the item in fractional days (never negative)."""
        return max(0.0, (now - self.created_at).total_seconds() / 86400)


class HistoryEntry(BaseModel):
    """One past interaction of a user, joined with the content's topics."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    content_id: str
    action: InteractionAction
    topics: list[str] = Field(default_factory=list)
    domain: str
    occurred_at: datetime


class UserContext(BaseModel):
    """Everything the scorer knows about the requesting user.

    The session-seen set is not part of it; it travels with each request.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_id: Annotated[str, Field(min_length=1)]
    preferred_topics: dict[str, float] = Field(default_factory=dict)
    wildness: Annotated[float, Field(ge=0.0, le=100.0)] = 35.0
    history: list[HistoryEntry] = Field(default_factory=list)

    @field_validator("preferred_topics", mode="before")
    @classmethod
    def normalize_preferences(cls, v: Any) -> dict[str, float]:
        """Accept a plain topic list (weight 1.0) or a topic to weight mapping."""
        if v is None:
            return {}
        if isinstance(v, dict):
            return {
                str(k).strip().lower(): float(w)
                for k, w in v.items()
                if str(k).strip() and float(w) > 0
            }
        return dict.fromkeys(_normalize_topics(v), 1.0)


class DomainStats(BaseModel):
    """Aggregate moderation and engagement statistics for one domain."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    domain: str
    total_count: Annotated[int, Field(ge=0)] = 0
    approved_count: Annotated[int, Field(ge=0)] = 0
    rejected_count: Annotated[int, Field(ge=0)] = 0
    flagged_count: Annotated[int, Field(ge=0)] = 0
    avg_quality: Annotated[float, Field(ge=0.0, le=1.0)] = 0.5
    avg_engagement: Annotated[float, Field(ge=0.0, le=1.0)] = 0.0
    last_content_at: datetime | None = None

    @property
    def moderated_count(self) -> int:
        """Items that received an approve or reject decision."""
        return self.approved_count + self.rejected_count


class ReputationRecord(BaseModel):
    """Snapshot of a domain's reputation at ``computed_at``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    domain: str
    trust_score: Annotated[float, Field(ge=0.0, le=1.0)]
    reputation_score: Annotated[float, Field(ge=0.0, le=1.0)]
    is_blacklisted: bool = False
    blacklist_reasons: list[str] = Field(default_factory=list)
    total_count: int = 0
    approved_count: int = 0
    rejected_count: int = 0
    flagged_count: int = 0
    computed_at: datetime = Field(default_factory=utc_now)


class TrendingWindow(str, Enum):
    """Time horizons for trending computation."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"

    @property
    def duration(self) -> timedelta:
        """Length of the window."""
        return {
            TrendingWindow.HOUR: timedelta(hours=1),
            TrendingWindow.DAY: timedelta(days=1),
            TrendingWindow.WEEK: timedelta(days=7),
        }[self]


class TrendingRecord(BaseModel):
    """Velocity snapshot for one content item within one window."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    content_id: str
    window: TrendingWindow
    score: Annotated[float, Field(ge=0.0)]
    velocity: Annotated[float, Field(ge=0.0)]
    interaction_count: Annotated[int, Field(ge=0)] = 0
    view_count: Annotated[int, Field(ge=0)] = 0
    computed_at: datetime


class SimilarEdge(BaseModel):
    """Directional edge from a reference item to one similar item."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    reference_id: str
    content_id: str
    rank: Annotated[int, Field(ge=1)]
    similarity: Annotated[float, Field(ge=0.0, le=1.0)]
    overall_score: Annotated[float, Field(ge=0.0)]
    computed_at: datetime


class ExperimentStatus(str, Enum):
    """Lifecycle status of an experiment."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class Variant(BaseModel):
    """One arm of an experiment.

    ``weights`` holds ScoringWeights overrides applied on top of the defaults.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Annotated[str, Field(min_length=1, max_length=64)]
    allocation: Annotated[float, Field(ge=0.0, le=100.0)]
    weights: dict[str, Any] = Field(default_factory=dict)


class Experiment(BaseModel):
    """Stored experiment definition."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Annotated[str, Field(min_length=1)]
    name: Annotated[str, Field(min_length=1, max_length=200)]
    description: str = ""
    status: ExperimentStatus = ExperimentStatus.DRAFT
    variants: list[Variant] = Field(default_factory=list)
    min_sample_size: Annotated[int, Field(ge=1)] = 100
    significance_level: Annotated[float, Field(gt=0.0, lt=1.0)] = 0.05
    winner_variant: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    ended_at: datetime | None = None

    def variant(self, name: str) -> Variant | None:
        """Look up a variant by name."""
        for variant in self.variants:
            if variant.name == name:
                return variant
        return None


class ExperimentAssignment(BaseModel):
    """Sticky mapping of a user to a variant."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_id: str
    experiment_id: str
    variant: str
    assigned_at: datetime
    method: str = "weighted_random"


class ExperimentEventType(str, Enum):
    """Outcome events recorded for experiment analysis."""

    DISCOVERY_SHOWN = "discovery_shown"
    LIKED = "liked"
    SAVED = "saved"
    SHARED = "shared"
    SKIPPED = "skipped"


class ExperimentEvent(BaseModel):
    """Append-only experiment event."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    experiment_id: str
    user_id: str
    variant: str
    event_type: ExperimentEventType
    content_id: str | None = None
    time_to_action_ms: Annotated[int, Field(ge=0)] | None = None
    created_at: datetime = Field(default_factory=utc_now)


class VariantEventCounts(BaseModel):
    """Raw per-variant aggregates read back from the event log."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    variant: str
    users: int = 0
    shown: int = 0
    liked: int = 0
    saved: int = 0
    shared: int = 0
    skipped: int = 0
    # Distinct (user, content) pairs with a like, save, or share
    engaged: int = 0
    time_to_action_count: int = 0
    time_to_action_sum: float = 0.0
    time_to_action_sum_sq: float = 0.0

    @property
    def engaged_discoveries(self) -> int:
        """Engaged discoveries, never more than the discoveries shown."""
        return min(self.engaged, self.shown)
