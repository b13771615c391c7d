"""Request and response bodies of the HTTP API."""

from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, Field

from discovery.scoring.models import Selection
from discovery.similarity.finder import SimilarItem
from discovery.store.models import (
    ContentItem,
    ExperimentEventType,
    InteractionAction,
    TrendingRecord,
)


class ContentOut(BaseModel):
    """Public view of a content item."""

    id: str
    url: str
    title: str
    domain: str
    topics: list[str]
    quality_score: float
    created_at: datetime

    @classmethod
    def from_item(cls, item: ContentItem) -> "ContentOut":
        """Build from a stored content item."""
        return cls(
            id=item.id,
            url=item.url,
            title=item.title,
            domain=item.domain,
            topics=item.topics,
            quality_score=item.quality_score,
            created_at=item.created_at,
        )


class DiscoveryResponse(BaseModel):
    """One discovery pick."""

    content: ContentOut
    score: float
    rationale: str
    components: dict[str, float]
    weights_version: str
    variant: str | None = None
    experiment_id: str | None = None

    @classmethod
    def from_selection(cls, selection: Selection) -> "DiscoveryResponse":
        """Build from an engine selection."""
        return cls(
            content=ContentOut.from_item(selection.content),
            score=selection.score,
            rationale=selection.rationale,
            components=selection.components.to_dict(),
            weights_version=selection.weights_version,
            variant=selection.variant,
            experiment_id=selection.experiment_id,
        )


class TrendingEntry(BaseModel):
    """One trending item."""

    content: ContentOut
    score: float
    velocity: float
    interaction_count: int
    view_count: int
    computed_at: datetime

    @classmethod
    def from_record(cls, record: TrendingRecord, item: ContentItem) -> "TrendingEntry":
        """Build from a trending record and its content."""
        return cls(
            content=ContentOut.from_item(item),
            score=record.score,
            velocity=record.velocity,
            interaction_count=record.interaction_count,
            view_count=record.view_count,
            computed_at=record.computed_at,
        )


class TrendingResponse(BaseModel):
    """Trending list for one window."""

    window: str
    items: list[TrendingEntry]


class SimilarEntry(BaseModel):
    """One similar item."""

    content: ContentOut
    rank: int
    similarity: float
    overall_score: float

    @classmethod
    def from_similar(cls, similar: SimilarItem) -> "SimilarEntry":
        """Build from a finder result."""
        return cls(
            content=ContentOut.from_item(similar.content),
            rank=similar.edge.rank,
            similarity=similar.edge.similarity,
            overall_score=similar.edge.overall_score,
        )


class SimilarResponse(BaseModel):
    """Similar items for a reference item."""

    reference_id: str
    items: list[SimilarEntry]


class OutcomeType(str, Enum):
    """Outcomes the presentation layer reports for a shown item."""

    LIKED = "liked"
    SAVED = "saved"
    SHARED = "shared"
    SKIPPED = "skipped"

    @property
    def event_type(self) -> ExperimentEventType:
        """Matching experiment event type."""
        return ExperimentEventType(self.value)

    @property
    def action(self) -> InteractionAction:
        """Matching interaction action."""
        return {
            OutcomeType.LIKED: InteractionAction.LIKE,
            OutcomeType.SAVED: InteractionAction.SAVE,
            OutcomeType.SHARED: InteractionAction.SHARE,
            OutcomeType.SKIPPED: InteractionAction.SKIP,
        }[self]


class DiscoveryEventIn(BaseModel):
    """Outcome of a shown discovery."""

    user_id: Annotated[str, Field(min_length=1)]
    content_id: Annotated[str, Field(min_length=1)]
    event_type: OutcomeType
    time_to_action_ms: Annotated[int, Field(ge=0)] | None = None


class DiscoveryEventOut(BaseModel):
    """Where an outcome was recorded."""

    interaction_recorded: bool
    experiment_id: str | None = None
    variant: str | None = None
    experiment_event_logged: bool = False


class CompleteExperimentIn(BaseModel):
    """Body of the complete action."""

    winner: str | None = None
