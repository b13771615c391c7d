"""Factories for content items used across tests."""

from datetime import datetime, timedelta

from discovery.store.models import ContentItem, ModerationStatus
from tests.helpers.time import FIXED_NOW


def make_item(  # noqa: PLR0913
    content_id: str = "item-1",
    domain: str = "example.com",
    topics: list[str] | None = None,
    quality_score: float = 0.7,
    created_at: datetime | None = None,
    age_days: float = 1.0,
    views: int = 0,
    likes: int = 0,
    moderation_status: ModerationStatus = ModerationStatus.APPROVED,
    flag_count: int = 0,
    is_active: bool = True,
) -> ContentItem:
    """Create a test ContentItem."""
    return ContentItem(
        id=content_id,
        url=f"https://{domain}/{content_id}",
        title=f"Title of {content_id}",
        domain=domain,
        topics=topics if topics is not None else ["science"],
        quality_score=quality_score,
        created_at=created_at or FIXED_NOW - timedelta(days=age_days),
        views=views,
        likes=likes,
        moderation_status=moderation_status,
        flag_count=flag_count,
        is_active=is_active,
    )
