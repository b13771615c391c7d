"""Shared Pydantic base models and timestamp helpers."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict


def utc_now() -> datetime:
    """Timezone-aware current time; default factory for timestamp fields."""
    return datetime.now(UTC)


class StrictBaseModel(BaseModel):
    """Immutable model that rejects unknown fields.

    Used for configuration files and request payloads.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")
