"""Moderation hook: refresh a domain's reputation after each decision."""

from datetime import datetime
from typing import Annotated

import structlog
from pydantic import Field

from discovery.data_model import StrictBaseModel, utc_now
from discovery.reputation.aggregator import DomainReputationAggregator
from discovery.store.models import ModerationStatus, ReputationRecord
from discovery.store.store import DiscoveryStore


logger = structlog.get_logger()


class ModerationDecision(StrictBaseModel):
    """Outcome reported by the external moderation pipeline.

    Attributes:
        content_id: Moderated content item.
        status: New moderation status.
        flagged: Whether the decision also flags the item.
        reason: Optional free-text reason from the moderator.
        decided_at: When the decision was made.
    """

    content_id: Annotated[str, Field(min_length=1)]
    status: ModerationStatus
    flagged: bool = False
    reason: str | None = None
    decided_at: datetime = Field(default_factory=utc_now)


class ModerationHook:
    """Applies moderation decisions and recomputes the affected domain."""

    def __init__(
        self,
        store: DiscoveryStore,
        aggregator: DomainReputationAggregator | None = None,
    ) -> None:
        """Initialize the hook.

        Args:
            store: Connected store.
            aggregator: Reputation aggregator (built from ``store`` if omitted).
        """
        self._store = store
        self._aggregator = aggregator or DomainReputationAggregator(store)
        self._log = logger.bind(component="moderation_hook")

    def on_decision(self, decision: ModerationDecision) -> ReputationRecord:
        """Record a decision and refresh the content's domain snapshot.

        Args:
            decision: Moderation decision.

        Returns:
            The domain's new reputation snapshot.

        Raises:
            ContentNotFoundError: If the content id is unknown.
        """
        item = self._store.apply_moderation_decision(
            decision.content_id, decision.status, flagged=decision.flagged
        )
        self._log.info(
            "moderation_decision_applied",
            content_id=decision.content_id,
            domain=item.domain,
            status=decision.status.value,
            flagged=decision.flagged,
        )
        return self._aggregator.recompute_reputation(item.domain)
