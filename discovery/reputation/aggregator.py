"""Domain reputation aggregation.

Reputation is derived from moderation outcomes, content quality, engagement,
and recent activity of everything a domain has submitted. Snapshots are
recomputed in batch and after each moderation decision, and the scoring
engine reads them as a bounded multiplier.
"""

import math
from datetime import UTC, datetime

import structlog

from discovery.batch.runner import BatchResult, BatchRunner
from discovery.reputation.constants import (
    ACTIVITY_DECAY_DAYS,
    ACTIVITY_GRACE_DAYS,
    BLACKLIST_FLAGGED_COUNT,
    BLACKLIST_MIN_REPUTATION,
    BLACKLIST_REJECTION_RATIO,
    ENGAGEMENT_BASE,
    ENGAGEMENT_SCALE,
    FLAG_PENALTY_PER_ITEM,
    MODERATION_PRIOR,
    MODERATION_PRIOR_WEIGHT,
    MULTIPLIER_MAX,
    MULTIPLIER_MIN,
    NEUTRAL_REPUTATION,
    REPUTATION_QUALITY_WEIGHT,
    REPUTATION_TRUST_WEIGHT,
    TRUST_ENGAGEMENT_WEIGHT,
    TRUST_FLAG_WEIGHT,
    TRUST_MODERATION_WEIGHT,
    TRUST_QUALITY_WEIGHT,
)
from discovery.store.models import DomainStats, ReputationRecord
from discovery.store.store import DiscoveryStore


logger = structlog.get_logger()


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def moderation_ratio(stats: DomainStats) -> float:
    """Approval ratio smoothed toward a neutral prior.

    Args:
        stats: Domain statistics.

    Returns:
        ``(approved + prior * weight) / (moderated + weight)``.
    """
    return (stats.approved_count + MODERATION_PRIOR * MODERATION_PRIOR_WEIGHT) / (
        stats.moderated_count + MODERATION_PRIOR_WEIGHT
    )


def trust_score(stats: DomainStats) -> float:
    """Blend of moderation, quality, engagement, and flag history."""
    flag_term = max(0.0, 1.0 - FLAG_PENALTY_PER_ITEM * stats.flagged_count)
    return _clamp(
        TRUST_MODERATION_WEIGHT * moderation_ratio(stats)
        + TRUST_QUALITY_WEIGHT * stats.avg_quality
        + TRUST_ENGAGEMENT_WEIGHT * stats.avg_engagement
        + TRUST_FLAG_WEIGHT * flag_term
    )


def activity_recency(last_content_at: datetime | None, now: datetime) -> float:
    """Credit for recent submissions.

    Args:
        last_content_at: Timestamp of the newest item (None if unknown).
        now: Current time.

    Returns:
        1.0 within the grace period, exponentially decaying afterwards.
    """
    if last_content_at is None:
        return 1.0
    days = max(0.0, (now - last_content_at).total_seconds() / 86400)
    if days <= ACTIVITY_GRACE_DAYS:
        return 1.0
    return math.exp(-(days - ACTIVITY_GRACE_DAYS) / ACTIVITY_DECAY_DAYS)


def volume_confidence(total_count: int) -> float:
    """How much to trust a domain's statistics given its volume."""
    return min(1.0, math.log10(total_count + 1) / 2)


def blacklist_reasons(stats: DomainStats, reputation: float) -> list[str]:
    """Reasons a domain should be excluded from discovery (empty if none).

    Args:
        stats: Domain statistics.
        reputation: Computed reputation score.

    Returns:
        Human-readable reasons.
    """
    reasons: list[str] = []
    if stats.flagged_count >= BLACKLIST_FLAGGED_COUNT:
        reasons.append(f"flagged items: {stats.flagged_count}")
    if stats.moderated_count > 0:
        rejection_ratio = stats.rejected_count / stats.moderated_count
        if rejection_ratio >= BLACKLIST_REJECTION_RATIO:
            reasons.append(f"rejection ratio: {rejection_ratio:.2f}")
    if reputation < BLACKLIST_MIN_REPUTATION:
        reasons.append(f"reputation below {BLACKLIST_MIN_REPUTATION}: {reputation:.3f}")
    return reasons


def compute_reputation(stats: DomainStats, now: datetime) -> ReputationRecord:
    """Compute a reputation snapshot from domain statistics.

    Pure function; safe to call from tests and the moderation hook alike.

    Args:
        stats: Domain statistics.
        now: Snapshot timestamp.

    Returns:
        ReputationRecord for the domain.
    """
    trust = trust_score(stats)
    raw = (
        (REPUTATION_TRUST_WEIGHT * trust + REPUTATION_QUALITY_WEIGHT * stats.avg_quality)
        * (ENGAGEMENT_BASE + ENGAGEMENT_SCALE * stats.avg_engagement)
        * activity_recency(stats.last_content_at, now)
    )
    confidence = volume_confidence(stats.total_count)
    reputation = _clamp(NEUTRAL_REPUTATION + (raw - NEUTRAL_REPUTATION) * confidence)
    reasons = blacklist_reasons(stats, reputation)

    return ReputationRecord(
        domain=stats.domain,
        trust_score=trust,
        reputation_score=reputation,
        is_blacklisted=bool(reasons),
        blacklist_reasons=reasons,
        total_count=stats.total_count,
        approved_count=stats.approved_count,
        rejected_count=stats.rejected_count,
        flagged_count=stats.flagged_count,
        computed_at=now,
    )


def reputation_multiplier(reputation: float | None) -> float:
    """Scoring multiplier for a reputation score.

    Args:
        reputation: Reputation in [0, 1], or None for an unknown domain.

    Returns:
        Multiplier in [0.8, 1.2]; unknown domains get 1.0.
    """
    if reputation is None:
        reputation = NEUTRAL_REPUTATION
    multiplier = MULTIPLIER_MIN + reputation * (MULTIPLIER_MAX - MULTIPLIER_MIN)
    return _clamp(multiplier, MULTIPLIER_MIN, MULTIPLIER_MAX)


class DomainReputationAggregator:
    """Recomputes and persists domain reputation snapshots."""

    def __init__(
        self,
        store: DiscoveryStore,
        run_id: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            store: Connected store.
            run_id: Run identifier for logging.
            now: Fixed snapshot time (defaults to the wall clock per call).
        """
        self._store = store
        self._run_id = run_id
        self._now = now
        self._log = logger.bind(component="reputation", run_id=run_id)

    def recompute_reputation(self, domain: str) -> ReputationRecord:
        """Recompute and store one domain's snapshot.

        Domains without content get a neutral snapshot.

        Args:
            domain: Domain to recompute.

        Returns:
            The stored ReputationRecord.
        """
        stats = self._store.get_domain_stats(domain) or DomainStats(domain=domain.lower())
        record = compute_reputation(stats, self._now or datetime.now(UTC))
        self._store.upsert_reputation_record(record)

        log_fn = self._log.warning if record.is_blacklisted else self._log.debug
        log_fn(
            "reputation_recomputed",
            domain=record.domain,
            reputation=round(record.reputation_score, 4),
            trust=round(record.trust_score, 4),
            is_blacklisted=record.is_blacklisted,
            reasons=record.blacklist_reasons,
        )
        return record

    def recompute_all(self) -> BatchResult:
        """Recompute every domain with content, isolating per-domain failures.

        Returns:
            BatchResult keyed by domain.
        """
        runner = BatchRunner("reputation", run_id=self._run_id)
        all_stats = self._store.list_domain_stats()
        now = self._now or datetime.now(UTC)

        def _unit(stats: DomainStats) -> ReputationRecord:
            record = compute_reputation(stats, now)
            self._store.upsert_reputation_record(record)
            return record

        result = runner.run(
            {stats.domain: (lambda s=stats: _unit(s)) for stats in all_stats}
        )
        blacklisted = sum(
            1
            for unit in result.unit_results.values()
            if unit.success and unit.value.is_blacklisted
        )
        self._log.info(
            "reputation_recompute_finished",
            domains=len(all_stats),
            blacklisted=blacklisted,
            failed=result.units_failed,
        )
        return result
