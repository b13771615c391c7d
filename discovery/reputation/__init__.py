"""Domain reputation aggregation and the moderation hook."""

from discovery.reputation.aggregator import (
    DomainReputationAggregator,
    compute_reputation,
    reputation_multiplier,
)
from discovery.reputation.hook import ModerationDecision, ModerationHook


__all__ = [
    "DomainReputationAggregator",
    "ModerationDecision",
    "ModerationHook",
    "compute_reputation",
    "reputation_multiplier",
]
