"""Personalization signals derived from a user's interaction history."""

import math
from collections import Counter
from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from discovery.store.models import ContentItem, HistoryEntry, UserContext
from discovery.store.store import DiscoveryStore


NEUTRAL_SIGNAL = 0.5

# Hours either side of the current hour that count as "this time of day"
TIME_OF_DAY_WINDOW_HOURS = 2

# Share of topic affinity (vs domain affinity) in the history signal
TOPIC_AFFINITY_SHARE = 0.75

# Domains making up this share of recent history count as fully familiar
DOMAIN_FAMILIARITY_SHARE = 0.2


class ClusterStrategy(Protocol):
    """Collaborative-filtering signal for a batch of candidates."""

    def scores(
        self, user: UserContext, candidates: Sequence[ContentItem]
    ) -> dict[str, float]:
        """Return a score in [0, 1] per candidate id (missing ids are neutral)."""
        ...


class NeutralClusterStrategy:
    """Cluster strategy that contributes no signal."""

    def scores(
        self,
        user: UserContext,  # noqa: ARG002
        candidates: Sequence[ContentItem],  # noqa: ARG002
    ) -> dict[str, float]:
        """Every candidate is neutral."""
        return {}


class PeerEngagementClusterStrategy:
    """Scores candidates by how users with overlapping interests reacted.

    Peers are users sharing at least one preferred topic. A candidate's score
    is its Laplace-smoothed positive reaction ratio among peers.
    """

    def __init__(self, store: DiscoveryStore, max_peers: int = 200) -> None:
        """Initialize the strategy.

        Args:
            store: Connected store.
            max_peers: Maximum number of peers considered.
        """
        self._store = store
        self._max_peers = max_peers

    def scores(
        self, user: UserContext, candidates: Sequence[ContentItem]
    ) -> dict[str, float]:
        """Peer reaction ratio per candidate."""
        if not user.preferred_topics or not candidates:
            return {}
        reactions = self._store.fetch_peer_engagement(
            user.user_id,
            user.preferred_topics,
            [c.id for c in candidates],
            max_peers=self._max_peers,
        )
        return {
            content_id: (positive + 1) / (total + 2)
            for content_id, (positive, total) in reactions.items()
        }


def build_cluster_strategy(name: str, store: DiscoveryStore) -> ClusterStrategy:
    """Build a cluster strategy by configured name.

    Args:
        name: ``peer`` or ``neutral``.
        store: Connected store.

    Returns:
        The strategy instance.

    Raises:
        ValueError: If the name is unknown.
    """
    if name == "peer":
        return PeerEngagementClusterStrategy(store)
    if name == "neutral":
        return NeutralClusterStrategy()
    msg = f"Unknown cluster strategy: {name}"
    raise ValueError(msg)


def topic_affinity(history: Sequence[HistoryEntry], topics: Sequence[str]) -> float:
    """Liked versus disliked history on the candidate's topics.

    Args:
        history: Recent interactions.
        topics: Candidate topics.

    Returns:
        Affinity in [0, 1]; 0.5 when history says nothing about these topics.
    """
    topic_set = set(topics)
    if not topic_set:
        return NEUTRAL_SIGNAL
    positive = 0
    negative = 0
    for entry in history:
        overlap = len(topic_set.intersection(entry.topics))
        if entry.action.is_positive:
            positive += overlap
        elif entry.action.is_negative:
            negative += overlap
    total = positive + negative
    if total == 0:
        return NEUTRAL_SIGNAL
    net = (positive - negative * 0.5) / total
    return max(0.0, min(1.0, 0.5 + net * 0.5))


def domain_affinity(history: Sequence[HistoryEntry], domain: str) -> float:
    """Diminishing-returns boost for domains the user liked before."""
    liked = sum(1 for e in history if e.domain == domain and e.action.is_positive)
    if liked == 0:
        return NEUTRAL_SIGNAL
    return min(1.0, 0.5 + math.log(liked + 1) * 0.2)


def _hour_distance(a: int, b: int) -> int:
    diff = abs(a - b) % 24
    return min(diff, 24 - diff)


def time_of_day_score(
    history: Sequence[HistoryEntry], topics: Sequence[str], now: datetime
) -> float:
    """How the user reacted to these topics around this hour of the day.

    Args:
        history: Recent interactions.
        topics: Candidate topics.
        now: Request time.

    Returns:
        ``0.3 + 0.7 * positive ratio`` of topic-matching reactions within
        two hours of ``now``, or 0.5 with no such reactions.
    """
    topic_set = set(topics)
    positive = 0
    negative = 0
    for entry in history:
        if _hour_distance(entry.occurred_at.hour, now.hour) > TIME_OF_DAY_WINDOW_HOURS:
            continue
        if not topic_set.intersection(entry.topics):
            continue
        if entry.action.is_positive:
            positive += 1
        elif entry.action.is_negative:
            negative += 1
    total = positive + negative
    if total == 0:
        return NEUTRAL_SIGNAL
    return 0.3 + (positive / total) * 0.7


def diversity_score(history: Sequence[HistoryEntry], content: ContentItem) -> float:
    """Novelty of a candidate against recent history (before flooring).

    Args:
        history: Recent interactions.
        content: Candidate.

    Returns:
        ``0.6 * unseen-topic ratio + 0.4 * domain novelty``; 0.5 for new users.
    """
    if not history:
        return NEUTRAL_SIGNAL
    seen_topics = {t for entry in history for t in entry.topics}
    domain_counts = Counter(entry.domain for entry in history)

    unseen = [t for t in content.topics if t not in seen_topics]
    topic_ratio = len(unseen) / max(1, len(content.topics))
    familiarity = domain_counts[content.domain] / (len(history) * DOMAIN_FAMILIARITY_SHARE)
    domain_novelty = 1.0 - min(1.0, familiarity)
    return topic_ratio * 0.6 + domain_novelty * 0.4


def history_affinity(history: Sequence[HistoryEntry], content: ContentItem) -> float:
    """Topic and domain affinity combined."""
    return TOPIC_AFFINITY_SHARE * topic_affinity(history, content.topics) + (
        1 - TOPIC_AFFINITY_SHARE
    ) * domain_affinity(history, content.domain)
