"""Unit tests for personalization signals."""

import math
from datetime import timedelta

import pytest

from discovery.scoring.personalization import (
    NeutralClusterStrategy,
    PeerEngagementClusterStrategy,
    build_cluster_strategy,
    diversity_score,
    domain_affinity,
    history_affinity,
    time_of_day_score,
    topic_affinity,
)
from discovery.store.models import HistoryEntry, InteractionAction, UserContext
from tests.helpers.content import make_item
from tests.helpers.time import FIXED_NOW


def _entry(
    action: InteractionAction,
    topics: list[str] | None = None,
    domain: str = "example.com",
    hours_ago: float = 0.0,
) -> HistoryEntry:
    return HistoryEntry(
        content_id=f"h-{action.value}-{hours_ago}",
        action=action,
        topics=topics if topics is not None else ["science"],
        domain=domain,
        occurred_at=FIXED_NOW - timedelta(hours=hours_ago),
    )


class TestTopicAffinity:
    """Tests for topic_affinity."""

    def test_liked_topic(self) -> None:
        """Liked topics score high."""
        assert topic_affinity([_entry(InteractionAction.LIKE)], ["science"]) == 1.0

    def test_disliked_topic(self) -> None:
        """Disliked topics score below neutral."""
        assert topic_affinity([_entry(InteractionAction.DISLIKE)], ["science"]) == 0.25

    def test_unrelated_history(self) -> None:
        """History on other topics is neutral."""
        assert topic_affinity([_entry(InteractionAction.LIKE)], ["art"]) == 0.5

    def test_views_are_ignored(self) -> None:
        """Plain views carry no polarity."""
        assert topic_affinity([_entry(InteractionAction.VIEW)], ["science"]) == 0.5


class TestDomainAffinity:
    """Tests for domain_affinity."""

    def test_no_likes(self) -> None:
        """Unliked domains are neutral."""
        assert domain_affinity([], "example.com") == 0.5

    def test_diminishing_returns(self) -> None:
        """Each extra like adds less."""
        one = domain_affinity([_entry(InteractionAction.LIKE)], "example.com")
        many = domain_affinity(
            [_entry(InteractionAction.LIKE, hours_ago=h) for h in range(20)],
            "example.com",
        )
        assert one == pytest.approx(0.5 + math.log(2) * 0.2)
        assert one < many <= 1.0

    def test_history_affinity_blend(self) -> None:
        """History affinity blends topic and domain signals."""
        history = [_entry(InteractionAction.LIKE)]
        value = history_affinity(history, make_item(topics=["science"]))
        assert value == pytest.approx(0.75 * 1.0 + 0.25 * (0.5 + math.log(2) * 0.2))


class TestTimeOfDay:
    """Tests for time_of_day_score."""

    def test_same_hour_positive(self) -> None:
        """Likes around this hour score high."""
        history = [_entry(InteractionAction.LIKE, hours_ago=1)]
        assert time_of_day_score(history, ["science"], FIXED_NOW) == pytest.approx(1.0)

    def test_other_hours_ignored(self) -> None:
        """Reactions far from this hour are ignored."""
        history = [_entry(InteractionAction.LIKE, hours_ago=9)]
        assert time_of_day_score(history, ["science"], FIXED_NOW) == 0.5

    def test_wraps_midnight(self) -> None:
        """Hour distance wraps around midnight."""
        midnight = FIXED_NOW.replace(hour=0)
        history = [
            HistoryEntry(
                content_id="late",
                action=InteractionAction.SKIP,
                topics=["science"],
                domain="example.com",
                occurred_at=midnight - timedelta(hours=1),
            )
        ]
        assert time_of_day_score(history, ["science"], midnight) == pytest.approx(0.3)


class TestDiversity:
    """Tests for diversity_score."""

    def test_new_user_neutral(self) -> None:
        """Without history novelty is neutral."""
        assert diversity_score([], make_item()) == 0.5

    def test_novel_item(self) -> None:
        """New topics from a new domain are fully novel."""
        history = [_entry(InteractionAction.LIKE)]
        item = make_item(domain="other.org", topics=["art"])
        assert diversity_score(history, item) == pytest.approx(1.0)

    def test_familiar_item(self) -> None:
        """Same topics from a dominant domain are not novel."""
        history = [_entry(InteractionAction.LIKE)]
        assert diversity_score(history, make_item()) == pytest.approx(0.0)


class TestClusterStrategies:
    """Tests for cluster strategy construction."""

    def test_build_neutral(self) -> None:
        """The neutral strategy contributes nothing."""
        strategy = build_cluster_strategy("neutral", store=None)  # type: ignore[arg-type]
        assert isinstance(strategy, NeutralClusterStrategy)
        assert strategy.scores(UserContext(user_id="u1"), [make_item()]) == {}

    def test_build_peer(self) -> None:
        """The peer strategy is built by name."""
        strategy = build_cluster_strategy("peer", store=None)  # type: ignore[arg-type]
        assert isinstance(strategy, PeerEngagementClusterStrategy)

    def test_peer_skips_users_without_topics(self) -> None:
        """Users without preferred topics have no peers."""
        strategy = PeerEngagementClusterStrategy(store=None)  # type: ignore[arg-type]
        assert strategy.scores(UserContext(user_id="u1"), [make_item()]) == {}

    def test_unknown_name(self) -> None:
        """Unknown strategy names are rejected."""
        with pytest.raises(ValueError, match="Unknown cluster strategy"):
            build_cluster_strategy("knn", store=None)  # type: ignore[arg-type]
