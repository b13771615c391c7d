"""Unit tests for the candidate scorer and rationale."""

import random

import pytest

from discovery.config.schemas.scoring import ScoringWeights
from discovery.scoring.rationale import build_rationale
from discovery.scoring.scorer import CandidateScorer, ScorerConfig, score_candidates_pure
from discovery.scoring.selection import select_top_k
from discovery.store.models import HistoryEntry, InteractionAction, UserContext
from tests.helpers.content import make_item
from tests.helpers.time import FIXED_NOW


def _scorer(**kwargs: object) -> CandidateScorer:
    kwargs.setdefault("weights", ScoringWeights())
    return CandidateScorer(ScorerConfig(now=FIXED_NOW, **kwargs))  # type: ignore[arg-type]


class TestTopicSimilarity:
    """Tests for the topic factor."""

    def test_preferred_topic_wins_at_low_wildness(self) -> None:
        """A science fan at wildness 0 gets the science item."""
        user = UserContext(user_id="u1", preferred_topics=["science"], wildness=0)
        science = make_item("science-1", topics=["science"])
        sports = make_item("sports-1", topics=["sports"])

        scored = _scorer().score_candidates(user, [sports, science])
        chosen, _ = select_top_k(scored, user.wildness, 1, 8, random.Random(0))

        assert chosen.content.id == "science-1"
        assert scored[1].components.topic_similarity == pytest.approx(1.0)
        assert scored[0].components.topic_similarity == pytest.approx(0.2)

    def test_no_preferences_is_neutral(self) -> None:
        """Users without preferences get a neutral topic factor."""
        user = UserContext(user_id="u1")
        candidate = _scorer().score_candidate(user, make_item())
        assert candidate.components.topic_similarity == 0.5


class TestFactors:
    """Tests for individual factors."""

    def test_freshness_half_life(self) -> None:
        """An item one half-life old has freshness 0.5."""
        user = UserContext(user_id="u1")
        candidate = _scorer().score_candidate(user, make_item(age_days=14.0))
        assert candidate.components.freshness == pytest.approx(0.5)

    def test_newer_never_scores_lower(self) -> None:
        """With everything else equal, a newer item never scores below an older one."""
        user = UserContext(user_id="u1", preferred_topics=["science"])
        scorer = _scorer()
        ages = [0.0, 0.5, 1.0, 3.0, 7.0, 14.0, 30.0, 90.0, 365.0]

        scored = [
            scorer.score_candidate(user, make_item("item", topics=["science"], age_days=age))
            for age in ages
        ]

        for newer, older in zip(scored, scored[1:], strict=False):
            assert newer.components.freshness >= older.components.freshness
            assert newer.score >= older.score
        assert scored[0].score > scored[-1].score

    def test_reputation_multiplier(self) -> None:
        """Known domains use their reputation; unknown ones are neutral."""
        user = UserContext(user_id="u1")
        scorer = _scorer(reputations={"good.example": 1.0})

        good = scorer.score_candidate(user, make_item("a", domain="good.example"))
        unknown = scorer.score_candidate(user, make_item("b", domain="new.example"))

        assert good.components.reputation_multiplier == pytest.approx(1.2)
        assert unknown.components.reputation_multiplier == pytest.approx(1.0)
        assert good.score > unknown.score

    def test_trending_boost_capped(self) -> None:
        """The trending boost saturates at 1 + scale."""
        user = UserContext(user_id="u1")
        scorer = _scorer(trending_scores={"hot": 25.0, "warm": 0.5})

        hot = scorer.score_candidate(user, make_item("hot"))
        warm = scorer.score_candidate(user, make_item("warm"))
        cold = scorer.score_candidate(user, make_item("cold"))

        assert hot.components.trending_boost == pytest.approx(1.2)
        assert warm.components.trending_boost == pytest.approx(1.1)
        assert cold.components.trending_boost == pytest.approx(1.0)

    def test_zero_exponent_removes_factor(self) -> None:
        """A weight of 0 makes the factor irrelevant."""
        user = UserContext(user_id="u1")
        weights = ScoringWeights(quality_weight=0.0)
        scorer = _scorer(weights=weights)

        low = scorer.score_candidate(user, make_item("low", quality_score=0.1))
        high = scorer.score_candidate(user, make_item("high", quality_score=0.9))

        assert low.score == pytest.approx(high.score)

    def test_total_is_product(self) -> None:
        """The total equals the weighted product of the factors."""
        user = UserContext(user_id="u1", preferred_topics=["science"])
        c = _scorer().score_candidate(user, make_item()).components

        expected = (
            c.quality
            * c.freshness
            * c.topic_similarity
            * c.reputation_multiplier
            * c.personalization
            * c.diversity**0.5
            * c.trending_boost
        )
        assert c.total_score == pytest.approx(expected)
        assert c.total_score > 0

    def test_cluster_signal_raises_personalization(self) -> None:
        """A strong peer signal raises the personalization factor."""
        user = UserContext(user_id="u1")
        scorer = _scorer(cluster_scores={"liked-by-peers": 1.0})

        boosted = scorer.score_candidate(user, make_item("liked-by-peers"))
        plain = scorer.score_candidate(user, make_item("other"))

        assert boosted.components.personalization > plain.components.personalization

    def test_pure_api(self) -> None:
        """score_candidates_pure keeps input order."""
        user = UserContext(user_id="u1")
        items = [make_item("a"), make_item("b")]
        scored = score_candidates_pure(
            user, items, ScorerConfig(weights=ScoringWeights(), now=FIXED_NOW)
        )
        assert [s.content.id for s in scored] == ["a", "b"]


class TestRationale:
    """Tests for build_rationale."""

    def test_topic_match(self) -> None:
        """A strong topic match is named."""
        user = UserContext(user_id="u1", preferred_topics=["science"])
        candidate = _scorer().score_candidate(user, make_item(topics=["science"]))

        assert build_rationale(candidate, user) == "Matches your interest in science"

    def test_trending(self) -> None:
        """A strong trending boost is named."""
        user = UserContext(user_id="u1")
        candidate = _scorer(trending_scores={"item-1": 5.0}).score_candidate(
            user, make_item(age_days=30, topics=["art"])
        )

        assert build_rationale(candidate, user) == "Trending now in art"

    def test_new_topic(self) -> None:
        """Novel content for a user with history is called out."""
        history = [
            HistoryEntry(
                content_id="old",
                action=InteractionAction.LIKE,
                topics=["science"],
                domain="example.com",
                occurred_at=FIXED_NOW,
            )
        ]
        user = UserContext(user_id="u1", preferred_topics=["science"], history=history)
        candidate = _scorer().score_candidate(
            user, make_item(domain="other.org", topics=["pottery"], age_days=60)
        )

        assert build_rationale(candidate, user) == "Something new outside your usual topics"

    def test_fallback(self) -> None:
        """Weak factors yield the generic reason."""
        user = UserContext(user_id="u1")
        candidate = _scorer().score_candidate(user, make_item(age_days=60))

        assert build_rationale(candidate, user) == "Serendipitous discovery"
