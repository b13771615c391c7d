"""Unit tests for explore/exploit selection."""

import random
from collections import Counter

import pytest

from discovery.scoring.models import ScoreComponents, ScoredCandidate
from discovery.scoring.selection import select_top_k, top_k_size, weighted_choice
from tests.helpers.content import make_item


def _scored(content_id: str, score: float) -> ScoredCandidate:
    return ScoredCandidate(
        content=make_item(content_id),
        components=ScoreComponents(
            quality=0.7,
            freshness=1.0,
            topic_similarity=0.5,
            reputation_multiplier=1.0,
            personalization=0.5,
            diversity=0.5,
            trending_boost=1.0,
            total_score=score,
        ),
    )


class TestTopKSize:
    """Tests for top_k_size."""

    def test_extremes(self) -> None:
        """Wildness 0 and 100 map to k_min and k_max."""
        assert top_k_size(0, 1, 8, 100) == 1
        assert top_k_size(100, 1, 8, 100) == 8

    def test_monotone_in_wildness(self) -> None:
        """K never shrinks as wildness grows."""
        sizes = [top_k_size(w, 1, 8, 100) for w in range(101)]
        assert sizes == sorted(sizes)

    def test_capped_at_pool(self) -> None:
        """K never exceeds the candidate count."""
        assert top_k_size(100, 1, 8, 3) == 3

    def test_empty_pool(self) -> None:
        """An empty pool has K = 0."""
        assert top_k_size(50, 1, 8, 0) == 0

    def test_out_of_range_wildness_clamped(self) -> None:
        """Wildness outside [0, 100] is clamped."""
        assert top_k_size(250, 1, 8, 100) == 8
        assert top_k_size(-5, 1, 8, 100) == 1


class TestSelectTopK:
    """Tests for select_top_k."""

    def test_zero_wildness_is_greedy(self) -> None:
        """With wildness 0 the best candidate always wins."""
        scored = [_scored("low", 0.1), _scored("best", 0.9), _scored("mid", 0.5)]
        rng = random.Random(42)

        for _ in range(20):
            chosen, k = select_top_k(scored, 0, 1, 8, rng)
            assert chosen.content.id == "best"
            assert k == 1

    def test_high_wildness_explores(self) -> None:
        """With wildness 100 lower-ranked candidates get picked too."""
        scored = [_scored(f"c{i}", 1.0 - i * 0.1) for i in range(8)]
        rng = random.Random(7)

        picks = Counter(select_top_k(scored, 100, 1, 8, rng)[0].content.id for _ in range(400))

        assert len(picks) > 1
        assert picks["c0"] > picks["c7"]

    def test_pick_only_from_top_k(self) -> None:
        """Candidates outside the top K are never chosen."""
        scored = [_scored(f"c{i}", 1.0 - i * 0.1) for i in range(8)]
        rng = random.Random(3)

        for _ in range(100):
            chosen, k = select_top_k(scored, 50, 1, 4, rng)
            assert chosen.content.id in {f"c{i}" for i in range(k)}

    def test_ties_broken_by_id(self) -> None:
        """Equal scores rank by content id."""
        scored = [_scored("b", 0.5), _scored("a", 0.5)]
        chosen, _ = select_top_k(scored, 0, 1, 8, random.Random(0))
        assert chosen.content.id == "a"


class TestWeightedChoice:
    """Tests for weighted_choice."""

    def test_zero_scores_uniform(self) -> None:
        """All-zero scores fall back to a uniform draw."""
        candidates = [_scored("a", 0.0), _scored("b", 0.0)]
        rng = random.Random(1)
        picks = {weighted_choice(candidates, rng).content.id for _ in range(50)}
        assert picks == {"a", "b"}

    def test_single_candidate(self) -> None:
        """A single candidate is always returned."""
        only = _scored("only", 0.3)
        assert weighted_choice([only], random.Random(0)) is only

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_zero_score_never_chosen(self, seed: int) -> None:
        """A zero-score candidate loses to any positive one."""
        candidates = [_scored("zero", 0.0), _scored("pos", 0.4)]
        assert weighted_choice(candidates, random.Random(seed)).content.id == "pos"
