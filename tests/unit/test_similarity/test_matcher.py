"""Unit tests for topic similarity."""

import pytest

from discovery.similarity.matcher import (
    TopicSimilarityMatcher,
    domain_match,
    jaccard,
    registrable_domain,
)
from tests.helpers.content import make_item


class TestDomainMatch:
    """Tests for domain relatedness."""

    def test_same_domain(self) -> None:
        """Identical domains score 1."""
        assert domain_match("example.com", "Example.com") == 1.0

    def test_related_domain(self) -> None:
        """Subdomains of one registrable domain score 0.5."""
        assert domain_match("blog.example.com", "news.example.com") == 0.5

    def test_unrelated_domain(self) -> None:
        """Different registrable domains score 0."""
        assert domain_match("example.com", "other.org") == 0.0

    def test_registrable_domain(self) -> None:
        """Only the last two labels are kept."""
        assert registrable_domain("a.b.example.com.") == "example.com"


class TestJaccard:
    """Tests for plain Jaccard overlap."""

    def test_overlap(self) -> None:
        """One shared topic of three."""
        assert jaccard(["a", "b"], ["b", "c"]) == pytest.approx(1 / 3)

    def test_empty(self) -> None:
        """Two empty sets have no overlap."""
        assert jaccard([], []) == 0.0


class TestTopicSimilarityMatcher:
    """Tests for TopicSimilarityMatcher."""

    def test_idf_without_corpus(self) -> None:
        """All topics weigh 1 without corpus statistics."""
        assert TopicSimilarityMatcher().idf("anything") == 1.0

    def test_rare_topic_weighs_more(self) -> None:
        """A rare topic has a higher IDF than a common one."""
        matcher = TopicSimilarityMatcher({"common": 90, "rare": 2}, total_documents=100)
        assert matcher.idf("rare") > matcher.idf("common")

    def test_identical_sets(self) -> None:
        """Identical topic sets are fully similar."""
        matcher = TopicSimilarityMatcher()
        assert matcher.similarity(["a", "b"], ["a", "b"]) == pytest.approx(1.0)

    def test_no_overlap(self) -> None:
        """Disjoint sets score 0."""
        assert TopicSimilarityMatcher().similarity(["a"], ["b"]) == 0.0

    def test_symmetric(self) -> None:
        """Similarity does not depend on argument order."""
        matcher = TopicSimilarityMatcher({"a": 5, "b": 50, "c": 1}, total_documents=100)
        forward = matcher.similarity(["a", "b"], ["b", "c"])
        backward = matcher.similarity(["b", "c"], ["a", "b"])
        assert forward == pytest.approx(backward)
        assert 0.0 < forward < 1.0

    def test_shared_rare_topic_beats_shared_common_topic(self) -> None:
        """Sharing a niche topic counts for more than sharing a catch-all."""
        matcher = TopicSimilarityMatcher(
            {"news": 90, "astronomy": 2, "x": 10, "y": 10}, total_documents=100
        )
        rare = matcher.similarity(["astronomy", "x"], ["astronomy", "y"])
        common = matcher.similarity(["news", "x"], ["news", "y"])
        assert rare > common

    def test_jaccard_floor(self) -> None:
        """Pairs below the plain Jaccard floor score 0."""
        matcher = TopicSimilarityMatcher(jaccard_floor=0.5)
        assert matcher.similarity(["a", "b", "c"], ["a", "d", "e"]) == 0.0

    def test_profile_similarity(self) -> None:
        """Profile matches favor heavily weighted topics."""
        matcher = TopicSimilarityMatcher()
        strong = matcher.profile_similarity({"science": 3.0, "art": 1.0}, ["science"])
        weak = matcher.profile_similarity({"science": 1.0, "art": 3.0}, ["science"])
        assert strong > weak
        assert matcher.profile_similarity({"science": 1.0}, ["sports"]) == 0.0

    def test_multi_factor(self) -> None:
        """Multi-factor similarity blends topic, domain and quality."""
        matcher = TopicSimilarityMatcher()
        a = make_item("a", domain="example.com", topics=["science"], quality_score=0.8)
        b = make_item("b", domain="example.com", topics=["science"], quality_score=0.6)

        result = matcher.multi_factor(a, b)
        assert result.topic == pytest.approx(1.0)
        assert result.domain == 1.0
        assert result.quality == pytest.approx(0.8)
        assert result.overall == pytest.approx(0.5 + 0.25 + 0.25 * 0.8)
        assert set(result.to_dict()) == {"topic", "domain", "quality", "overall"}
