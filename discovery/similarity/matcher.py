"""Topic-vector similarity between content items and user profiles.

Topics are weighted by inverse document frequency so that a shared niche
topic counts for more than a shared catch-all topic. Every function here is
pure; corpus statistics are passed in by the caller.
"""

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from discovery.similarity.constants import (
    COSINE_SHARE,
    DEFAULT_JACCARD_FLOOR,
    MULTI_FACTOR_DOMAIN_WEIGHT,
    MULTI_FACTOR_QUALITY_WEIGHT,
    MULTI_FACTOR_TOPIC_WEIGHT,
    RELATED_DOMAIN_SCORE,
    WEIGHTED_JACCARD_SHARE,
)
from discovery.store.models import ContentItem


@dataclass(frozen=True)
class MultiFactorSimilarity:
    """Breakdown of item-to-item similarity.

    Attributes:
        topic: IDF-weighted topic similarity.
        domain: 1.0 same domain, 0.5 related domain, 0.0 otherwise.
        quality: 1 minus the absolute quality difference.
        overall: Weighted combination of the three factors.
    """

    topic: float
    domain: float
    quality: float
    overall: float

    def to_dict(self) -> dict[str, float]:
        """Convert to dictionary."""
        return {
            "topic": self.topic,
            "domain": self.domain,
            "quality": self.quality,
            "overall": self.overall,
        }


def registrable_domain(domain: str) -> str:
    """Last two labels of a host name (``blog.example.com`` -> ``example.com``)."""
    labels = domain.lower().strip(".").split(".")
    return ".".join(labels[-2:])


def domain_match(domain_a: str, domain_b: str) -> float:
    """Score how closely two source domains are related.

    Args:
        domain_a: First domain.
        domain_b: Second domain.

    Returns:
        1.0 for the same domain, 0.5 for a shared registrable domain, else 0.0.
    """
    if domain_a.lower() == domain_b.lower():
        return 1.0
    if registrable_domain(domain_a) == registrable_domain(domain_b):
        return RELATED_DOMAIN_SCORE
    return 0.0


def jaccard(topics_a: Iterable[str], topics_b: Iterable[str]) -> float:
    """Unweighted Jaccard overlap of two topic sets."""
    set_a, set_b = set(topics_a), set(topics_b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


class TopicSimilarityMatcher:
    """Scores topical relatedness using IDF-weighted topic vectors.

    The score is the mean of the weighted Jaccard overlap and the cosine of
    the two weighted vectors, so it is symmetric and lies in [0, 1]. Pairs
    whose plain Jaccard overlap falls below ``jaccard_floor`` score 0.
    """

    def __init__(
        self,
        document_frequencies: Mapping[str, int] | None = None,
        total_documents: int = 0,
        jaccard_floor: float = DEFAULT_JACCARD_FLOOR,
    ) -> None:
        """Initialize the matcher.

        Args:
            document_frequencies: Number of documents carrying each topic.
            total_documents: Corpus size. With no corpus, all topics weigh 1.
            jaccard_floor: Minimum plain Jaccard overlap for a pair to be scored.
        """
        self._df = dict(document_frequencies or {})
        self._total = total_documents
        self._jaccard_floor = jaccard_floor

    def idf(self, topic: str) -> float:
        """Inverse document frequency of a topic (1.0 without corpus stats)."""
        if self._total <= 0:
            return 1.0
        df = self._df.get(topic, 0)
        return math.log((self._total + 1) / (df + 1)) + 1.0

    def similarity(self, topics_a: Iterable[str], topics_b: Iterable[str]) -> float:
        """Similarity between two topic sets.

        Args:
            topics_a: First topic set.
            topics_b: Second topic set.

        Returns:
            Similarity in [0, 1]; 0 when the sets share no topic.
        """
        set_a, set_b = set(topics_a), set(topics_b)
        if jaccard(set_a, set_b) < self._jaccard_floor or not (set_a & set_b):
            return 0.0
        vec_a = {t: self.idf(t) for t in set_a}
        vec_b = {t: self.idf(t) for t in set_b}
        return self._blend(vec_a, vec_b)

    def profile_similarity(
        self, preferences: Mapping[str, float], topics: Iterable[str]
    ) -> float:
        """Similarity between a weighted user profile and an item's topics.

        Preference weights multiply the IDF weight of each preferred topic.

        Args:
            preferences: Topic to preference weight.
            topics: Candidate topics.

        Returns:
            Similarity in [0, 1].
        """
        topic_set = set(topics)
        shared = topic_set & set(preferences)
        if not shared or jaccard(preferences, topic_set) < self._jaccard_floor:
            return 0.0
        vec_profile = {t: self.idf(t) * w for t, w in preferences.items() if w > 0}
        vec_item = {t: self.idf(t) for t in topic_set}
        return self._blend(vec_profile, vec_item)

    def multi_factor(self, item_a: ContentItem, item_b: ContentItem) -> MultiFactorSimilarity:
        """Combine topic, domain, and quality similarity of two items.

        Args:
            item_a: First item.
            item_b: Second item.

        Returns:
            MultiFactorSimilarity breakdown.
        """
        topic = self.similarity(item_a.topics, item_b.topics)
        domain = domain_match(item_a.domain, item_b.domain)
        quality = 1.0 - abs(item_a.quality_score - item_b.quality_score)
        overall = (
            MULTI_FACTOR_TOPIC_WEIGHT * topic
            + MULTI_FACTOR_DOMAIN_WEIGHT * domain
            + MULTI_FACTOR_QUALITY_WEIGHT * quality
        )
        return MultiFactorSimilarity(
            topic=topic, domain=domain, quality=quality, overall=overall
        )

    @staticmethod
    def _blend(vec_a: Mapping[str, float], vec_b: Mapping[str, float]) -> float:
        """Mean of weighted Jaccard and cosine similarity of two vectors."""
        keys = set(vec_a) | set(vec_b)
        min_sum = sum(min(vec_a.get(k, 0.0), vec_b.get(k, 0.0)) for k in keys)
        max_sum = sum(max(vec_a.get(k, 0.0), vec_b.get(k, 0.0)) for k in keys)
        weighted_jaccard = min_sum / max_sum if max_sum > 0 else 0.0

        dot = sum(vec_a[k] * vec_b[k] for k in set(vec_a) & set(vec_b))
        norm_a = math.sqrt(sum(v * v for v in vec_a.values()))
        norm_b = math.sqrt(sum(v * v for v in vec_b.values()))
        cosine = dot / (norm_a * norm_b) if norm_a > 0 and norm_b > 0 else 0.0

        score = WEIGHTED_JACCARD_SHARE * weighted_jaccard + COSINE_SHARE * cosine
        return max(0.0, min(1.0, score))
