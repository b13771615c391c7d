"""Topical similarity between items and user profiles."""

from discovery.similarity.finder import SimilarContentFinder, SimilarItem
from discovery.similarity.matcher import (
    MultiFactorSimilarity,
    TopicSimilarityMatcher,
    domain_match,
    jaccard,
)


__all__ = [
    "MultiFactorSimilarity",
    "SimilarContentFinder",
    "SimilarItem",
    "TopicSimilarityMatcher",
    "domain_match",
    "jaccard",
]
