"""Constants for the similarity module."""

from datetime import timedelta


# Plain Jaccard overlap below which a pair is not scored at all
DEFAULT_JACCARD_FLOOR: float = 0.05

# Blend of IDF-weighted Jaccard and cosine in the topic similarity
WEIGHTED_JACCARD_SHARE: float = 0.5
COSINE_SHARE: float = 0.5

# Multi-factor item similarity
MULTI_FACTOR_TOPIC_WEIGHT: float = 0.50
MULTI_FACTOR_DOMAIN_WEIGHT: float = 0.25
MULTI_FACTOR_QUALITY_WEIGHT: float = 0.25
RELATED_DOMAIN_SCORE: float = 0.5

# Ranking of similar items for a reference item
OVERALL_SIMILARITY_WEIGHT: float = 0.50
OVERALL_QUALITY_WEIGHT: float = 0.20
OVERALL_FRESHNESS_WEIGHT: float = 0.15
OVERALL_POPULARITY_WEIGHT: float = 0.10
OVERALL_DOMAIN_WEIGHT: float = 0.05

FRESHNESS_HALF_LIFE_DAYS: float = 14.0

# log10(1 + views) reaching this value counts as fully popular
POPULARITY_LOG_VIEWS_CAP: float = 3.0

DEFAULT_MIN_SIMILARITY: float = 0.1
DEFAULT_SIMILAR_LIMIT: int = 10

# Edge list cached per reference item
MAX_CACHED_EDGES: int = 50
EDGE_CACHE_TTL: timedelta = timedelta(hours=6)

# Rows fetched by the topic-overlap pre-filter
OVERLAP_CANDIDATE_LIMIT: int = 500
