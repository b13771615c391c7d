"""Ranked "more like this" lookups backed by a cached edge list."""

import math
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog

from discovery.similarity.constants import (
    DEFAULT_MIN_SIMILARITY,
    DEFAULT_SIMILAR_LIMIT,
    EDGE_CACHE_TTL,
    FRESHNESS_HALF_LIFE_DAYS,
    MAX_CACHED_EDGES,
    OVERALL_DOMAIN_WEIGHT,
    OVERALL_FRESHNESS_WEIGHT,
    OVERALL_POPULARITY_WEIGHT,
    OVERALL_QUALITY_WEIGHT,
    OVERALL_SIMILARITY_WEIGHT,
    OVERLAP_CANDIDATE_LIMIT,
    POPULARITY_LOG_VIEWS_CAP,
)
from discovery.similarity.matcher import TopicSimilarityMatcher, domain_match
from discovery.store.errors import ContentNotFoundError
from discovery.store.models import ContentItem, SimilarEdge
from discovery.store.store import DiscoveryStore


logger = structlog.get_logger()


@dataclass(frozen=True)
class SimilarItem:
    """A similar item together with its edge from the reference item."""

    edge: SimilarEdge
    content: ContentItem


def freshness(item: ContentItem, now: datetime) -> float:
    """Exponential freshness decay used for similar-item ranking."""
    return math.exp(-math.log(2) * item.age_days(now) / FRESHNESS_HALF_LIFE_DAYS)


def popularity(item: ContentItem) -> float:
    """Blend of view volume and engagement rate in [0, 1]."""
    volume = min(1.0, math.log10(1 + item.views) / POPULARITY_LOG_VIEWS_CAP)
    return 0.5 * volume + 0.5 * item.engagement_rate


def overall_score(
    similarity: float, reference: ContentItem, candidate: ContentItem, now: datetime
) -> float:
    """Rank value of a candidate for a reference item.

    Args:
        similarity: Topic similarity of the pair.
        reference: Reference item.
        candidate: Candidate item.
        now: Current time for freshness.

    Returns:
        Weighted blend of similarity, quality, freshness, popularity, and
        domain match.
    """
    return (
        OVERALL_SIMILARITY_WEIGHT * similarity
        + OVERALL_QUALITY_WEIGHT * candidate.quality_score
        + OVERALL_FRESHNESS_WEIGHT * freshness(candidate, now)
        + OVERALL_POPULARITY_WEIGHT * popularity(candidate)
        + OVERALL_DOMAIN_WEIGHT * domain_match(reference.domain, candidate.domain)
    )


class SimilarContentFinder:
    """Finds items related to a reference item.

    Candidates come from the topic index (items sharing at least one topic),
    are scored with IDF weights from the live corpus, and the ranked edge list
    is cached per reference item until it is older than ``cache_ttl``.
    """

    def __init__(
        self,
        store: DiscoveryStore,
        now: datetime | None = None,
        cache_ttl: timedelta = EDGE_CACHE_TTL,
    ) -> None:
        """Initialize the finder.

        Args:
            store: Connected store.
            now: Fixed current time (defaults to the wall clock per call).
            cache_ttl: Maximum age of a cached edge list.
        """
        self._store = store
        self._now = now
        self._cache_ttl = cache_ttl
        self._log = logger.bind(component="similarity")

    def find_similar(
        self,
        reference_id: str,
        limit: int = DEFAULT_SIMILAR_LIMIT,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> list[SimilarItem]:
        """Return the items most similar to ``reference_id``.

        Args:
            reference_id: Reference content id.
            limit: Maximum results.
            min_similarity: Minimum topic similarity of a result.

        Returns:
            Similar items ordered by overall score.

        Raises:
            ContentNotFoundError: If the reference item does not exist.
        """
        reference = self._store.get_content(reference_id)
        if reference is None:
            raise ContentNotFoundError(reference_id)

        now = self._now or datetime.now(UTC)
        edges = self._store.get_similar_edges(reference_id, now - self._cache_ttl)
        cache_hit = edges is not None
        if edges is None:
            edges = self._compute_edges(reference, now)
            self._store.replace_similar_edges(reference_id, edges)

        selected = [e for e in edges if e.similarity >= min_similarity][:limit]
        results: list[SimilarItem] = []
        for edge in selected:
            content = self._store.get_content(edge.content_id)
            if content is not None:
                results.append(SimilarItem(edge=edge, content=content))

        self._log.debug(
            "similar_items_found",
            reference_id=reference_id,
            cache_hit=cache_hit,
            count=len(results),
        )
        return results

    def _compute_edges(self, reference: ContentItem, now: datetime) -> list[SimilarEdge]:
        """Score topic-overlap candidates and build the ranked edge list."""
        if not reference.topics:
            return []

        candidates = self._store.fetch_topic_overlap_candidates(
            reference.id, reference.topics, limit=OVERLAP_CANDIDATE_LIMIT
        )
        all_topics = set(reference.topics)
        for candidate in candidates:
            all_topics.update(candidate.topics)
        df, total = self._store.topic_document_frequencies(all_topics)
        matcher = TopicSimilarityMatcher(document_frequencies=df, total_documents=total)

        scored: list[tuple[float, float, ContentItem]] = []
        for candidate in candidates:
            similarity = matcher.similarity(reference.topics, candidate.topics)
            if similarity <= 0.0:
                continue
            scored.append(
                (overall_score(similarity, reference, candidate, now), similarity, candidate)
            )

        scored.sort(key=lambda s: (-s[0], s[2].id))
        edges = [
            SimilarEdge(
                reference_id=reference.id,
                content_id=candidate.id,
                rank=rank,
                similarity=similarity,
                overall_score=overall,
                computed_at=now,
            )
            for rank, (overall, similarity, candidate) in enumerate(
                scored[:MAX_CACHED_EDGES], start=1
            )
        ]

        self._log.info(
            "similar_edges_computed",
            reference_id=reference.id,
            candidates=len(candidates),
            edges=len(edges),
        )
        return edges
