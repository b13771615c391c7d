"""Discovery engine: one scored, explore/exploit pick per request."""

import random
from collections.abc import Iterable
from datetime import UTC, datetime

import structlog
from pydantic import ValidationError

from discovery.config.schemas.scoring import ScoringWeights
from discovery.experiments.manager import ExperimentManager
from discovery.scoring.errors import CandidateFetchTimeout, NoCandidatesError
from discovery.scoring.metrics import EngineMetrics
from discovery.scoring.models import Selection
from discovery.scoring.personalization import ClusterStrategy, NeutralClusterStrategy
from discovery.scoring.rationale import build_rationale
from discovery.scoring.scorer import CandidateScorer, ScorerConfig
from discovery.scoring.selection import select_top_k
from discovery.similarity.matcher import TopicSimilarityMatcher
from discovery.store.errors import QueryTimeoutError
from discovery.store.models import (
    ExperimentEventType,
    OrderHint,
    UserContext,
)
from discovery.store.store import DiscoveryStore
from discovery.trending.constants import BOOST_WINDOW


logger = structlog.get_logger()


class DiscoveryEngine:
    """Selects the next item for a user.

    Candidates come from the store with every exclusion already applied;
    precomputed reputation and trending snapshots are joined in, each
    candidate is scored, and one item is drawn from the top K where K grows
    with the user's wildness.
    """

    def __init__(  # noqa: PLR0913
        self,
        store: DiscoveryStore,
        weights: ScoringWeights | None = None,
        experiments: ExperimentManager | None = None,
        cluster_strategy: ClusterStrategy | None = None,
        rng: random.Random | None = None,
        now: datetime | None = None,
        candidate_pool_size: int = 200,
        budget_ms: float | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Connected store.
            weights: Default scoring weights.
            experiments: Experiment manager for variant weights (optional).
            cluster_strategy: Collaborative signal (neutral when omitted).
            rng: Random source for the top-K draw.
            now: Fixed request time (defaults to the wall clock per call).
            candidate_pool_size: Maximum candidates fetched per request.
            budget_ms: Latency budget for the candidate query.
        """
        self._store = store
        self._weights = weights or ScoringWeights()
        self._experiments = experiments
        self._cluster = cluster_strategy or NeutralClusterStrategy()
        self._rng = rng or random.Random()  # noqa: S311
        self._now = now
        self._pool_size = candidate_pool_size
        self._budget_ms = budget_ms
        self._metrics = EngineMetrics.get_instance()
        self._log = logger.bind(component="scoring")

    def select_next(
        self,
        user: UserContext,
        session_seen_ids: Iterable[str] = (),
        *,
        relaxed: bool = False,
        pool_size: int | None = None,
    ) -> Selection:
        """Pick the next item for ``user``.

        Args:
            user: Requesting user's context.
            session_seen_ids: Ids already shown in this session (never repeated).
            relaxed: Drop the topic order hint and the long-term-seen exclusion.
            pool_size: Override of the candidate pool size.

        Returns:
            The Selection.

        Raises:
            NoCandidatesError: If no eligible candidate remains.
            CandidateFetchTimeout: If the candidate query exceeded the budget.
        """
        self._metrics.record_request()
        now = self._now or datetime.now(UTC)
        limit = pool_size or self._pool_size

        experiment_id: str | None = None
        variant_name: str | None = None
        weights = self._weights
        if self._experiments is not None:
            active = self._experiments.get_active_variant(user.user_id)
            if active is not None:
                experiment, variant = active
                experiment_id, variant_name = experiment.id, variant.name
                weights = self._variant_weights(variant.weights, experiment_id, variant_name)

        order_hint = (
            OrderHint.TOPIC_MATCH
            if user.preferred_topics and not relaxed
            else OrderHint.RECENT
        )
        try:
            candidates = self._store.fetch_candidates(
                user.user_id,
                session_seen_ids,
                order_hint=order_hint,
                limit=limit,
                topics=user.preferred_topics,
                exclude_long_term_seen=not relaxed,
                budget_ms=self._budget_ms,
            )
        except QueryTimeoutError as e:
            self._metrics.record_fetch_timeout()
            raise CandidateFetchTimeout(e.budget_ms, limit) from e

        if not candidates:
            self._metrics.record_empty_pool()
            self._log.info("candidate_pool_empty", user_id=user.user_id, relaxed=relaxed)
            raise NoCandidatesError(user.user_id, relaxed=relaxed)

        reputations = self._store.fetch_domain_reputation({c.domain for c in candidates})
        trending = self._store.get_trending_scores(BOOST_WINDOW, [c.id for c in candidates])
        corpus_topics = set(user.preferred_topics)
        for candidate in candidates:
            corpus_topics.update(candidate.topics)
        df, total = self._store.topic_document_frequencies(corpus_topics)

        scorer = CandidateScorer(
            ScorerConfig(
                weights=weights,
                now=now,
                matcher=TopicSimilarityMatcher(df, total),
                reputations={d: r.reputation_score for d, r in reputations.items()},
                trending_scores=trending,
                cluster_scores=self._cluster.scores(user, candidates),
            )
        )
        scored = scorer.score_candidates(user, candidates)
        chosen, top_k = select_top_k(
            scored, user.wildness, weights.explore_k_min, weights.explore_k_max, self._rng
        )

        selection = Selection(
            content=chosen.content,
            score=chosen.score,
            rationale=build_rationale(chosen, user),
            components=chosen.components,
            weights_version=weights.version,
            variant=variant_name,
            experiment_id=experiment_id,
            pool_size=len(candidates),
            top_k=top_k,
        )

        if self._experiments is not None and experiment_id and variant_name:
            self._experiments.log_event(
                experiment_id,
                user.user_id,
                variant_name,
                ExperimentEventType.DISCOVERY_SHOWN,
                content_id=chosen.content.id,
            )

        self._metrics.record_selection(selection.score, len(candidates), variant_name)
        self._log.info(
            "discovery_selected",
            user_id=user.user_id,
            content_id=selection.content.id,
            score=round(selection.score, 6),
            pool_size=selection.pool_size,
            top_k=top_k,
            wildness=user.wildness,
            weights_version=weights.version,
            variant=variant_name,
            relaxed=relaxed,
        )
        return selection

    def _variant_weights(
        self, overrides: dict[str, object], experiment_id: str, variant: str
    ) -> ScoringWeights:
        """Default weights with a variant's overrides applied.

        Overrides were validated when the experiment was defined; a payload
        that no longer validates falls back to the defaults.
        """
        if not overrides:
            return self._weights
        try:
            return self._weights.with_overrides(overrides)
        except ValidationError as e:
            self._log.warning(
                "variant_weights_invalid",
                experiment_id=experiment_id,
                variant=variant,
                error=str(e),
            )
            return self._weights
