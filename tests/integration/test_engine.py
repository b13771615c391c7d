"""Integration tests for DiscoveryEngine.select_next."""

import random
import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest

from discovery.config.schemas.scoring import ScoringWeights
from discovery.experiments.manager import ExperimentManager
from discovery.experiments.metrics import ExperimentMetrics
from discovery.experiments.models import ExperimentDefinition
from discovery.scoring.engine import DiscoveryEngine
from discovery.scoring.errors import CandidateFetchTimeout, NoCandidatesError
from discovery.scoring.metrics import EngineMetrics
from discovery.scoring.personalization import PeerEngagementClusterStrategy
from discovery.store.errors import QueryTimeoutError
from discovery.store.metrics import StoreMetrics
from discovery.store.models import (
    InteractionAction,
    ReputationRecord,
    UserContext,
    Variant,
)
from discovery.store.store import DiscoveryStore
from tests.helpers.content import make_item
from tests.helpers.time import FIXED_NOW


@pytest.fixture
def temp_db_path() -> Generator[Path]:
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test_discovery.sqlite"


@pytest.fixture
def store(temp_db_path: Path) -> Generator[DiscoveryStore]:
    """Create a store with one science and one sports item."""
    StoreMetrics.reset()
    EngineMetrics.reset()
    ExperimentMetrics.reset()
    store = DiscoveryStore(temp_db_path, run_id="test-run-001")
    store.connect()
    store.upsert_content(make_item("science-1", domain="science.example", topics=["science"]))
    store.upsert_content(make_item("sports-1", domain="sports.example", topics=["sports"]))
    yield store
    store.close()


def _engine(store: DiscoveryStore, **kwargs: Any) -> DiscoveryEngine:
    return DiscoveryEngine(
        store, weights=ScoringWeights(), rng=random.Random(7), now=FIXED_NOW, **kwargs
    )


def _user(wildness: float = 0.0) -> UserContext:
    return UserContext(user_id="u1", preferred_topics=["science"], wildness=wildness)


class TestSelectNext:
    """Tests for select_next."""

    def test_greedy_pick_matches_interest(self, store: DiscoveryStore) -> None:
        """At wildness 0 the best topic match is always chosen."""
        selection = _engine(store).select_next(_user())

        assert selection.content.id == "science-1"
        assert selection.top_k == 1
        assert selection.pool_size == 2
        assert selection.weights_version == "v1"
        assert selection.variant is None
        assert selection.rationale == "Matches your interest in science"

    def test_session_seen_never_repeats(self, store: DiscoveryStore) -> None:
        """Items shown in the session are excluded until the pool runs dry."""
        store.upsert_content(make_item("science-2", domain="science.example", topics=["science"]))
        engine = _engine(store)
        seen: list[str] = []

        for _ in range(3):
            seen.append(engine.select_next(_user(100.0), seen).content.id)

        assert sorted(seen) == ["science-1", "science-2", "sports-1"]
        with pytest.raises(NoCandidatesError):
            engine.select_next(_user(100.0), seen)
        assert EngineMetrics.get_instance().empty_pools_total == 1

    def test_empty_catalog(self, temp_db_path: Path) -> None:
        """A store without content has no candidates."""
        empty = DiscoveryStore(temp_db_path.with_name("empty.sqlite"))
        empty.connect()
        try:
            with pytest.raises(NoCandidatesError):
                _engine(empty).select_next(_user())
        finally:
            empty.close()

    def test_blacklisted_domain_excluded(self, store: DiscoveryStore) -> None:
        """Content from blacklisted domains is never selected."""
        store.upsert_reputation_record(
            ReputationRecord(
                domain="science.example",
                trust_score=0.1,
                reputation_score=0.1,
                is_blacklisted=True,
                blacklist_reasons=["flagged items: 6"],
                computed_at=FIXED_NOW,
            )
        )

        selection = _engine(store).select_next(_user())

        assert selection.content.id == "sports-1"
        assert selection.pool_size == 1

    def test_long_term_seen_relaxed(self, store: DiscoveryStore) -> None:
        """Previously seen items return only when filters are relaxed."""
        store.record_interaction("u1", "science-1", InteractionAction.VIEW, FIXED_NOW)
        engine = _engine(store)

        strict = engine.select_next(_user())
        relaxed = engine.select_next(_user(), relaxed=True)

        assert strict.content.id == "sports-1"
        assert strict.pool_size == 1
        assert relaxed.pool_size == 2

    def test_peer_cluster_strategy(self, store: DiscoveryStore) -> None:
        """The peer strategy plugs into the engine."""
        store.upsert_user("peer", ["science"])
        store.record_interaction("peer", "science-1", InteractionAction.LIKE, FIXED_NOW)

        selection = _engine(
            store, cluster_strategy=PeerEngagementClusterStrategy(store)
        ).select_next(_user())

        assert selection.content.id == "science-1"


class TestExperimentIntegration:
    """Tests for variant weights inside select_next."""

    def test_variant_recorded_and_event_logged(self, store: DiscoveryStore) -> None:
        """Users in an active experiment are scored with their variant and logged."""
        manager = ExperimentManager(store, rng=random.Random(0), now=FIXED_NOW)
        experiment = manager.create_experiment(
            ExperimentDefinition(
                name="Freshness boost",
                variants=[
                    Variant(name="fresh", allocation=100, weights={"freshness_weight": 2.0})
                ],
            )
        )
        manager.start(experiment.id)

        selection = _engine(store, experiments=manager).select_next(_user())
        counts = store.fetch_variant_event_counts(experiment.id)

        assert selection.variant == "fresh"
        assert selection.experiment_id == experiment.id
        assert [(c.variant, c.shown) for c in counts] == [("fresh", 1)]
        assert EngineMetrics.get_instance().selections_by_variant == {"fresh": 1}

    def test_no_experiment_uses_defaults(self, store: DiscoveryStore) -> None:
        """Without an active experiment the default weights apply."""
        manager = ExperimentManager(store, now=FIXED_NOW)

        selection = _engine(store, experiments=manager).select_next(_user())

        assert selection.variant is None
        assert EngineMetrics.get_instance().selections_by_variant == {"default": 1}


class TestCandidateFetchTimeout:
    """Tests for the candidate query budget inside select_next."""

    def test_store_timeout_becomes_fetch_timeout(
        self, store: DiscoveryStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A store query timeout surfaces as a retryable CandidateFetchTimeout."""

        def _slow_fetch(*args: object, **kwargs: object) -> list[object]:
            raise QueryTimeoutError("fetch_candidates", 250.0)

        monkeypatch.setattr(store, "fetch_candidates", _slow_fetch)
        engine = _engine(store, candidate_pool_size=50, budget_ms=250.0)

        with pytest.raises(CandidateFetchTimeout) as exc_info:
            engine.select_next(_user())

        assert exc_info.value.pool_size == 50
        assert exc_info.value.budget_ms == 250.0
        assert EngineMetrics.get_instance().fetch_timeouts_total == 1
        assert EngineMetrics.get_instance().selections_total == 0

    def test_budget_passed_to_store(
        self, store: DiscoveryStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The engine's budget and pool size reach the candidate query."""
        calls: list[dict[str, object]] = []
        fetch = store.fetch_candidates

        def _recording_fetch(*args: Any, **kwargs: Any) -> Any:
            calls.append(kwargs)
            return fetch(*args, **kwargs)

        monkeypatch.setattr(store, "fetch_candidates", _recording_fetch)

        _engine(store, candidate_pool_size=50, budget_ms=250.0).select_next(
            _user(), pool_size=25
        )

        assert calls[0]["budget_ms"] == 250.0
        assert calls[0]["limit"] == 25
