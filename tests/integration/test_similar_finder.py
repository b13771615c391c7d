"""Integration tests for SimilarContentFinder."""

import tempfile
from collections.abc import Generator
from datetime import timedelta
from pathlib import Path

import pytest

from discovery.similarity.finder import SimilarContentFinder
from discovery.store.errors import ContentNotFoundError
from discovery.store.metrics import StoreMetrics
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
    """Create a store seeded with a small topic graph."""
    StoreMetrics.reset()
    store = DiscoveryStore(temp_db_path, run_id="test-run-001")
    store.connect()
    store.upsert_content(make_item("ref", topics=["ai", "robotics"]))
    store.upsert_content(make_item("twin", topics=["ai", "robotics"]))
    store.upsert_content(make_item("partial", topics=["ai", "cooking"]))
    store.upsert_content(make_item("unrelated", topics=["sports"]))
    yield store
    store.close()


class TestFindSimilar:
    """Tests for find_similar."""

    def test_ranking(self, store: DiscoveryStore) -> None:
        """Full topic overlap ranks above partial overlap; no-overlap items are absent."""
        results = SimilarContentFinder(store, now=FIXED_NOW).find_similar("ref")

        assert [r.content.id for r in results] == ["twin", "partial"]
        assert [r.edge.rank for r in results] == [1, 2]
        assert results[0].edge.similarity > results[1].edge.similarity
        assert results[0].edge.similarity == pytest.approx(1.0)

    def test_reference_excluded(self, store: DiscoveryStore) -> None:
        """The reference item is never similar to itself."""
        results = SimilarContentFinder(store, now=FIXED_NOW).find_similar("ref")
        assert "ref" not in {r.content.id for r in results}

    def test_unknown_reference(self, store: DiscoveryStore) -> None:
        """Unknown reference ids raise."""
        with pytest.raises(ContentNotFoundError):
            SimilarContentFinder(store, now=FIXED_NOW).find_similar("ghost")

    def test_min_similarity_and_limit(self, store: DiscoveryStore) -> None:
        """Results below the similarity floor or past the limit are dropped."""
        finder = SimilarContentFinder(store, now=FIXED_NOW)

        assert [r.content.id for r in finder.find_similar("ref", min_similarity=0.99)] == [
            "twin"
        ]
        assert len(finder.find_similar("ref", limit=1)) == 1

    def test_edges_cached_until_stale(self, store: DiscoveryStore) -> None:
        """Fresh cached edges are reused; stale ones are recomputed."""
        SimilarContentFinder(store, now=FIXED_NOW).find_similar("ref")
        store.upsert_content(make_item("late", topics=["ai", "robotics"]))

        cached = SimilarContentFinder(store, now=FIXED_NOW + timedelta(hours=1)).find_similar(
            "ref"
        )
        recomputed = SimilarContentFinder(
            store, now=FIXED_NOW + timedelta(hours=7)
        ).find_similar("ref")

        assert "late" not in {r.content.id for r in cached}
        assert "late" in {r.content.id for r in recomputed}

    def test_reference_without_topics(self, store: DiscoveryStore) -> None:
        """Items without topics have no similar items."""
        store.upsert_content(make_item("bare", topics=[]))
        assert SimilarContentFinder(store, now=FIXED_NOW).find_similar("bare") == []
