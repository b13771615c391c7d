"""Integration tests for the HTTP API."""

import random
import tempfile
from collections.abc import Generator
from datetime import timedelta
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from discovery.api.app import create_app
from discovery.config.schemas.scoring import ScoringWeights
from discovery.experiments.metrics import ExperimentMetrics
from discovery.scoring.metrics import EngineMetrics
from discovery.settings import AppSettings
from discovery.store.errors import QueryTimeoutError
from discovery.store.metrics import StoreMetrics
from discovery.store.models import InteractionAction, TrendingWindow
from discovery.store.store import DiscoveryStore
from discovery.trending.calculator import TrendingCalculator
from tests.helpers.content import make_item
from tests.helpers.time import FIXED_NOW


ADMIN = {"X-User-Role": "admin"}


@pytest.fixture
def temp_db_path() -> Generator[Path]:
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test_discovery.sqlite"


@pytest.fixture
def seeded_db(temp_db_path: Path) -> Path:
    """Seed a database with content, a user, and a trending snapshot."""
    StoreMetrics.reset()
    EngineMetrics.reset()
    ExperimentMetrics.reset()
    store = DiscoveryStore(temp_db_path, run_id="test-run-001")
    store.connect()
    try:
        store.upsert_content(
            make_item("sci-1", domain="science.example", topics=["science", "space"])
        )
        store.upsert_content(
            make_item("sci-2", domain="science.example", topics=["science"])
        )
        store.upsert_content(make_item("sport-1", domain="sports.example", topics=["sports"]))
        store.upsert_user("u1", ["science"], wildness=0.0)
        for i in range(3):
            store.record_interaction(
                f"fan-{i}", "sport-1", InteractionAction.LIKE, FIXED_NOW - timedelta(hours=1)
            )
        TrendingCalculator(store, now=FIXED_NOW).recompute(TrendingWindow.DAY)
    finally:
        store.close()
    return temp_db_path


@pytest.fixture
def client(seeded_db: Path) -> Generator[TestClient]:
    """Create a test client over the seeded database."""
    app = create_app(
        AppSettings(db_path=seeded_db, cluster_strategy="neutral"),
        weights=ScoringWeights(),
        rng=random.Random(0),
    )
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    """Tests for /health."""

    def test_health(self, client: TestClient) -> None:
        """Health reports the weights version."""
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["weights_version"] == "v1"

    def test_request_id_echoed(self, client: TestClient) -> None:
        """A caller-supplied request id is returned; otherwise one is generated."""
        supplied = client.get("/health", headers={"X-Request-ID": "req-123"})
        generated = client.get("/health")

        assert supplied.headers["X-Request-ID"] == "req-123"
        assert len(generated.headers["X-Request-ID"]) == 32


class TestNextDiscovery:
    """Tests for /next-discovery."""

    def test_returns_pick(self, client: TestClient) -> None:
        """A low-wildness user gets an item matching their interest."""
        response = client.get("/next-discovery", params={"user_id": "u1"})

        assert response.status_code == 200
        body = response.json()
        assert "science" in body["content"]["topics"]
        assert body["rationale"]
        assert body["weights_version"] == "v1"
        assert body["variant"] is None

    def test_session_seen_excluded(self, client: TestClient) -> None:
        """Ids in the seen token are not returned."""
        response = client.get(
            "/next-discovery", params={"user_id": "u1", "seen": "sci-1, sci-2"}
        )

        assert response.status_code == 200
        assert response.json()["content"]["id"] == "sport-1"

    def test_empty_state(self, client: TestClient) -> None:
        """When everything was seen the response asks the client to try again."""
        response = client.get(
            "/next-discovery", params={"user_id": "u1", "seen": "sci-1,sci-2,sport-1"}
        )

        assert response.status_code == 404
        assert response.json()["empty_state"] == "try_again"

    def test_relaxed_retry(self, client: TestClient) -> None:
        """Long-term seen items come back once the strict pool is empty."""
        shown = {
            client.get("/next-discovery", params={"user_id": "u1"}).json()["content"]["id"]
            for _ in range(3)
        }
        again = client.get("/next-discovery", params={"user_id": "u1"})

        assert shown == {"sci-1", "sci-2", "sport-1"}
        assert again.status_code == 200
        assert EngineMetrics.get_instance().relaxed_retries_total == 1

    def test_timeout_retried_with_half_pool(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A slow candidate query is retried once with half the pool."""
        limits: list[int] = []
        fetch = DiscoveryStore.fetch_candidates

        def _slow_once(self: DiscoveryStore, *args: Any, **kwargs: Any) -> Any:
            limits.append(kwargs["limit"])
            if len(limits) == 1:
                raise QueryTimeoutError("fetch_candidates", 250.0)
            return fetch(self, *args, **kwargs)

        monkeypatch.setattr(DiscoveryStore, "fetch_candidates", _slow_once)

        response = client.get("/next-discovery", params={"user_id": "u1"})

        assert response.status_code == 200
        assert limits == [200, 100]
        assert EngineMetrics.get_instance().fetch_timeouts_total == 1

    def test_second_timeout_is_unavailable(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Two slow candidate queries in a row answer 503."""
        limits: list[int] = []

        def _always_slow(self: DiscoveryStore, *args: Any, **kwargs: Any) -> Any:
            limits.append(kwargs["limit"])
            raise QueryTimeoutError("fetch_candidates", 250.0)

        monkeypatch.setattr(DiscoveryStore, "fetch_candidates", _always_slow)

        response = client.get("/next-discovery", params={"user_id": "u1"})

        assert response.status_code == 503
        assert "pool size 100" in response.json()["detail"]
        assert limits == [200, 100]
        assert EngineMetrics.get_instance().fetch_timeouts_total == 2

    def test_wildness_out_of_range(self, client: TestClient) -> None:
        """Wildness is validated."""
        response = client.get("/next-discovery", params={"user_id": "u1", "wildness": 150})
        assert response.status_code == 422


class TestTrendingAndSimilar:
    """Tests for /trending and /similar."""

    def test_trending(self, client: TestClient) -> None:
        """The cached snapshot of a window is returned."""
        response = client.get("/trending", params={"window": "day"})

        assert response.status_code == 200
        body = response.json()
        assert body["window"] == "day"
        assert [e["content"]["id"] for e in body["items"]] == ["sport-1"]
        assert body["items"][0]["interaction_count"] == 3

    def test_trending_empty_window(self, client: TestClient) -> None:
        """Windows without a snapshot are empty."""
        response = client.get("/trending", params={"window": "hour"})
        assert response.json()["items"] == []

    def test_similar(self, client: TestClient) -> None:
        """Items sharing topics are returned in rank order."""
        response = client.get("/similar/sci-1")

        assert response.status_code == 200
        body = response.json()
        assert body["reference_id"] == "sci-1"
        assert [e["content"]["id"] for e in body["items"]] == ["sci-2"]
        assert body["items"][0]["rank"] == 1

    def test_similar_unknown(self, client: TestClient) -> None:
        """Unknown reference ids are 404."""
        assert client.get("/similar/ghost").status_code == 404


class TestEventsAndModeration:
    """Tests for outcome events and moderation decisions."""

    def test_discovery_event_without_experiment(self, client: TestClient) -> None:
        """Outcomes are recorded as interactions."""
        response = client.post(
            "/discovery-events",
            json={"user_id": "u1", "content_id": "sci-1", "event_type": "liked"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "interaction_recorded": True,
            "experiment_id": None,
            "variant": None,
            "experiment_event_logged": False,
        }

    def test_discovery_event_unknown_content(self, client: TestClient) -> None:
        """Outcomes for unknown content are 404."""
        response = client.post(
            "/discovery-events",
            json={"user_id": "u1", "content_id": "ghost", "event_type": "skipped"},
        )
        assert response.status_code == 404

    def test_moderation_decision(self, client: TestClient) -> None:
        """A rejection returns the refreshed domain reputation."""
        response = client.post(
            "/moderation/decisions",
            json={"content_id": "sport-1", "status": "rejected", "flagged": True},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["domain"] == "sports.example"
        assert body["rejected_count"] == 1
        assert body["is_blacklisted"] is True

        seen = client.get("/next-discovery", params={"user_id": "u1", "seen": "sci-1,sci-2"})
        assert seen.status_code == 404


class TestAdminExperiments:
    """Tests for /admin/experiments."""

    def _create(self, client: TestClient, **overrides: object) -> dict[str, object]:
        body: dict[str, object] = {
            "name": "Freshness boost",
            "variants": [
                {"name": "control", "allocation": 50},
                {"name": "fresh", "allocation": 50, "weights": {"freshness_weight": 2.0}},
            ],
        }
        body.update(overrides)
        response = client.post("/admin/experiments", json=body, headers=ADMIN)
        assert response.status_code == 201
        return response.json()

    def test_requires_admin_role(self, client: TestClient) -> None:
        """Requests without the admin role are forbidden."""
        assert client.get("/admin/experiments").status_code == 403
        response = client.get("/admin/experiments", headers={"X-User-Role": "viewer"})
        assert response.status_code == 403

    def test_invalid_config(self, client: TestClient) -> None:
        """Allocations that do not sum to 100 are rejected with details."""
        response = client.post(
            "/admin/experiments",
            json={"name": "Broken", "variants": [{"name": "a", "allocation": 40}]},
            headers=ADMIN,
        )

        assert response.status_code == 422
        assert response.json()["errors"] == ["allocations must sum to 100, got 40"]

    def test_experiment_flow(self, client: TestClient) -> None:
        """Create, start, serve, record an outcome, and read metrics."""
        experiment = self._create(client)
        experiment_id = experiment["id"]
        assert experiment["status"] == "draft"

        started = client.post(f"/admin/experiments/{experiment_id}/start", headers=ADMIN)
        assert started.json()["status"] == "active"

        pick = client.get("/next-discovery", params={"user_id": "u1"}).json()
        assert pick["experiment_id"] == experiment_id
        assert pick["variant"] in {"control", "fresh"}

        event = client.post(
            "/discovery-events",
            json={
                "user_id": "u1",
                "content_id": pick["content"]["id"],
                "event_type": "liked",
                "time_to_action_ms": 1200,
            },
        ).json()
        assert event["variant"] == pick["variant"]
        assert event["experiment_event_logged"] is True

        metrics = client.get(f"/admin/experiments/{experiment_id}/metrics", headers=ADMIN)
        assert metrics.status_code == 200
        variants = metrics.json()["variants"]
        assert [(v["variant"], v["discoveries"], v["likes"]) for v in variants] == [
            (pick["variant"], 1, 1)
        ]
        assert metrics.json()["recommendation"]["status"] == "insufficient_data"

    def test_illegal_transition_conflict(self, client: TestClient) -> None:
        """Pausing a draft is a conflict."""
        experiment_id = self._create(client)["id"]

        response = client.post(f"/admin/experiments/{experiment_id}/pause", headers=ADMIN)

        assert response.status_code == 409

    def test_complete_and_delete(self, client: TestClient) -> None:
        """Completed experiments record the winner and cannot be deleted."""
        experiment_id = self._create(client)["id"]
        client.post(f"/admin/experiments/{experiment_id}/start", headers=ADMIN)

        completed = client.post(
            f"/admin/experiments/{experiment_id}/complete",
            json={"winner": "fresh"},
            headers=ADMIN,
        )
        deleted = client.delete(f"/admin/experiments/{experiment_id}", headers=ADMIN)

        assert completed.json()["status"] == "completed"
        assert completed.json()["winner_variant"] == "fresh"
        assert deleted.status_code == 409

    def test_delete_draft(self, client: TestClient) -> None:
        """Drafts can be deleted."""
        experiment_id = self._create(client)["id"]

        deleted = client.delete(f"/admin/experiments/{experiment_id}", headers=ADMIN)
        missing = client.get(f"/admin/experiments/{experiment_id}", headers=ADMIN)

        assert deleted.status_code == 204
        assert missing.status_code == 404

    def test_list_by_status(self, client: TestClient) -> None:
        """Listing filters by status."""
        draft_id = self._create(client)["id"]
        active_id = self._create(client, name="Active")["id"]
        client.post(f"/admin/experiments/{active_id}/start", headers=ADMIN)

        drafts = client.get("/admin/experiments", params={"status": "draft"}, headers=ADMIN)

        assert [e["id"] for e in drafts.json()] == [draft_id]
