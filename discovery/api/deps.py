"""FastAPI dependencies: per-request store and the services built on it."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from discovery.config.schemas.scoring import ScoringWeights
from discovery.experiments.manager import ExperimentManager
from discovery.scoring.engine import DiscoveryEngine
from discovery.scoring.personalization import build_cluster_strategy
from discovery.settings import AppSettings
from discovery.similarity.finder import SimilarContentFinder
from discovery.store.store import DiscoveryStore


def get_app_settings(request: Request) -> AppSettings:
    """Settings the app was created with."""
    return request.app.state.settings


def get_weights(request: Request) -> ScoringWeights:
    """Default scoring weights loaded at startup."""
    return request.app.state.weights


def get_store(
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> Generator[DiscoveryStore]:
    """Open a store connection for the duration of one request."""
    store = DiscoveryStore(settings.db_path)
    store.connect()
    try:
        yield store
    finally:
        store.close()


StoreDep = Annotated[DiscoveryStore, Depends(get_store)]
SettingsDep = Annotated[AppSettings, Depends(get_app_settings)]


def get_experiment_manager(request: Request, store: StoreDep) -> ExperimentManager:
    """Experiment manager bound to the request's store."""
    return ExperimentManager(store, rng=request.app.state.rng)


ExperimentsDep = Annotated[ExperimentManager, Depends(get_experiment_manager)]


def get_engine(
    request: Request,
    store: StoreDep,
    settings: SettingsDep,
    weights: Annotated[ScoringWeights, Depends(get_weights)],
    experiments: ExperimentsDep,
) -> DiscoveryEngine:
    """Discovery engine bound to the request's store."""
    return DiscoveryEngine(
        store,
        weights=weights,
        experiments=experiments,
        cluster_strategy=build_cluster_strategy(settings.cluster_strategy, store),
        rng=request.app.state.rng,
        candidate_pool_size=settings.candidate_pool_size,
        budget_ms=settings.request_budget_ms,
    )


def get_similar_finder(store: StoreDep) -> SimilarContentFinder:
    """Similar-content finder bound to the request's store."""
    return SimilarContentFinder(store)


def require_admin(
    settings: SettingsDep,
    x_user_role: Annotated[str | None, Header()] = None,
) -> None:
    """Reject requests whose gateway-assigned role is not admin."""
    if x_user_role != settings.admin_role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required"
        )
