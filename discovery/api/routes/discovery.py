"""User-facing discovery endpoints."""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query

from discovery.api.deps import (
    ExperimentsDep,
    StoreDep,
    get_engine,
    get_similar_finder,
)
from discovery.api.schemas import (
    DiscoveryEventIn,
    DiscoveryEventOut,
    DiscoveryResponse,
    SimilarEntry,
    SimilarResponse,
    TrendingEntry,
    TrendingResponse,
)
from discovery.scoring.engine import DiscoveryEngine
from discovery.scoring.errors import CandidateFetchTimeout, NoCandidatesError
from discovery.scoring.metrics import EngineMetrics
from discovery.scoring.models import Selection
from discovery.similarity.constants import DEFAULT_MIN_SIMILARITY, DEFAULT_SIMILAR_LIMIT
from discovery.similarity.finder import SimilarContentFinder
from discovery.store.models import InteractionAction, TrendingWindow, UserContext


logger = structlog.get_logger()

router = APIRouter(tags=["discovery"])


def parse_seen(seen: str | None) -> list[str]:
    """Split the comma-separated session-seen token."""
    if not seen:
        return []
    return [part.strip() for part in seen.split(",") if part.strip()]


def select_with_fallback(
    engine: DiscoveryEngine, user: UserContext, seen: list[str]
) -> Selection:
    """Select with one retry for an empty pool or a slow candidate query.

    An empty pool is retried with relaxed filters; a timeout is retried with
    half the pool size. A second failure propagates to the error handlers.
    """
    try:
        return engine.select_next(user, seen)
    except NoCandidatesError:
        EngineMetrics.get_instance().record_relaxed_retry()
        logger.info("discovery_retry_relaxed", user_id=user.user_id)
        return engine.select_next(user, seen, relaxed=True)
    except CandidateFetchTimeout as e:
        smaller = max(1, e.pool_size // 2)
        logger.warning(
            "discovery_retry_smaller_pool", user_id=user.user_id, pool_size=smaller
        )
        return engine.select_next(user, seen, pool_size=smaller)


@router.get("/next-discovery", response_model=DiscoveryResponse)
def next_discovery(
    store: StoreDep,
    engine: Annotated[DiscoveryEngine, Depends(get_engine)],
    user_id: Annotated[str, Query(min_length=1)],
    seen: Annotated[str | None, Query(description="Comma-separated ids seen this session")] = None,
    wildness: Annotated[float | None, Query(ge=0, le=100)] = None,
) -> DiscoveryResponse:
    """Return the next item for a user."""
    user = store.fetch_user_context(user_id)
    if wildness is not None:
        user = user.model_copy(update={"wildness": wildness})

    selection = select_with_fallback(engine, user, parse_seen(seen))
    store.record_interaction(user_id, selection.content.id, InteractionAction.VIEW)
    return DiscoveryResponse.from_selection(selection)


@router.get("/trending", response_model=TrendingResponse)
def trending(
    store: StoreDep,
    window: TrendingWindow = TrendingWindow.DAY,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> TrendingResponse:
    """Return the cached trending list of a window."""
    entries = store.get_trending(window, limit)
    return TrendingResponse(
        window=window.value,
        items=[TrendingEntry.from_record(record, item) for record, item in entries],
    )


@router.get("/similar/{content_id}", response_model=SimilarResponse)
def similar(
    content_id: str,
    finder: Annotated[SimilarContentFinder, Depends(get_similar_finder)],
    limit: Annotated[int, Query(ge=1, le=50)] = DEFAULT_SIMILAR_LIMIT,
    min_similarity: Annotated[float, Query(ge=0, le=1)] = DEFAULT_MIN_SIMILARITY,
) -> SimilarResponse:
    """Return items similar to ``content_id``."""
    results = finder.find_similar(content_id, limit=limit, min_similarity=min_similarity)
    return SimilarResponse(
        reference_id=content_id,
        items=[SimilarEntry.from_similar(r) for r in results],
    )


@router.post("/discovery-events", response_model=DiscoveryEventOut)
def discovery_event(
    event: DiscoveryEventIn,
    store: StoreDep,
    experiments: ExperimentsDep,
) -> DiscoveryEventOut:
    """Record the outcome of a shown item."""
    store.record_interaction(event.user_id, event.content_id, event.event_type.action)

    assignment = experiments.current_assignment(event.user_id)
    if assignment is None:
        return DiscoveryEventOut(interaction_recorded=True)

    experiment, variant = assignment
    logged = experiments.log_event(
        experiment.id,
        event.user_id,
        variant.name,
        event.event_type.event_type,
        content_id=event.content_id,
        time_to_action_ms=event.time_to_action_ms,
    )
    return DiscoveryEventOut(
        interaction_recorded=True,
        experiment_id=experiment.id,
        variant=variant.name,
        experiment_event_logged=logged,
    )
