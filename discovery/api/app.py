"""FastAPI app factory.

Use: uvicorn --factory discovery.api.app:create_app
Or:  discovery serve
"""

import random
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from discovery import __version__
from discovery.api.routes import admin, moderation
from discovery.api.routes import discovery as discovery_routes
from discovery.config.loader import WeightsLoader
from discovery.config.schemas.scoring import ScoringWeights
from discovery.experiments.errors import (
    ExperimentLockedError,
    ExperimentNotFoundError,
    ExperimentStateTransitionError,
    InvalidExperimentConfigError,
)
from discovery.observability.logging import bind_request_context, clear_request_context
from discovery.scoring.errors import CandidateFetchTimeout, NoCandidatesError
from discovery.scoring.metrics import EngineMetrics
from discovery.settings import AppSettings, get_settings
from discovery.store.errors import ContentNotFoundError


logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


def _error(status_code: int, detail: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, **extra})


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors to HTTP responses."""

    @app.exception_handler(NoCandidatesError)
    async def no_candidates(_: Request, exc: NoCandidatesError) -> JSONResponse:
        logger.info("discovery_empty_state", user_id=exc.user_id)
        return _error(
            status.HTTP_404_NOT_FOUND,
            "No new discoveries right now",
            empty_state="try_again",
        )

    @app.exception_handler(CandidateFetchTimeout)
    async def fetch_timeout(_: Request, exc: CandidateFetchTimeout) -> JSONResponse:
        logger.warning("discovery_unavailable", budget_ms=exc.budget_ms)
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))

    @app.exception_handler(ContentNotFoundError)
    async def content_not_found(_: Request, exc: ContentNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(ExperimentNotFoundError)
    async def experiment_not_found(
        _: Request, exc: ExperimentNotFoundError
    ) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(ExperimentStateTransitionError)
    async def illegal_transition(
        _: Request, exc: ExperimentStateTransitionError
    ) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, str(exc))

    @app.exception_handler(ExperimentLockedError)
    async def experiment_locked(_: Request, exc: ExperimentLockedError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, str(exc))

    @app.exception_handler(InvalidExperimentConfigError)
    async def invalid_experiment(
        _: Request, exc: InvalidExperimentConfigError
    ) -> JSONResponse:
        return _error(
            status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc), errors=exc.errors
        )


def create_app(
    settings: AppSettings | None = None,
    weights: ScoringWeights | None = None,
    rng: random.Random | None = None,
) -> FastAPI:
    """Build the API app.

    Args:
        settings: Settings; read from the environment when omitted.
        weights: Default scoring weights; loaded from ``settings.weights_path``
            when omitted.
        rng: Random source for selection and assignment draws.

    Returns:
        Configured FastAPI app.
    """
    settings = settings or get_settings()
    if weights is None:
        weights = WeightsLoader().load(settings.weights_path)

    app = FastAPI(
        title="Discovery Engine API",
        description="Personalized discovery, trending, similar content and experiments",
        version=__version__,
    )
    app.state.settings = settings
    app.state.weights = weights
    app.state.rng = rng or random.Random()

    @app.middleware("http")
    async def request_context(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        bind_request_context(request_id, request.method, request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    register_exception_handlers(app)
    app.include_router(discovery_routes.router)
    app.include_router(moderation.router)
    app.include_router(admin.router)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "weights_version": weights.version,
            "engine": EngineMetrics.get_instance().to_dict(),
        }

    logger.info(
        "api_created",
        db_path=str(settings.db_path),
        weights_version=weights.version,
        cluster_strategy=settings.cluster_strategy,
    )
    return app
