"""Admin endpoints for experiment management."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Response, status

from discovery.api.deps import ExperimentsDep, require_admin
from discovery.api.schemas import CompleteExperimentIn
from discovery.experiments.models import ExperimentDefinition, ExperimentUpdate
from discovery.store.models import Experiment, ExperimentStatus


router = APIRouter(
    prefix="/admin/experiments",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=list[Experiment])
def list_experiments(
    experiments: ExperimentsDep,
    status_filter: Annotated[ExperimentStatus | None, Query(alias="status")] = None,
) -> list[Experiment]:
    """List experiments."""
    return experiments.list_experiments(status_filter)


@router.post("", response_model=Experiment, status_code=status.HTTP_201_CREATED)
def create_experiment(
    definition: ExperimentDefinition, experiments: ExperimentsDep
) -> Experiment:
    """Create a draft experiment."""
    return experiments.create_experiment(definition)


@router.get("/{experiment_id}", response_model=Experiment)
def get_experiment(experiment_id: str, experiments: ExperimentsDep) -> Experiment:
    """Get one experiment."""
    return experiments.get_experiment(experiment_id)


@router.patch("/{experiment_id}", response_model=Experiment)
def update_experiment(
    experiment_id: str, changes: ExperimentUpdate, experiments: ExperimentsDep
) -> Experiment:
    """Update an experiment."""
    return experiments.update_experiment(experiment_id, changes)


@router.delete("/{experiment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_experiment(experiment_id: str, experiments: ExperimentsDep) -> Response:
    """Delete a draft experiment."""
    experiments.delete_experiment(experiment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{experiment_id}/start", response_model=Experiment)
def start_experiment(experiment_id: str, experiments: ExperimentsDep) -> Experiment:
    """Start a draft experiment."""
    return experiments.start(experiment_id)


@router.post("/{experiment_id}/pause", response_model=Experiment)
def pause_experiment(experiment_id: str, experiments: ExperimentsDep) -> Experiment:
    """Pause an active experiment."""
    return experiments.pause(experiment_id)


@router.post("/{experiment_id}/resume", response_model=Experiment)
def resume_experiment(experiment_id: str, experiments: ExperimentsDep) -> Experiment:
    """Resume a paused experiment."""
    return experiments.resume(experiment_id)


@router.post("/{experiment_id}/complete", response_model=Experiment)
def complete_experiment(
    experiment_id: str,
    experiments: ExperimentsDep,
    body: CompleteExperimentIn | None = None,
) -> Experiment:
    """Complete an experiment, optionally naming the winner."""
    winner = body.winner if body is not None else None
    return experiments.complete(experiment_id, winner=winner)


@router.get("/{experiment_id}/metrics")
def experiment_metrics(experiment_id: str, experiments: ExperimentsDep) -> dict[str, Any]:
    """Per-variant metrics, significance tests, and recommendation."""
    return experiments.compute_metrics(experiment_id).to_dict()
