"""Operator commands for the discovery engine."""

import json
import logging
import sys
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path

import click
import structlog

from discovery import __version__
from discovery.batch.runner import BatchResult
from discovery.config.loader import ConfigValidationError, WeightsLoader
from discovery.observability.logging import bind_run_context, configure_logging
from discovery.reputation.aggregator import (
    DomainReputationAggregator,
    reputation_multiplier,
)
from discovery.settings import AppSettings, get_settings
from discovery.similarity.constants import EDGE_CACHE_TTL
from discovery.store.models import TrendingWindow
from discovery.store.store import DiscoveryStore
from discovery.trending.calculator import TrendingCalculator
from discovery.trending.scheduler import TrendingScheduler


logger = structlog.get_logger()

# Interaction history kept by `prune` unless overridden
DEFAULT_INTERACTION_RETENTION_DAYS = 180


def _setup(settings: AppSettings, verbose: bool) -> str:
    """Configure logging, bind a run id, and return it."""
    level = logging.DEBUG if verbose else settings.log_level_number()
    configure_logging(
        level=level,
        json_format=settings.log_json,
    )
    run_id = str(uuid.uuid4())
    bind_run_context(run_id)
    return run_id


def _resolve_db(settings: AppSettings, db_path: Path | None) -> Path:
    return db_path if db_path is not None else settings.db_path


def _echo_batch(result: BatchResult, json_output: bool) -> None:
    """Print a batch summary and exit non-zero if any unit failed."""
    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        click.echo(
            f"{result.job}: {result.units_succeeded} succeeded, "
            f"{result.units_failed} failed ({result.duration_ms:.0f}ms)"
        )
        for unit_id, error in result.to_dict()["failed_units"].items():
            click.echo(f"  - {unit_id}: {error}", err=True)
    if not result.success:
        sys.exit(1)


db_option = click.option(
    "--db",
    "db_path",
    default=None,
    type=click.Path(path_type=Path),
    help="SQLite database path (default: DISCOVERY_DB_PATH).",
)
verbose_option = click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging.",
)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Discovery engine: serve the API and run batch jobs."""


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address.")
@click.option("--port", default=8000, type=int, help="Bind port.")
@verbose_option
def serve(host: str, port: int, verbose: bool) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from discovery.api.app import create_app

    settings = get_settings()
    _setup(settings, verbose)
    try:
        app = create_app(settings)
    except ConfigValidationError as e:
        click.echo(f"Invalid scoring weights: {e}", err=True)
        sys.exit(1)

    logger.info("api_serving", host=host, port=port)
    uvicorn.run(app, host=host, port=port, log_config=None)


@cli.command("recompute-trending")
@click.option(
    "--window",
    "windows",
    multiple=True,
    type=click.Choice([w.value for w in TrendingWindow]),
    help="Window to recompute (repeatable; default: all).",
)
@db_option
@click.option("--json-output", is_flag=True, help="Print the run summary as JSON.")
@verbose_option
def recompute_trending(
    windows: tuple[str, ...], db_path: Path | None, json_output: bool, verbose: bool
) -> None:
    """Recompute trending lists."""
    settings = get_settings()
    run_id = _setup(settings, verbose)
    selected = [TrendingWindow(w) for w in windows] or list(TrendingWindow)

    with DiscoveryStore(_resolve_db(settings, db_path), run_id=run_id) as store:
        result = TrendingCalculator(store, run_id=run_id).recompute_all(selected)
    _echo_batch(result, json_output)


@cli.command("schedule-trending")
@click.option(
    "--interval-minutes",
    default=None,
    type=click.IntRange(min=1),
    help="Minutes between runs (default: DISCOVERY_TRENDING_INTERVAL_MINUTES, 15).",
)
@click.option(
    "--max-runs",
    default=None,
    type=click.IntRange(min=1),
    help="Stop after this many runs (default: run until interrupted).",
)
@db_option
@verbose_option
def schedule_trending(
    interval_minutes: int | None,
    max_runs: int | None,
    db_path: Path | None,
    verbose: bool,
) -> None:
    """Recompute every trending window on a fixed interval."""
    settings = get_settings()
    run_id = _setup(settings, verbose)
    minutes = interval_minutes or settings.trending_interval_minutes

    scheduler = TrendingScheduler(
        _resolve_db(settings, db_path),
        interval=timedelta(minutes=minutes),
        run_id=run_id,
    )
    try:
        runs = scheduler.run(max_ticks=max_runs)
    except KeyboardInterrupt:
        logger.info("trending_scheduler_stopped")
        return
    click.echo(f"Completed {runs} trending runs")


@cli.command("recompute-reputation")
@click.option("--domain", default=None, help="Recompute a single domain.")
@db_option
@click.option("--json-output", is_flag=True, help="Print the run summary as JSON.")
@verbose_option
def recompute_reputation(
    domain: str | None, db_path: Path | None, json_output: bool, verbose: bool
) -> None:
    """Recompute domain reputation snapshots."""
    settings = get_settings()
    run_id = _setup(settings, verbose)

    with DiscoveryStore(_resolve_db(settings, db_path), run_id=run_id) as store:
        aggregator = DomainReputationAggregator(store, run_id=run_id)
        if domain is None:
            _echo_batch(aggregator.recompute_all(), json_output)
            return
        record = aggregator.recompute_reputation(domain)

    if json_output:
        click.echo(record.model_dump_json(indent=2))
    else:
        status = "blacklisted" if record.is_blacklisted else "ok"
        click.echo(
            f"{record.domain}: trust={record.trust_score:.3f} "
            f"multiplier={reputation_multiplier(record.reputation_score):.3f} ({status})"
        )


@cli.command()
@click.option(
    "--retention-days",
    default=DEFAULT_INTERACTION_RETENTION_DAYS,
    type=click.IntRange(min=1),
    help=f"Days of interaction history to keep (default: {DEFAULT_INTERACTION_RETENTION_DAYS}).",
)
@db_option
@verbose_option
def prune(retention_days: int, db_path: Path | None, verbose: bool) -> None:
    """Delete old interactions and stale similar-content edges."""
    settings = get_settings()
    run_id = _setup(settings, verbose)
    now = datetime.now(UTC)

    with DiscoveryStore(_resolve_db(settings, db_path), run_id=run_id) as store:
        interactions = store.prune_interactions(retention_days, now=now)
        edges = store.prune_similar_edges(now - EDGE_CACHE_TTL - timedelta(days=1))

    click.echo(f"Pruned {interactions} interactions and {edges} similar edges")


@cli.command("db-stats")
@db_option
@click.option("--json-output", is_flag=True, help="Output as JSON.")
def db_stats(db_path: Path | None, json_output: bool) -> None:
    """Display database statistics.

    Shows row counts for all tables and the schema version.
    """
    settings = get_settings()
    configure_logging(json_format=False)

    with DiscoveryStore(_resolve_db(settings, db_path)) as store:
        stats = store.get_stats()

    schema_version = stats.pop("schema_version")
    if json_output:
        click.echo(json.dumps({"schema_version": schema_version, "tables": stats}, indent=2))
        return

    click.echo("Discovery Database Statistics")
    click.echo("=" * 40)
    click.echo(f"  Schema Version: {schema_version}")
    click.echo("")
    click.echo("Table Row Counts:")
    for table, count in sorted(stats.items()):
        click.echo(f"  {table}: {count}")


@cli.command("validate-weights")
@click.option(
    "--weights",
    "weights_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to the scoring weights YAML file.",
)
def validate_weights(weights_path: Path) -> None:
    """Validate a scoring weights file without serving."""
    configure_logging(json_format=False, level=logging.WARNING)
    loader = WeightsLoader()

    try:
        weights = loader.load(weights_path)
    except ConfigValidationError:
        click.echo("Scoring weights validation failed:", err=True)
        for error in loader.validation_errors:
            click.echo(f"  - {error['loc']}: {error['msg']} ({error['type']})", err=True)
        sys.exit(1)

    click.echo("Scoring weights are valid!")
    click.echo(f"  Version: {weights.version}")
    click.echo(f"  Checksum: {loader.checksum}")


if __name__ == "__main__":
    cli()
