"""A/B experiment lifecycle, sticky assignment, event log, and analysis."""

import random
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime

import structlog
from pydantic import ValidationError

from discovery.config.schemas.scoring import ScoringWeights
from discovery.experiments.errors import (
    ExperimentLockedError,
    ExperimentNotFoundError,
    InvalidExperimentConfigError,
)
from discovery.experiments.metrics import ExperimentMetrics
from discovery.experiments.models import (
    ExperimentDefinition,
    ExperimentResults,
    ExperimentUpdate,
    Recommendation,
    RecommendationStatus,
    VariantComparison,
    VariantMetrics,
)
from discovery.experiments.state_machine import ExperimentStateMachine
from discovery.experiments.stats import (
    mean_and_variance,
    proportion_confidence_interval,
    proportion_standard_error,
    rate,
    two_proportion_z_test,
    welch_t_test,
)
from discovery.store.errors import AssignmentConflictError
from discovery.store.models import (
    Experiment,
    ExperimentAssignment,
    ExperimentEvent,
    ExperimentEventType,
    ExperimentStatus,
    Variant,
    VariantEventCounts,
)
from discovery.store.store import DiscoveryStore


logger = structlog.get_logger()

# Allowed slack when checking that allocations sum to 100
ALLOCATION_TOLERANCE = 0.01


def validate_variants(variants: Sequence[Variant]) -> list[str]:
    """Collect validation problems of a variant list.

    Args:
        variants: Variants to check.

    Returns:
        List of problems (empty when valid).
    """
    errors: list[str] = []
    if not variants:
        return ["at least one variant is required"]

    names = [v.name for v in variants]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        errors.append(f"duplicate variant names: {', '.join(duplicates)}")

    for variant in variants:
        if not 0 < variant.allocation <= 100:  # noqa: PLR2004
            errors.append(
                f"variant '{variant.name}' allocation must be in (0, 100], "
                f"got {variant.allocation}"
            )
        if variant.weights:
            try:
                ScoringWeights().with_overrides(variant.weights)
            except ValidationError as e:
                for err in e.errors():
                    loc = ".".join(str(part) for part in err["loc"]) or "weights"
                    errors.append(f"variant '{variant.name}' weights.{loc}: {err['msg']}")

    total = sum(v.allocation for v in variants)
    if abs(total - 100.0) > ALLOCATION_TOLERANCE:
        errors.append(f"allocations must sum to 100, got {total:g}")
    return errors


def build_variant_metrics(counts: VariantEventCounts) -> VariantMetrics:
    """Derive rates and intervals from raw per-variant counts."""
    engagements = counts.engaged_discoveries
    ci_lower, ci_upper = proportion_confidence_interval(engagements, counts.shown)
    avg_tta, _ = mean_and_variance(
        counts.time_to_action_count,
        counts.time_to_action_sum,
        counts.time_to_action_sum_sq,
    )
    return VariantMetrics(
        variant=counts.variant,
        users=counts.users,
        discoveries=counts.shown,
        likes=counts.liked,
        saves=counts.saved,
        shares=counts.shared,
        skips=counts.skipped,
        like_rate=rate(counts.liked, counts.shown),
        save_rate=rate(counts.saved, counts.shown),
        share_rate=rate(counts.shared, counts.shown),
        skip_rate=rate(counts.skipped, counts.shown),
        engagement_rate=rate(engagements, counts.shown),
        avg_time_to_action_ms=avg_tta if counts.time_to_action_count else None,
        standard_error=proportion_standard_error(engagements, counts.shown),
        ci_lower=ci_lower,
        ci_upper=ci_upper,
    )


def compare_variants(
    a: VariantEventCounts, b: VariantEventCounts, significance_level: float
) -> VariantComparison:
    """Compare two variants on engagement rate and time-to-action."""
    engagement = two_proportion_z_test(
        a.engaged_discoveries, a.shown, b.engaged_discoveries, b.shown
    )
    mean_a, var_a = mean_and_variance(
        a.time_to_action_count, a.time_to_action_sum, a.time_to_action_sum_sq
    )
    mean_b, var_b = mean_and_variance(
        b.time_to_action_count, b.time_to_action_sum, b.time_to_action_sum_sq
    )
    tta = welch_t_test(
        a.time_to_action_count, mean_a, var_a, b.time_to_action_count, mean_b, var_b
    )
    return VariantComparison(
        variant_a=a.variant,
        variant_b=b.variant,
        engagement=engagement,
        time_to_action=tta,
        is_significant=engagement.p_value < significance_level,
    )


def recommend(
    experiment: Experiment,
    metrics: Sequence[VariantMetrics],
    comparisons: Sequence[VariantComparison],
) -> Recommendation:
    """Recommend a winner only when the leader is significantly better.

    Args:
        experiment: Experiment definition (thresholds).
        metrics: Per-variant metrics.
        comparisons: Pairwise comparisons.

    Returns:
        Recommendation.
    """
    if len(metrics) < 2:  # noqa: PLR2004
        return Recommendation(
            status=RecommendationStatus.INSUFFICIENT_DATA,
            reason="At least two variants need recorded discoveries.",
        )

    ranked = sorted(metrics, key=lambda m: (-m.engagement_rate, m.variant))
    top, second = ranked[0], ranked[1]
    comparison = next(
        c
        for c in comparisons
        if {c.variant_a, c.variant_b} == {top.variant, second.variant}
    )
    p_value = comparison.engagement.p_value
    confidence = (1 - p_value) * 100
    improvement = abs(top.engagement_rate - second.engagement_rate) * 100

    smallest = min(top.discoveries, second.discoveries)
    if smallest < experiment.min_sample_size:
        return Recommendation(
            status=RecommendationStatus.INSUFFICIENT_DATA,
            reason=(
                f"Insufficient data ({smallest} of {experiment.min_sample_size} "
                "discoveries in the smaller variant). Continue testing."
            ),
            leading_variant=top.variant,
            confidence=confidence,
        )
    if p_value < experiment.significance_level:
        return Recommendation(
            status=RecommendationStatus.SIGNIFICANT,
            reason=(
                f"{top.variant} shows a {improvement:.1f} point engagement lift "
                f"(p={p_value:.4f} < {experiment.significance_level})"
            ),
            winner_variant=top.variant,
            leading_variant=top.variant,
            confidence=confidence,
        )
    return Recommendation(
        status=RecommendationStatus.NOT_SIGNIFICANT,
        reason=(
            f"{top.variant} leads by {improvement:.1f} points but is not yet "
            f"statistically significant (p={p_value:.4f}). Continue testing."
        ),
        leading_variant=top.variant,
        confidence=confidence,
    )


class ExperimentManager:
    """Manages experiments against the store.

    Assignment is sticky: the first draw for a (user, experiment) pair is
    stored and every later lookup returns it, including under concurrent
    first requests.
    """

    def __init__(
        self,
        store: DiscoveryStore,
        rng: random.Random | None = None,
        now: datetime | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            store: Connected store.
            rng: Random source for variant draws.
            now: Fixed current time (defaults to the wall clock per call).
        """
        self._store = store
        self._rng = rng or random.Random()  # noqa: S311
        self._now = now
        self._metrics = ExperimentMetrics.get_instance()
        self._log = logger.bind(component="experiments")

    def _current_time(self) -> datetime:
        return self._now or datetime.now(UTC)

    # ===== Definitions =====

    def create_experiment(self, definition: ExperimentDefinition) -> Experiment:
        """Validate and store a new draft experiment.

        Raises:
            InvalidExperimentConfigError: If the variants are invalid.
        """
        errors = validate_variants(definition.variants)
        if errors:
            raise InvalidExperimentConfigError(errors)

        experiment = Experiment(
            id=str(uuid.uuid4()),
            name=definition.name,
            description=definition.description,
            status=ExperimentStatus.DRAFT,
            variants=definition.variants,
            min_sample_size=definition.min_sample_size,
            significance_level=definition.significance_level,
            created_at=self._current_time(),
        )
        self._store.insert_experiment(experiment)
        self._log.info(
            "experiment_created",
            experiment_id=experiment.id,
            name=experiment.name,
            variants=[v.name for v in experiment.variants],
        )
        return experiment

    def get_experiment(self, experiment_id: str) -> Experiment:
        """Get an experiment.

        Raises:
            ExperimentNotFoundError: If it does not exist.
        """
        experiment = self._store.get_experiment(experiment_id)
        if experiment is None:
            raise ExperimentNotFoundError(experiment_id)
        return experiment

    def list_experiments(self, status: ExperimentStatus | None = None) -> list[Experiment]:
        """List experiments, optionally by status."""
        return self._store.list_experiments(status)

    def update_experiment(self, experiment_id: str, changes: ExperimentUpdate) -> Experiment:
        """Apply a partial update.

        Name, description, and thresholds can always change; variants only
        until the first user is assigned.

        Raises:
            ExperimentNotFoundError: If it does not exist.
            ExperimentLockedError: If variants change after assignment began.
            InvalidExperimentConfigError: If the new variants are invalid.
        """
        experiment = self.get_experiment(experiment_id)
        update = changes.model_dump(exclude_none=True, exclude={"variants"})

        if changes.variants is not None:
            if experiment.status == ExperimentStatus.COMPLETED:
                raise ExperimentLockedError(experiment_id, "experiment is completed")
            if self._store.count_assignments(experiment_id) > 0:
                raise ExperimentLockedError(
                    experiment_id, "variants cannot change after users were assigned"
                )
            errors = validate_variants(changes.variants)
            if errors:
                raise InvalidExperimentConfigError(errors)
            update["variants"] = changes.variants

        updated = experiment.model_copy(update=update)
        self._store.save_experiment(updated)
        self._log.info(
            "experiment_updated", experiment_id=experiment_id, fields=sorted(update)
        )
        return updated

    def delete_experiment(self, experiment_id: str) -> None:
        """Delete a draft experiment.

        Raises:
            ExperimentNotFoundError: If it does not exist.
            ExperimentLockedError: If it is not a draft.
        """
        experiment = self.get_experiment(experiment_id)
        if experiment.status != ExperimentStatus.DRAFT:
            raise ExperimentLockedError(
                experiment_id, f"only draft experiments can be deleted ({experiment.status.value})"
            )
        self._store.delete_experiment(experiment_id)
        self._log.info("experiment_deleted", experiment_id=experiment_id)

    # ===== Lifecycle =====

    def start(self, experiment_id: str) -> Experiment:
        """Move a draft experiment to active."""
        return self._transition(experiment_id, ExperimentStatus.ACTIVE)

    def pause(self, experiment_id: str) -> Experiment:
        """Suspend assignment of an active experiment."""
        return self._transition(experiment_id, ExperimentStatus.PAUSED)

    def resume(self, experiment_id: str) -> Experiment:
        """Resume a paused experiment."""
        return self._transition(experiment_id, ExperimentStatus.ACTIVE)

    def complete(self, experiment_id: str, winner: str | None = None) -> Experiment:
        """End an active or paused experiment.

        Args:
            experiment_id: Experiment identifier.
            winner: Optional winning variant name.

        Raises:
            InvalidExperimentConfigError: If ``winner`` is not a variant.
        """
        experiment = self.get_experiment(experiment_id)
        if winner is not None and experiment.variant(winner) is None:
            raise InvalidExperimentConfigError([f"unknown winner variant: {winner}"])
        return self._transition(experiment_id, ExperimentStatus.COMPLETED, winner=winner)

    def _transition(
        self,
        experiment_id: str,
        target: ExperimentStatus,
        winner: str | None = None,
    ) -> Experiment:
        """Validate and persist a status change."""
        experiment = self.get_experiment(experiment_id)
        machine = ExperimentStateMachine(experiment_id, initial_state=experiment.status)
        machine.transition(target)

        now = self._current_time()
        update: dict[str, object] = {"status": target}
        if target == ExperimentStatus.ACTIVE and experiment.started_at is None:
            update["started_at"] = now
        if target == ExperimentStatus.COMPLETED:
            update["ended_at"] = now
            update["winner_variant"] = winner

        updated = experiment.model_copy(update=update)
        self._store.save_experiment(updated)
        self._metrics.transitions_total += 1
        return updated

    # ===== Assignment =====

    def get_variant(self, user_id: str, experiment_id: str) -> Variant | None:
        """Return the user's sticky variant, assigning one if needed.

        Only active experiments make new assignments; for other statuses an
        existing assignment is still returned.

        Args:
            user_id: User identifier.
            experiment_id: Experiment identifier.

        Returns:
            The assigned Variant, or None if the user cannot be assigned.

        Raises:
            ExperimentNotFoundError: If the experiment does not exist.
        """
        experiment = self.get_experiment(experiment_id)
        existing = self._store.get_assignment(user_id, experiment_id)
        if existing is not None:
            return experiment.variant(existing.variant)
        if experiment.status != ExperimentStatus.ACTIVE:
            return None

        variant = self._draw_variant(experiment)
        assignment = ExperimentAssignment(
            user_id=user_id,
            experiment_id=experiment_id,
            variant=variant.name,
            assigned_at=self._current_time(),
        )
        try:
            self._store.insert_assignment(assignment)
        except AssignmentConflictError:
            # Another request assigned this user first; its row wins
            self._metrics.assignment_conflicts_total += 1
            stored = self._store.get_assignment(user_id, experiment_id)
            if stored is None:
                raise
            self._log.debug(
                "assignment_conflict_resolved",
                user_id=user_id,
                experiment_id=experiment_id,
                variant=stored.variant,
            )
            return experiment.variant(stored.variant)

        self._metrics.assignments_total += 1
        self._log.info(
            "variant_assigned",
            user_id=user_id,
            experiment_id=experiment_id,
            variant=variant.name,
        )
        return variant

    def get_active_variant(self, user_id: str) -> tuple[Experiment, Variant] | None:
        """Variant of the first active experiment (oldest first) for a user."""
        active = self._store.list_experiments(ExperimentStatus.ACTIVE)
        if not active:
            return None
        experiment = active[0]
        variant = self.get_variant(user_id, experiment.id)
        if variant is None:
            return None
        return experiment, variant

    def current_assignment(self, user_id: str) -> tuple[Experiment, Variant] | None:
        """Existing assignment in the first active experiment, without assigning."""
        for experiment in self._store.list_experiments(ExperimentStatus.ACTIVE):
            assignment = self._store.get_assignment(user_id, experiment.id)
            if assignment is None:
                continue
            variant = experiment.variant(assignment.variant)
            if variant is not None:
                return experiment, variant
        return None

    def _draw_variant(self, experiment: Experiment) -> Variant:
        """Weighted random draw by allocation percentage."""
        total = sum(v.allocation for v in experiment.variants)
        target = self._rng.random() * total
        cumulative = 0.0
        for variant in experiment.variants:
            cumulative += variant.allocation
            if target < cumulative:
                return variant
        return experiment.variants[-1]

    # ===== Events =====

    def log_event(  # noqa: PLR0913
        self,
        experiment_id: str,
        user_id: str,
        variant: str,
        event_type: ExperimentEventType,
        content_id: str | None = None,
        time_to_action_ms: int | None = None,
    ) -> bool:
        """Append an outcome event; failures are logged and counted, never raised.

        Returns:
            True if the event was stored.
        """
        try:
            self._store.append_experiment_event(
                ExperimentEvent(
                    experiment_id=experiment_id,
                    user_id=user_id,
                    variant=variant,
                    event_type=event_type,
                    content_id=content_id,
                    time_to_action_ms=time_to_action_ms,
                    created_at=self._current_time(),
                )
            )
        except Exception as e:  # noqa: BLE001
            self._metrics.events_dropped_total += 1
            self._log.warning(
                "experiment_event_dropped",
                experiment_id=experiment_id,
                user_id=user_id,
                event_type=event_type.value,
                error=str(e),
            )
            return False

        self._metrics.events_logged_total += 1
        return True

    # ===== Analysis =====

    def compute_metrics(self, experiment_id: str) -> ExperimentResults:
        """Per-variant metrics, pairwise tests, and a recommendation.

        Raises:
            ExperimentNotFoundError: If the experiment does not exist.
        """
        experiment = self.get_experiment(experiment_id)
        counts = [
            c
            for c in self._store.fetch_variant_event_counts(experiment_id)
            if c.shown > 0
        ]
        metrics = [build_variant_metrics(c) for c in counts]
        comparisons = [
            compare_variants(a, b, experiment.significance_level)
            for i, a in enumerate(counts)
            for b in counts[i + 1 :]
        ]
        recommendation = recommend(experiment, metrics, comparisons)

        self._log.info(
            "experiment_metrics_computed",
            experiment_id=experiment_id,
            variants=len(metrics),
            recommendation=recommendation.status.value,
        )
        return ExperimentResults(
            experiment=experiment,
            variants=metrics,
            comparisons=comparisons,
            recommendation=recommendation,
        )
