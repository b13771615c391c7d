"""Experiment lifecycle state machine."""

from typing import ClassVar

import structlog

from discovery.store.models import ExperimentStatus


logger = structlog.get_logger()


class ExperimentStateTransitionError(Exception):
    """Raised when an invalid experiment status transition is attempted."""

    def __init__(
        self,
        experiment_id: str,
        from_state: ExperimentStatus,
        to_state: ExperimentStatus,
    ) -> None:
        """Initialize the error.

        Args:
            experiment_id: Experiment identifier.
            from_state: The current status.
            to_state: The attempted target status.
        """
        self.experiment_id = experiment_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Illegal status transition for experiment '{experiment_id}': "
            f"{from_state.value} -> {to_state.value}"
        )


class ExperimentStateMachine:
    """State machine for the experiment lifecycle.

    State transitions:
        draft -> active: Experiment started
        active -> paused: Assignment suspended
        paused -> active: Assignment resumed
        active/paused -> completed: Experiment ended (terminal)
    """

    VALID_TRANSITIONS: ClassVar[dict[ExperimentStatus, set[ExperimentStatus]]] = {
        ExperimentStatus.DRAFT: {ExperimentStatus.ACTIVE},
        ExperimentStatus.ACTIVE: {ExperimentStatus.PAUSED, ExperimentStatus.COMPLETED},
        ExperimentStatus.PAUSED: {ExperimentStatus.ACTIVE, ExperimentStatus.COMPLETED},
        ExperimentStatus.COMPLETED: set(),  # Terminal state
    }

    def __init__(
        self,
        experiment_id: str,
        initial_state: ExperimentStatus = ExperimentStatus.DRAFT,
    ) -> None:
        """Initialize the state machine.

        Args:
            experiment_id: Experiment identifier for logging.
            initial_state: Current stored status.
        """
        self._experiment_id = experiment_id
        self._state = initial_state
        self._log = logger.bind(component="experiments", experiment_id=experiment_id)

    @property
    def state(self) -> ExperimentStatus:
        """Get the current status."""
        return self._state

    def can_transition(self, to_state: ExperimentStatus) -> bool:
        """Check if a transition to the given status is valid."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: ExperimentStatus) -> None:
        """Transition to a new status.

        Args:
            to_state: The target status.

        Raises:
            ExperimentStateTransitionError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.value,
                to_state=to_state.value,
            )
            raise ExperimentStateTransitionError(
                self._experiment_id, self._state, to_state
            )

        old_state = self._state
        self._state = to_state
        self._log.info(
            "experiment_state_transition",
            from_state=old_state.value,
            to_state=to_state.value,
        )

    def is_terminal(self) -> bool:
        """Check if the experiment is completed."""
        return self._state == ExperimentStatus.COMPLETED
