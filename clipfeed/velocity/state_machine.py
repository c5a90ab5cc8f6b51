"""Velocity refresh run state machine implementation."""

from enum import Enum, auto
from typing import ClassVar

import structlog


logger = structlog.get_logger()


class RefreshState(Enum):
    """Refresh run states.

    State transitions:
        PENDING -> REFRESHING: Begin snapshotting recent clips
        REFRESHING -> PURGING: Snapshots written, begin retention cleanup
        PURGING -> COMPLETED: Cleanup done
        PENDING/REFRESHING/PURGING -> FAILED: Failure at any stage
    """

    PENDING = auto()
    REFRESHING = auto()
    PURGING = auto()
    COMPLETED = auto()
    FAILED = auto()


class RefreshStateError(Exception):
    """Raised when an invalid refresh state transition is attempted."""

    def __init__(self, from_state: RefreshState, to_state: RefreshState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid refresh state transition: {from_state.name} -> {to_state.name}"
        )


class RefreshStateMachine:
    """State machine for one velocity refresh run."""

    VALID_TRANSITIONS: ClassVar[dict[RefreshState, set[RefreshState]]] = {
        RefreshState.PENDING: {RefreshState.REFRESHING, RefreshState.FAILED},
        RefreshState.REFRESHING: {RefreshState.PURGING, RefreshState.FAILED},
        RefreshState.PURGING: {RefreshState.COMPLETED, RefreshState.FAILED},
        RefreshState.COMPLETED: set(),  # Terminal state
        RefreshState.FAILED: set(),  # Terminal state
    }

    def __init__(self, run_id: str) -> None:
        """Initialize the state machine in PENDING state.

        Args:
            run_id: Refresh run identifier for logging.
        """
        self._run_id = run_id
        self._state = RefreshState.PENDING
        self._log = logger.bind(run_id=run_id, component="velocity")

    @property
    def state(self) -> RefreshState:
        """Get the current state."""
        return self._state

    @property
    def run_id(self) -> str:
        """Get the run ID."""
        return self._run_id

    def can_transition(self, to_state: RefreshState) -> bool:
        """Check if a transition to the given state is valid."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: RefreshState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            RefreshStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise RefreshStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.info(
            "refresh_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def is_terminal(self) -> bool:
        """Check if the run has finished."""
        return self._state in (RefreshState.COMPLETED, RefreshState.FAILED)
