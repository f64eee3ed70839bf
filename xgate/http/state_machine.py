"""Request pipeline state machine implementation."""

from enum import Enum, auto
from typing import ClassVar

import structlog


logger = structlog.get_logger()


class PipelineState(Enum):
    """Request pipeline states.

    State transitions:
        IDLE -> ATTEMPTING: First transport call
        ATTEMPTING -> SUCCEEDED: Response with status < 400
        ATTEMPTING -> RETRYING: Failure the retry policy accepts
        ATTEMPTING -> FAILED: Failure that is final
        RETRYING -> ATTEMPTING: Backoff elapsed
        RETRYING -> FAILED: Backoff interrupted or deadline reached
    """

    IDLE = auto()
    ATTEMPTING = auto()
    RETRYING = auto()
    SUCCEEDED = auto()
    FAILED = auto()


class PipelineStateError(Exception):
    """Raised when an invalid pipeline state transition is attempted."""

    def __init__(self, from_state: PipelineState, to_state: PipelineState) -> None:
        """Initialize the error.

        Args:
            from_state: The current state.
            to_state: The attempted target state.
        """
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid pipeline state transition: {from_state.name} -> {to_state.name}"
        )


class PipelineStateMachine:
    """State machine for one ``execute`` call.

    Enforces valid state transitions across attempts.
    """

    VALID_TRANSITIONS: ClassVar[dict[PipelineState, set[PipelineState]]] = {
        PipelineState.IDLE: {PipelineState.ATTEMPTING},
        PipelineState.ATTEMPTING: {
            PipelineState.SUCCEEDED,
            PipelineState.RETRYING,
            PipelineState.FAILED,
        },
        PipelineState.RETRYING: {
            PipelineState.ATTEMPTING,
            PipelineState.FAILED,
        },
        PipelineState.SUCCEEDED: set(),  # Terminal state
        PipelineState.FAILED: set(),  # Terminal state
    }

    def __init__(self, request_id: str) -> None:
        """Initialize the state machine in IDLE state.

        Args:
            request_id: Identifier of the call, for logging.
        """
        self._request_id = request_id
        self._state = PipelineState.IDLE
        self._log = logger.bind(request_id=request_id, component="pipeline")

    @property
    def state(self) -> PipelineState:
        """Get the current state."""
        return self._state

    def can_transition(self, to_state: PipelineState) -> bool:
        """Check if a transition to the given state is valid."""
        return to_state in self.VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: PipelineState) -> None:
        """Transition to a new state.

        Args:
            to_state: The target state.

        Raises:
            PipelineStateError: If the transition is invalid.
        """
        if not self.can_transition(to_state):
            self._log.error(
                "invariant_violation",
                error_type="illegal_state_transition",
                from_state=self._state.name,
                to_state=to_state.name,
            )
            raise PipelineStateError(self._state, to_state)

        old_state = self._state
        self._state = to_state
        self._log.debug(
            "pipeline_state_transition",
            from_state=old_state.name,
            to_state=to_state.name,
        )

    def to_attempting(self) -> None:
        self.transition(PipelineState.ATTEMPTING)

    def to_retrying(self) -> None:
        self.transition(PipelineState.RETRYING)

    def to_succeeded(self) -> None:
        self.transition(PipelineState.SUCCEEDED)

    def to_failed(self) -> None:
        self.transition(PipelineState.FAILED)

    def is_terminal(self) -> bool:
        """Check if the current state is terminal."""
        return self._state in (PipelineState.SUCCEEDED, PipelineState.FAILED)
