"""State machine validation for orchestration runs and technical stories.

Runs move forward through a fixed phase sequence:
pending -> prd_processing -> wbs_generation -> foundation_setup
-> parallel_infra_setup -> completion -> completed

Any non-terminal state may drop to failed. The parallel and completion
phases cannot fail a run, so failed is only reachable from the required
phases (and from pending, when the request itself is rejected).

Technical stories start as New and are closed by the completion phase.
Terminal states: Closed, Removed
"""
import logging

from .models import RunState, StoryStatus

logger = logging.getLogger("ppo-core.state_machine")


class RunStateTransitionError(Exception):
    """Raised when an invalid run state transition is attempted."""

    def __init__(
        self,
        message: str,
        current_state: RunState,
        requested_state: RunState,
        allowed_transitions: list[RunState]
    ):
        super().__init__(message)
        self.current_state = current_state
        self.requested_state = requested_state
        self.allowed_transitions = allowed_transitions


class StoryStateTransitionError(Exception):
    """Raised when an invalid story status transition is attempted."""

    def __init__(
        self,
        message: str,
        current_status: StoryStatus,
        requested_status: StoryStatus,
        allowed_transitions: list[StoryStatus]
    ):
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status
        self.allowed_transitions = allowed_transitions


# Run transition matrix
# Maps current state → list of allowed next states
RUN_TRANSITION_MATRIX: dict[RunState, list[RunState]] = {
    RunState.PENDING: [
        RunState.PENDING,               # No-op (allowed)
        RunState.PRD_PROCESSING,        # Forward: run started
        RunState.FAILED,                # Terminal: request rejected
    ],
    RunState.PRD_PROCESSING: [
        RunState.PRD_PROCESSING,        # No-op (allowed)
        RunState.WBS_GENERATION,        # Forward: PRD valid
        RunState.FAILED,                # Terminal: PRD invalid
    ],
    RunState.WBS_GENERATION: [
        RunState.WBS_GENERATION,        # No-op (allowed)
        RunState.FOUNDATION_SETUP,      # Forward: breakdown generated
        RunState.FAILED,                # Terminal: generation error
    ],
    RunState.FOUNDATION_SETUP: [
        RunState.FOUNDATION_SETUP,      # No-op (allowed)
        RunState.PARALLEL_INFRA_SETUP,  # Forward: identity provisioned
        RunState.FAILED,                # Terminal: identity provisioning failed
    ],
    RunState.PARALLEL_INFRA_SETUP: [
        RunState.PARALLEL_INFRA_SETUP,  # No-op (allowed)
        RunState.COMPLETION,            # Forward: both branches joined
    ],
    RunState.COMPLETION: [
        RunState.COMPLETION,            # No-op (allowed)
        RunState.COMPLETED,             # Terminal: run finished
    ],
    RunState.COMPLETED: [
        RunState.COMPLETED,             # No-op (allowed)
        # Terminal state - no transitions out
    ],
    RunState.FAILED: [
        RunState.FAILED,                # No-op (allowed)
        # Terminal state - start a new run instead
    ],
}


# Technical story transition matrix
STORY_TRANSITION_MATRIX: dict[StoryStatus, list[StoryStatus]] = {
    StoryStatus.NEW: [
        StoryStatus.NEW,        # No-op (allowed)
        StoryStatus.ACTIVE,     # Forward: work started
        StoryStatus.CLOSED,     # Forward: condition met, closed automatically
        StoryStatus.REMOVED,    # Terminal: no longer needed
    ],
    StoryStatus.ACTIVE: [
        StoryStatus.ACTIVE,     # No-op (allowed)
        StoryStatus.NEW,        # Back: returned to backlog
        StoryStatus.CLOSED,     # Forward: done
        StoryStatus.REMOVED,    # Terminal: no longer needed
    ],
    StoryStatus.CLOSED: [
        StoryStatus.CLOSED,     # No-op (allowed)
        # Terminal state - no transitions out
    ],
    StoryStatus.REMOVED: [
        StoryStatus.REMOVED,    # No-op (allowed)
        # Terminal state - no transitions out
    ],
}


def is_run_transition_valid(current_state: RunState, new_state: RunState) -> bool:
    """Check if a run state transition is valid."""
    return new_state in RUN_TRANSITION_MATRIX.get(current_state, [])


def validate_run_transition(current_state: RunState, new_state: RunState) -> None:
    """
    Validate a run state transition and raise exception if invalid.

    Args:
        current_state: Current run state
        new_state: Requested run state

    Raises:
        RunStateTransitionError: If the transition is not allowed
    """
    if current_state == new_state:
        logger.debug(f"No-op run transition: {current_state.value} → {new_state.value}")
        return

    if not is_run_transition_valid(current_state, new_state):
        allowed_transitions = RUN_TRANSITION_MATRIX.get(current_state, [])
        allowed_names = [s.value for s in allowed_transitions if s != current_state]

        error_msg = (
            f"Invalid run transition: {current_state.value} → {new_state.value}. "
            f"From {current_state.value}, a run can only move to: {', '.join(allowed_names) or 'nothing'}."
        )

        if is_terminal_run_state(current_state):
            error_msg += " Finished runs are immutable. Start a new run instead."
        elif new_state == RunState.FAILED:
            error_msg += " Only required phases (PRD processing, WBS generation, foundation setup) can fail a run."
        else:
            error_msg += " Phases cannot be skipped or repeated."

        logger.warning(f"Blocked run transition: {error_msg}")
        raise RunStateTransitionError(
            message=error_msg,
            current_state=current_state,
            requested_state=new_state,
            allowed_transitions=allowed_transitions
        )

    logger.debug(f"Valid run transition: {current_state.value} → {new_state.value}")


def get_allowed_run_transitions(current_state: RunState) -> list[RunState]:
    """Get allowed run transitions, excluding the no-op."""
    return [s for s in RUN_TRANSITION_MATRIX.get(current_state, []) if s != current_state]


def is_terminal_run_state(state: RunState) -> bool:
    """Check if a run state is terminal (no further transitions)."""
    return state in [RunState.COMPLETED, RunState.FAILED]


def is_story_transition_valid(current_status: StoryStatus, new_status: StoryStatus) -> bool:
    """Check if a story status transition is valid."""
    return new_status in STORY_TRANSITION_MATRIX.get(current_status, [])


def validate_story_transition(current_status: StoryStatus, new_status: StoryStatus) -> None:
    """
    Validate a story status transition and raise exception if invalid.

    Raises:
        StoryStateTransitionError: If the transition is not allowed
    """
    if current_status == new_status:
        logger.debug(f"No-op story transition: {current_status.value} → {new_status.value}")
        return

    if not is_story_transition_valid(current_status, new_status):
        allowed_transitions = STORY_TRANSITION_MATRIX.get(current_status, [])
        allowed_names = [s.value for s in allowed_transitions if s != current_status]

        error_msg = (
            f"Invalid story transition: {current_status.value} → {new_status.value}. "
            f"From {current_status.value}, you can only transition to: {', '.join(allowed_names) or 'nothing'}."
        )
        if current_status == StoryStatus.CLOSED:
            error_msg += " Closed stories are immutable. Create a new story for additional work."
        elif current_status == StoryStatus.REMOVED:
            error_msg += " Removed stories cannot be reactivated."

        logger.warning(f"Blocked story transition: {error_msg}")
        raise StoryStateTransitionError(
            message=error_msg,
            current_status=current_status,
            requested_status=new_status,
            allowed_transitions=allowed_transitions
        )

    logger.debug(f"Valid story transition: {current_status.value} → {new_status.value}")


def get_allowed_story_transitions(current_status: StoryStatus) -> list[StoryStatus]:
    """Get allowed story transitions, excluding the no-op."""
    return [s for s in STORY_TRANSITION_MATRIX.get(current_status, []) if s != current_status]


# Order in which run states are reported as progress steps
RUN_STEP_ORDER: dict[RunState, int] = {
    RunState.PENDING: 0,
    RunState.PRD_PROCESSING: 1,
    RunState.WBS_GENERATION: 2,
    RunState.FOUNDATION_SETUP: 3,
    RunState.PARALLEL_INFRA_SETUP: 4,
    RunState.COMPLETION: 5,
    RunState.COMPLETED: 6,
}

TOTAL_RUN_STEPS = RUN_STEP_ORDER[RunState.COMPLETED]
