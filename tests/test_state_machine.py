"""Tests for run and technical story state machine validation."""
import pytest
from ppo_core.models import RunState, StoryStatus
from ppo_core.state_machine import (
    RUN_STEP_ORDER,
    TOTAL_RUN_STEPS,
    RunStateTransitionError,
    StoryStateTransitionError,
    get_allowed_run_transitions,
    get_allowed_story_transitions,
    is_run_transition_valid,
    is_story_transition_valid,
    is_terminal_run_state,
    validate_run_transition,
    validate_story_transition,
)


RUN_SEQUENCE = [
    RunState.PENDING,
    RunState.PRD_PROCESSING,
    RunState.WBS_GENERATION,
    RunState.FOUNDATION_SETUP,
    RunState.PARALLEL_INFRA_SETUP,
    RunState.COMPLETION,
    RunState.COMPLETED,
]


class TestRunTransitions:
    """Test run state transition validation."""

    def test_valid_forward_transitions(self):
        """Test that every step of the phase sequence is allowed."""
        for current, new in zip(RUN_SEQUENCE, RUN_SEQUENCE[1:]):
            assert is_run_transition_valid(current, new)
            validate_run_transition(current, new)  # Should not raise

    def test_noop_transitions_allowed(self):
        """Test that no-op transitions (same state) are always allowed."""
        for state in RunState:
            assert is_run_transition_valid(state, state)
            validate_run_transition(state, state)

    def test_required_phases_can_fail(self):
        """Test that the required phases may drop to failed."""
        for state in [
            RunState.PENDING,
            RunState.PRD_PROCESSING,
            RunState.WBS_GENERATION,
            RunState.FOUNDATION_SETUP,
        ]:
            validate_run_transition(state, RunState.FAILED)

    def test_parallel_phase_cannot_fail_run(self):
        """Test that subsystem errors in the parallel phase never fail the run."""
        with pytest.raises(RunStateTransitionError) as exc_info:
            validate_run_transition(RunState.PARALLEL_INFRA_SETUP, RunState.FAILED)

        assert "only required phases" in str(exc_info.value).lower()

    def test_skipping_phase_is_blocked(self):
        """Test that WBS generation cannot be skipped."""
        assert not is_run_transition_valid(RunState.PRD_PROCESSING, RunState.FOUNDATION_SETUP)

        with pytest.raises(RunStateTransitionError) as exc_info:
            validate_run_transition(RunState.PRD_PROCESSING, RunState.FOUNDATION_SETUP)

        error = exc_info.value
        assert error.current_state == RunState.PRD_PROCESSING
        assert error.requested_state == RunState.FOUNDATION_SETUP
        assert "cannot be skipped" in str(error).lower()

    def test_backward_transition_is_blocked(self):
        """Test that a run never moves backward."""
        with pytest.raises(RunStateTransitionError):
            validate_run_transition(RunState.COMPLETION, RunState.PARALLEL_INFRA_SETUP)

    def test_terminal_states_are_immutable(self):
        """Test that finished runs cannot transition anywhere."""
        for terminal in [RunState.COMPLETED, RunState.FAILED]:
            assert is_terminal_run_state(terminal)
            assert get_allowed_run_transitions(terminal) == []
            with pytest.raises(RunStateTransitionError) as exc_info:
                validate_run_transition(terminal, RunState.PRD_PROCESSING)
            assert "immutable" in str(exc_info.value).lower()

    def test_allowed_transitions_exclude_noop(self):
        allowed = get_allowed_run_transitions(RunState.PRD_PROCESSING)
        assert allowed == [RunState.WBS_GENERATION, RunState.FAILED]

    def test_non_terminal_states(self):
        for state in RUN_SEQUENCE[:-1]:
            assert not is_terminal_run_state(state)


class TestRunSteps:
    """Test progress step numbering."""

    def test_steps_follow_sequence(self):
        assert [RUN_STEP_ORDER[s] for s in RUN_SEQUENCE] == list(range(len(RUN_SEQUENCE)))

    def test_total_steps(self):
        assert TOTAL_RUN_STEPS == 6
        assert RunState.FAILED not in RUN_STEP_ORDER


class TestStoryTransitions:
    """Test technical story status transitions."""

    def test_new_story_can_be_closed(self):
        """Test that the completion phase can close a New story directly."""
        assert is_story_transition_valid(StoryStatus.NEW, StoryStatus.CLOSED)
        validate_story_transition(StoryStatus.NEW, StoryStatus.CLOSED)

    def test_active_story_can_return_to_backlog(self):
        validate_story_transition(StoryStatus.ACTIVE, StoryStatus.NEW)

    def test_noop_transitions_allowed(self):
        for status in StoryStatus:
            validate_story_transition(status, status)

    def test_closed_story_is_immutable(self):
        """Test that a closed story cannot be reopened."""
        with pytest.raises(StoryStateTransitionError) as exc_info:
            validate_story_transition(StoryStatus.CLOSED, StoryStatus.ACTIVE)

        error = exc_info.value
        assert error.current_status == StoryStatus.CLOSED
        assert error.requested_status == StoryStatus.ACTIVE
        assert error.allowed_transitions == [StoryStatus.CLOSED]
        assert "immutable" in str(error).lower()

    def test_removed_story_cannot_be_closed(self):
        with pytest.raises(StoryStateTransitionError) as exc_info:
            validate_story_transition(StoryStatus.REMOVED, StoryStatus.CLOSED)

        assert "cannot be reactivated" in str(exc_info.value).lower()

    def test_allowed_story_transitions(self):
        assert get_allowed_story_transitions(StoryStatus.NEW) == [
            StoryStatus.ACTIVE,
            StoryStatus.CLOSED,
            StoryStatus.REMOVED,
        ]
        assert get_allowed_story_transitions(StoryStatus.CLOSED) == []
