"""Tests for runs/state.py module."""

import pytest

from multiarch.errors import InvalidTransitionError
from multiarch.runs.state import (
    FAILURE_STATES,
    TRANSITIONS,
    can_transition,
    is_success,
    is_terminal,
    transition,
)
from multiarch.types import RunState


class TestTransitions:
    """Test the run state machine."""

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (RunState.DISPATCHED, RunState.BUILDING),
            (RunState.BUILDING, RunState.ALL_SUCCEEDED),
            (RunState.BUILDING, RunState.ANY_FAILED),
            (RunState.ALL_SUCCEEDED, RunState.MERGING),
            (RunState.MERGING, RunState.PUBLISHED),
            (RunState.MERGING, RunState.MERGE_FAILED),
            (RunState.PUBLISHED, RunState.VERIFIED),
            (RunState.PUBLISHED, RunState.VERIFICATION_FAILED),
        ],
    )
    def test_allowed(self, current: RunState, target: RunState) -> None:
        assert can_transition(current, target)
        assert transition(current, target) == target

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (RunState.DISPATCHED, RunState.MERGING),
            (RunState.BUILDING, RunState.PUBLISHED),
            (RunState.ANY_FAILED, RunState.MERGING),
            (RunState.MERGE_FAILED, RunState.PUBLISHED),
            (RunState.VERIFIED, RunState.BUILDING),
        ],
    )
    def test_rejected(self, current: RunState, target: RunState) -> None:
        assert not can_transition(current, target)
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(current, target, run_id=12)
        assert exc_info.value.run_id == 12

    def test_every_state_has_transitions(self) -> None:
        assert set(TRANSITIONS) == set(RunState)

    def test_failure_states_are_terminal(self) -> None:
        for state in FAILURE_STATES:
            assert is_terminal(state)
            assert not is_success(state)


class TestTerminal:
    """Test terminal and success checks."""

    def test_published_terminal_only_without_verify(self) -> None:
        assert not is_terminal(RunState.PUBLISHED, verify=True)
        assert is_terminal(RunState.PUBLISHED, verify=False)

    def test_in_progress_not_terminal(self) -> None:
        assert not is_terminal(RunState.BUILDING)
        assert not is_terminal(RunState.MERGING)

    def test_success(self) -> None:
        assert is_success(RunState.VERIFIED)
        assert not is_success(RunState.PUBLISHED)
        assert is_success(RunState.PUBLISHED, verify=False)
