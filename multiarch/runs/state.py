"""Run state machine.

dispatched -> building -> (all_succeeded | any_failed)
all_succeeded -> merging -> (published | merge_failed)
published -> (verified | verification_failed)
"""

from multiarch.errors import InvalidTransitionError
from multiarch.types import RunState

TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.DISPATCHED: frozenset({RunState.BUILDING}),
    RunState.BUILDING: frozenset({RunState.ALL_SUCCEEDED, RunState.ANY_FAILED}),
    RunState.ALL_SUCCEEDED: frozenset({RunState.MERGING}),
    RunState.MERGING: frozenset({RunState.PUBLISHED, RunState.MERGE_FAILED}),
    RunState.PUBLISHED: frozenset(
        {RunState.VERIFIED, RunState.VERIFICATION_FAILED}
    ),
    RunState.ANY_FAILED: frozenset(),
    RunState.MERGE_FAILED: frozenset(),
    RunState.VERIFIED: frozenset(),
    RunState.VERIFICATION_FAILED: frozenset(),
}

FAILURE_STATES = frozenset(
    {RunState.ANY_FAILED, RunState.MERGE_FAILED, RunState.VERIFICATION_FAILED}
)


def can_transition(current: RunState, target: RunState) -> bool:
    """Check whether a state change is allowed."""
    return target in TRANSITIONS[current]


def transition(current: RunState, target: RunState, run_id: int | None = None) -> RunState:
    """Validate a state change.

    Args:
        current: Current state.
        target: Requested state.
        run_id: Optional run id attached to raised errors.

    Returns:
        The target state.

    Raises:
        InvalidTransitionError: If the change is not allowed.
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move run from {current.value} to {target.value}",
            run_id=run_id,
        )
    return target


def is_terminal(state: RunState, verify: bool = True) -> bool:
    """Check whether a run in this state is finished.

    Args:
        state: Run state.
        verify: Whether verification is enabled; without it, published
            is terminal.
    """
    if state == RunState.PUBLISHED:
        return not verify
    return not TRANSITIONS[state]


def is_success(state: RunState, verify: bool = True) -> bool:
    """Check whether a run in this state finished successfully."""
    if verify:
        return state == RunState.VERIFIED
    return state in (RunState.PUBLISHED, RunState.VERIFIED)


__all__ = [
    "FAILURE_STATES",
    "TRANSITIONS",
    "can_transition",
    "is_success",
    "is_terminal",
    "transition",
]
