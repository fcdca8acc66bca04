import pytest

from autopilot.cycle import ALLOWED_TRANSITIONS, CycleState, IllegalTransitionError, transition


def test_happy_path_to_autopilot_off() -> None:
    state = CycleState.AWAITING_TURN
    for target in (
        CycleState.EXTRACTING,
        CycleState.RUNNING_PRIORITY,
        CycleState.RUNNING_REMAINING,
        CycleState.CHECKING_ESCALATION,
        CycleState.RUNNING_VALIDATION,
        CycleState.AUTOPILOT_OFF,
        CycleState.EXTRACTING,
    ):
        state = transition(state, target)

    assert state is CycleState.EXTRACTING


def test_escalation_returns_to_awaiting_turn() -> None:
    assert (
        transition(CycleState.CHECKING_ESCALATION, CycleState.AWAITING_TURN)
        is CycleState.AWAITING_TURN
    )


def test_illegal_transition() -> None:
    with pytest.raises(IllegalTransitionError, match="awaiting_turn -> running_validation"):
        transition(CycleState.AWAITING_TURN, CycleState.RUNNING_VALIDATION)


def test_every_state_has_a_way_forward() -> None:
    assert set(ALLOWED_TRANSITIONS) == set(CycleState)
    assert all(ALLOWED_TRANSITIONS[state] for state in CycleState)
