from __future__ import annotations

from enum import Enum


class CycleState(str, Enum):
    AWAITING_TURN = "awaiting_turn"
    EXTRACTING = "extracting"
    RUNNING_PRIORITY = "running_priority"
    RUNNING_REMAINING = "running_remaining"
    CHECKING_ESCALATION = "checking_escalation"
    RUNNING_VALIDATION = "running_validation"
    AUTOPILOT_OFF = "autopilot_off"


ALLOWED_TRANSITIONS: dict[CycleState, set[CycleState]] = {
    CycleState.AWAITING_TURN: {CycleState.EXTRACTING},
    CycleState.EXTRACTING: {CycleState.RUNNING_PRIORITY},
    CycleState.RUNNING_PRIORITY: {CycleState.RUNNING_REMAINING},
    CycleState.RUNNING_REMAINING: {CycleState.CHECKING_ESCALATION},
    CycleState.CHECKING_ESCALATION: {CycleState.RUNNING_VALIDATION, CycleState.AWAITING_TURN},
    CycleState.RUNNING_VALIDATION: {CycleState.AUTOPILOT_OFF, CycleState.AWAITING_TURN},
    CycleState.AUTOPILOT_OFF: {CycleState.EXTRACTING},
}


class IllegalTransitionError(ValueError):
    pass


def transition(current: CycleState, to: CycleState) -> CycleState:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to
