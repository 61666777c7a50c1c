"""Explicit state machine for the create and redeem orchestration flows."""

from __future__ import annotations

from enum import Enum

from loguru import logger


class FlowState(str, Enum):
    IDLE = "idle"
    APPROVING = "approving"
    CREATING = "creating"
    VERIFYING = "verifying"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    REDEEMING = "redeeming"
    SUCCESS = "success"
    ERROR = "error"


class FlowStateError(RuntimeError):
    """Base exception for orchestration flow state failures."""


class InvalidFlowTransitionError(FlowStateError):
    """Raised when a flow step is attempted out of order."""

    def __init__(self, current_state: FlowState, requested_state: FlowState) -> None:
        message = f"Cannot transition flow from {current_state.value} to {requested_state.value}"
        super().__init__(message)
        self.current_state = current_state
        self.requested_state = requested_state


class FlowStateMachine:
    """Tracks one create or redeem flow; terminal states accept no transitions."""

    _ALLOWED_TRANSITIONS: dict[FlowState, set[FlowState]] = {
        FlowState.IDLE: {
            FlowState.APPROVING,
            FlowState.CREATING,
            FlowState.REDEEMING,
            FlowState.ERROR,
        },
        FlowState.APPROVING: {FlowState.CREATING, FlowState.SUCCESS, FlowState.ERROR},
        FlowState.CREATING: {FlowState.VERIFYING, FlowState.ERROR},
        FlowState.VERIFYING: {FlowState.PERSISTING, FlowState.ERROR},
        FlowState.PERSISTING: {FlowState.NOTIFYING, FlowState.SUCCESS, FlowState.ERROR},
        FlowState.NOTIFYING: {FlowState.SUCCESS, FlowState.ERROR},
        FlowState.REDEEMING: {FlowState.PERSISTING, FlowState.ERROR},
        FlowState.SUCCESS: set(),
        FlowState.ERROR: set(),
    }

    def __init__(self, name: str = "flow") -> None:
        self.name = name
        self._state = FlowState.IDLE
        self._history: list[FlowState] = [FlowState.IDLE]

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def history(self) -> list[FlowState]:
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return not self._ALLOWED_TRANSITIONS[self._state]

    def transition(self, target: FlowState) -> FlowState:
        allowed = self._ALLOWED_TRANSITIONS.get(self._state, set())
        if target not in allowed:
            raise InvalidFlowTransitionError(self._state, target)
        logger.debug("Flow transitioned", flow=self.name, from_state=self._state.value, to_state=target.value)
        self._state = target
        self._history.append(target)
        return target

    def fail(self) -> FlowState:
        return self.transition(FlowState.ERROR)


__all__ = [
    "FlowState",
    "FlowStateError",
    "FlowStateMachine",
    "InvalidFlowTransitionError",
]
