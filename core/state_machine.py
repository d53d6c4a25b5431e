"""
State Machine
-------------
Tool pipeline state with validated transitions.
All state transitions are logged and kept in a bounded history.

Rules:
- At most one approval is outstanding (AWAITING_APPROVAL)
- At most one call is in flight (EXECUTING)
- reset() is the only way to leave a state outside VALID_TRANSITIONS
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from typing import Dict, List, Set
import logging


class State(Enum):
    """Valid states for the tool pipeline."""
    IDLE = auto()               # No tool work in progress
    AWAITING_APPROVAL = auto()  # One call waiting for the user's answer
    EXECUTING = auto()          # One approved call running
    FOLLOWUP_PENDING = auto()   # Results appended, narration call outstanding


@dataclass
class StateTransition:
    """Record of a state transition."""
    from_state: State
    to_state: State
    timestamp: datetime
    reason: str

    def __repr__(self) -> str:
        return (
            f"StateTransition({self.from_state.name} → {self.to_state.name}, "
            f"reason='{self.reason}')"
        )


VALID_TRANSITIONS: Dict[State, Set[State]] = {
    State.IDLE: {State.AWAITING_APPROVAL, State.EXECUTING},  # EXECUTING for stored ALWAYS/NEVER
    State.AWAITING_APPROVAL: {State.EXECUTING, State.IDLE},
    State.EXECUTING: {
        State.AWAITING_APPROVAL,
        State.EXECUTING,
        State.FOLLOWUP_PENDING,
        State.IDLE,
    },
    State.FOLLOWUP_PENDING: {State.IDLE},
}

MAX_HISTORY = 200


class StateMachine:
    """
    State machine for the tool pipeline.

    Responsibilities:
    - Track current state
    - Validate state transitions
    - Log all transitions
    """

    def __init__(self, initial_state: State = State.IDLE):
        self._state = initial_state
        self._history: List[StateTransition] = []
        self._logger = logging.getLogger("seekcli.state")

        self._logger.debug(f"State machine initialized in state: {self._state.name}")

    @property
    def state(self) -> State:
        """Get current state."""
        return self._state

    @property
    def history(self) -> List[StateTransition]:
        """Get transition history."""
        return self._history.copy()

    def _can_transition(self, to_state: State) -> bool:
        return to_state in VALID_TRANSITIONS.get(self._state, set())

    def transition(self, to_state: State, reason: str) -> StateTransition:
        """
        Transition to a new state.

        Raises:
            ValueError: If transition is not valid
        """
        if not self._can_transition(to_state):
            valid = VALID_TRANSITIONS.get(self._state, set())
            valid_names = sorted(s.name for s in valid)
            raise ValueError(
                f"Invalid transition: {self._state.name} → {to_state.name}. "
                f"Valid targets: {valid_names}"
            )

        return self._apply(to_state, reason)

    def _apply(self, to_state: State, reason: str) -> StateTransition:
        transition = StateTransition(
            from_state=self._state,
            to_state=to_state,
            timestamp=datetime.now(),
            reason=reason,
        )

        old_state = self._state
        self._state = to_state

        self._history.append(transition)
        if len(self._history) > MAX_HISTORY:
            self._history.pop(0)

        self._logger.info(
            f"State transition: {old_state.name} → {to_state.name} "
            f"(reason: {reason})"
        )

        return transition

    def reset(self, reason: str = "Manual reset") -> None:
        """Force the machine back to IDLE from any state."""
        if self._state != State.IDLE:
            self._apply(State.IDLE, f"Reset: {reason}")

    def is_busy(self) -> bool:
        """Check if tool work is in progress."""
        return self._state != State.IDLE
