"""
State machine for the light source tracker.

The tracker is STOPPED until it starts on the GM instance, RUNNING while its
timer ticks, and PAUSED while ticks are suspended. Every transition is
validated against VALID_TRANSITIONS and recorded in the history and the
observability RunLog.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from src.data_models import TransitionLog
from src.observability.run_log import get_run_log


class TrackerState(str, Enum):
    """Lifecycle states of the light source tracker."""

    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"


@dataclass
class StateTransition:
    """A valid tracker state transition."""

    from_state: TrackerState
    to_state: TrackerState
    trigger: str
    description: str = ""

    def __hash__(self) -> int:
        return hash((self.from_state, self.to_state, self.trigger))


VALID_TRANSITIONS: list[StateTransition] = [
    StateTransition(
        TrackerState.STOPPED,
        TrackerState.RUNNING,
        "start",
        "Tracking enabled on the GM instance; timer started",
    ),
    StateTransition(
        TrackerState.RUNNING,
        TrackerState.PAUSED,
        "pause",
        "Ticks suspended",
    ),
    StateTransition(
        TrackerState.PAUSED,
        TrackerState.RUNNING,
        "resume",
        "Ticks resumed",
    ),
    StateTransition(
        TrackerState.RUNNING,
        TrackerState.STOPPED,
        "stop",
        "Timer cancelled",
    ),
    StateTransition(
        TrackerState.PAUSED,
        TrackerState.STOPPED,
        "stop",
        "Timer cancelled while paused",
    ),
]


class InvalidTransitionError(Exception):
    """Raised when attempting an invalid state transition."""

    pass


class TrackerStateMachine:
    """
    Validates and records tracker state transitions.

    Post-transition hooks are called with (old_state, new_state, trigger, context).
    """

    def __init__(self, initial_state: TrackerState = TrackerState.STOPPED):
        self._current_state = initial_state
        self._state_history: list[TransitionLog] = []
        self._post_transition_hooks: list[Callable] = []

        self._valid_transitions: dict[tuple[TrackerState, str], TrackerState] = {}
        for transition in VALID_TRANSITIONS:
            self._valid_transitions[(transition.from_state, transition.trigger)] = transition.to_state

    @property
    def current_state(self) -> TrackerState:
        return self._current_state

    @property
    def state_history(self) -> list[TransitionLog]:
        """Copy of the transition history."""
        return self._state_history.copy()

    def can_transition(self, trigger: str) -> bool:
        return (self._current_state, trigger) in self._valid_transitions

    def get_valid_triggers(self) -> list[str]:
        return [
            trigger
            for (state, trigger) in self._valid_transitions
            if state == self._current_state
        ]

    def transition(self, trigger: str, context: Optional[dict[str, Any]] = None) -> TrackerState:
        """
        Move to the state reached by ``trigger`` from the current state.

        Args:
            trigger: The trigger event causing the transition
            context: Optional context data for the transition

        Returns:
            The new tracker state

        Raises:
            InvalidTransitionError: If the transition is not valid
        """
        context = context or {}

        key = (self._current_state, trigger)
        if key not in self._valid_transitions:
            raise InvalidTransitionError(
                f"Invalid transition: Cannot trigger '{trigger}' from state "
                f"'{self._current_state.value}'. Valid triggers: {self.get_valid_triggers()}"
            )

        old_state = self._current_state
        new_state = self._valid_transitions[key]
        self._current_state = new_state

        self._log_transition(old_state.value, new_state.value, trigger, context)

        for hook in self._post_transition_hooks:
            hook(old_state, new_state, trigger, context)

        return new_state

    def register_post_hook(self, hook: Callable) -> None:
        self._post_transition_hooks.append(hook)

    def _log_transition(
        self, from_state: str, to_state: str, trigger: str, context: dict[str, Any]
    ) -> None:
        self._state_history.append(
            TransitionLog(
                timestamp=datetime.now(),
                from_state=from_state,
                to_state=to_state,
                trigger=trigger,
                context=context,
            )
        )
        get_run_log().log_transition(
            from_state=from_state,
            to_state=to_state,
            trigger=trigger,
            context=context,
        )

    def __repr__(self) -> str:
        return f"TrackerStateMachine(current={self._current_state.value})"
