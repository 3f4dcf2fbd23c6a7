"""Session state machine.

Two kinds of input move a session between states: lifecycle events issued by
the user (pause, resume) and observations made by the monitor from pane
output. Lifecycle events are strict and raise on an illegal move; monitor
observations that are not legal are simply ignored.
"""

from __future__ import annotations

from enum import StrEnum

from beadherd.errors import InvalidTransitionError
from beadherd.protocol.models import SessionState

S = SessionState


class LifecycleEvent(StrEnum):
    PAUSE = "pause"
    RESUME = "resume"


# (from_state, event) -> to_state
LIFECYCLE_TRANSITIONS: dict[tuple[SessionState, LifecycleEvent], SessionState] = {
    (S.BUSY, LifecycleEvent.PAUSE): S.PAUSED,
    (S.WAITING, LifecycleEvent.PAUSE): S.PAUSED,
    (S.PAUSED, LifecycleEvent.RESUME): S.BUSY,
}

_ACTIVITY = (S.IDLE, S.BUSY, S.WAITING)

# Valid monitor-driven transitions: (from_state, to_state)
OBSERVED_TRANSITIONS: set[tuple[SessionState, SessionState]] = {
    *((src, dst) for src in (*_ACTIVITY, S.DONE, S.ERROR) for dst in _ACTIVITY if src != dst),
    (S.BUSY, S.DONE),
    (S.WAITING, S.DONE),
    # Any state can fail
    *((src, S.ERROR) for src in S if src != S.ERROR),
}


def apply_lifecycle(task_id: str, current: SessionState, event: LifecycleEvent) -> SessionState:
    """Return the state *event* moves *current* to.

    Raises InvalidTransitionError if the event is not legal from *current*.
    """
    target = LIFECYCLE_TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransitionError(task_id, current.value, event.value)
    return target


def apply_observation(current: SessionState, detected: SessionState) -> SessionState | None:
    """Return the new state for a monitor observation, or ``None`` to ignore it."""
    if (current, detected) in OBSERVED_TRANSITIONS:
        return detected
    return None
