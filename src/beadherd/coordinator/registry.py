"""Session registry: the single table of live sessions."""

from __future__ import annotations

import dataclasses
import threading

from beadherd.coordinator.state_machine import LifecycleEvent, apply_lifecycle, apply_observation
from beadherd.errors import AlreadyActiveError, SessionNotFoundError
from beadherd.protocol.models import Session, SessionState, utc_now
from beadherd.utilities.logger import get_logger

log = get_logger(__name__)


class SessionRegistry:
    """Thread-safe map of task ID -> :class:`Session`.

    Sessions are frozen values; every mutation swaps the entry under the
    lock, so callers only ever see consistent snapshots. At most one session
    exists per task ID.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def start(
        self,
        task_id: str,
        *,
        worktree_path: str = "",
        branch: str = "",
        tmux_session: str = "",
        dev_server_port: int | None = None,
        state: SessionState = SessionState.BUSY,
    ) -> Session:
        """Insert a new session. Raises AlreadyActiveError if one exists."""
        session = Session(
            task_id=task_id,
            state=state,
            started_at=utc_now(),
            worktree_path=worktree_path,
            branch=branch,
            tmux_session=tmux_session or task_id,
            dev_server_port=dev_server_port,
        )
        with self._lock:
            if task_id in self._sessions:
                raise AlreadyActiveError(task_id)
            self._sessions[task_id] = session
        log.info("session registered", task_id=task_id, state=state.value)
        return session

    def get(self, task_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(task_id)

    def remove(self, task_id: str) -> Session | None:
        """Drop the task's session; returns it, or ``None`` if absent."""
        with self._lock:
            session = self._sessions.pop(task_id, None)
        if session is not None:
            log.info("session removed", task_id=task_id)
        return session

    def transition(self, task_id: str, event: LifecycleEvent) -> Session:
        """Apply a lifecycle event.

        Raises SessionNotFoundError or InvalidTransitionError; the registry is
        unchanged in both cases.
        """
        with self._lock:
            current = self._sessions.get(task_id)
            if current is None:
                raise SessionNotFoundError(task_id)
            target = apply_lifecycle(task_id, current.state, event)
            updated = dataclasses.replace(current, state=target)
            self._sessions[task_id] = updated
        return updated

    def observe(self, task_id: str, detected: SessionState) -> Session | None:
        """Apply a monitor observation; returns the session only if it changed."""
        with self._lock:
            current = self._sessions.get(task_id)
            if current is None:
                return None
            target = apply_observation(current.state, detected)
            if target is None:
                if detected != current.state:
                    log.debug(
                        "observation ignored",
                        task_id=task_id,
                        current=current.state.value,
                        detected=detected.value,
                    )
                return None
            updated = dataclasses.replace(current, state=target)
            self._sessions[task_id] = updated
        return updated

    def compare_and_set(self, task_id: str, expected: SessionState, state: SessionState) -> Session | None:
        """Set *state* only while the session is still in *expected*.

        Returns the updated session, or ``None`` if the session is gone or
        has moved on.
        """
        with self._lock:
            current = self._sessions.get(task_id)
            if current is None or current.state != expected:
                return None
            updated = dataclasses.replace(current, state=state)
            self._sessions[task_id] = updated
        return updated

    def snapshot(self) -> dict[str, Session]:
        with self._lock:
            return dict(self._sessions)

    def __contains__(self, task_id: object) -> bool:
        with self._lock:
            return task_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
