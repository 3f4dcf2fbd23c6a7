"""Orchestration events.

Every value the background machinery hands to the presentation layer is one
of the frozen dataclasses below. ``OrchestrationEvent`` is the closed union;
consumers dispatch with ``match`` and never need runtime type probing of
untyped payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, TypeAlias

from beadherd.protocol.models import (
    DiagnosticsSnapshot,
    NetworkReading,
    Session,
    SessionState,
    Task,
    utc_now,
)

StateSource = Literal["lifecycle", "monitor"]


@dataclass(slots=True, frozen=True)
class SessionStarted:
    session: Session
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class SessionStopped:
    task_id: str
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class SessionStateChanged:
    task_id: str
    state: SessionState
    previous: SessionState | None
    source: StateSource
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class TasksLoaded:
    tasks: tuple[Task, ...]
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class TaskSourceFailed:
    error: str
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class DiagnosticsCollected:
    snapshot: DiagnosticsSnapshot
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class NetworkStatusChanged:
    reading: NetworkReading
    timestamp: datetime = field(default_factory=utc_now)


OrchestrationEvent: TypeAlias = (
    SessionStarted
    | SessionStopped
    | SessionStateChanged
    | TasksLoaded
    | TaskSourceFailed
    | DiagnosticsCollected
    | NetworkStatusChanged
)


def describe(event: OrchestrationEvent) -> str:
    """One-line human summary of an event."""
    match event:
        case SessionStarted(session=session):
            return f"{session.task_id}: session started in {session.worktree_path}"
        case SessionStopped(task_id=task_id):
            return f"{task_id}: session stopped"
        case SessionStateChanged(task_id=task_id, state=state, source=source):
            return f"{task_id}: {state.value} ({source})"
        case TasksLoaded(tasks=tasks):
            return f"loaded {len(tasks)} tasks"
        case TaskSourceFailed(error=error):
            return f"task source failed: {error}"
        case DiagnosticsCollected(snapshot=snapshot):
            return f"health: {snapshot.health.value}"
        case NetworkStatusChanged(reading=reading):
            return "network online" if reading.online else "network offline"
    raise TypeError(f"Unknown event: {event!r}")
