"""Domain models shared by the coordinator, adapters and the board."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_ts(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class TaskStatus(StrEnum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"

    @classmethod
    def parse(cls, value: Any) -> TaskStatus:
        if value == "closed":
            return cls.DONE
        try:
            return cls(str(value))
        except ValueError:
            return cls.OPEN


class TaskType(StrEnum):
    TASK = "task"
    BUG = "bug"
    FEATURE = "feature"
    EPIC = "epic"
    CHORE = "chore"

    @classmethod
    def parse(cls, value: Any) -> TaskType:
        try:
            return cls(str(value))
        except ValueError:
            return cls.TASK


class DependencyType(StrEnum):
    BLOCKS = "blocks"
    PARENT_CHILD = "parent-child"
    RELATED = "related"
    DISCOVERED_FROM = "discovered-from"


class SessionState(StrEnum):
    """Live state of an agent session. Absence from the registry means no session."""

    IDLE = "idle"
    BUSY = "busy"
    WAITING = "waiting"
    PAUSED = "paused"
    DONE = "done"
    ERROR = "error"

    @property
    def icon(self) -> str:
        return _STATE_ICONS[self]


_STATE_ICONS = {
    SessionState.IDLE: "○",
    SessionState.BUSY: "●",
    SessionState.WAITING: "◐",
    SessionState.PAUSED: "⏸",
    SessionState.DONE: "✓",
    SessionState.ERROR: "✗",
}


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


@dataclass(slots=True, frozen=True)
class Dependency:
    id: str
    dep_type: DependencyType = DependencyType.BLOCKS


@dataclass(slots=True)
class Task:
    """A bead as reported by the task source. Treated as read-only."""

    id: str
    title: str
    status: TaskStatus = TaskStatus.OPEN
    priority: int = 2
    task_type: TaskType = TaskType.TASK
    parent_id: str | None = None
    dependencies: list[Dependency] = field(default_factory=list)
    description: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def blocking_ids(self) -> frozenset[str]:
        return frozenset(d.id for d in self.dependencies if d.dep_type == DependencyType.BLOCKS)

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Task:
        deps: list[Dependency] = []
        for item in raw.get("dependencies") or []:
            if isinstance(item, str):
                deps.append(Dependency(id=item))
                continue
            if not isinstance(item, dict):
                continue
            dep_id = item.get("depends_on_id") or item.get("id")
            if not dep_id:
                continue
            raw_type = item.get("type") or item.get("dependency_type") or "blocks"
            try:
                dep_type = DependencyType(raw_type)
            except ValueError:
                dep_type = DependencyType.RELATED
            deps.append(Dependency(id=str(dep_id), dep_type=dep_type))

        priority = raw.get("priority", 2)
        return cls(
            id=str(raw["id"]),
            title=str(raw.get("title", "")),
            status=TaskStatus.parse(raw.get("status", "open")),
            priority=priority if isinstance(priority, int) else 2,
            task_type=TaskType.parse(raw.get("issue_type") or raw.get("type") or "task"),
            parent_id=raw.get("parent_id") or raw.get("parent"),
            dependencies=deps,
            description=str(raw.get("description") or ""),
            created_at=parse_ts(raw.get("created_at")),
            updated_at=parse_ts(raw.get("updated_at")),
        )


@dataclass(slots=True, frozen=True)
class Session:
    """Snapshot of one task's live execution environment."""

    task_id: str
    state: SessionState
    started_at: datetime | None = None
    worktree_path: str = ""
    branch: str = ""
    tmux_session: str = ""
    dev_server_port: int | None = None


@dataclass(slots=True, frozen=True)
class Worktree:
    path: str
    branch: str
    task_id: str


@dataclass(slots=True, frozen=True)
class NetworkReading:
    """Result of one reachability probe."""

    online: bool
    latency_ms: float | None = None
    checked_at: datetime = field(default_factory=utc_now)
    error: str = ""


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class SessionInfo:
    task_id: str
    state: SessionState
    started_at: datetime | None
    worktree_path: str
    uptime_s: float = 0.0


@dataclass(slots=True, frozen=True)
class PortInfo:
    port: int
    task_id: str
    conflict: bool = False


@dataclass(slots=True, frozen=True)
class WorktreeInfo:
    task_id: str
    path: str
    exists: bool


@dataclass(slots=True, frozen=True)
class NetworkInfo:
    online: bool
    available: bool
    latency_ms: float | None = None
    checked_at: datetime | None = None
    error: str = ""


@dataclass(slots=True, frozen=True)
class DiagnosticsSnapshot:
    """Point-in-time health report. Built fresh on every collection."""

    timestamp: datetime
    health: HealthStatus
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    sessions: tuple[SessionInfo, ...] = ()
    ports: tuple[PortInfo, ...] = ()
    worktrees: tuple[WorktreeInfo, ...] = ()
    network: tuple[NetworkInfo, ...] = ()
