"""Textual app for the beadherd board (sessions view)."""

from __future__ import annotations

from dataclasses import dataclass, field

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import DataTable, Footer, Header, Static

from beadherd.coordinator.event_bus import EventBus
from beadherd.coordinator.loop import RefreshLoop
from beadherd.coordinator.sessions import SessionManager
from beadherd.protocol.events import (
    DiagnosticsCollected,
    NetworkStatusChanged,
    OrchestrationEvent,
    SessionStarted,
    SessionStateChanged,
    SessionStopped,
    TaskSourceFailed,
    TasksLoaded,
    describe,
)
from beadherd.protocol.models import HealthStatus, SessionState, Task
from beadherd.tui.bridge import HerdBridge, HerdEventMessage

STATE_STYLES = {
    SessionState.IDLE: "dim",
    SessionState.BUSY: "yellow",
    SessionState.WAITING: "bold cyan",
    SessionState.PAUSED: "dim",
    SessionState.DONE: "green",
    SessionState.ERROR: "bold red",
}

BACKLOG = 50

HEALTH_STYLES = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.DEGRADED: "yellow",
    HealthStatus.CRITICAL: "bold red",
}


@dataclass(slots=True)
class BoardState:
    """What the board shows, folded from the event stream."""

    sessions: dict[str, SessionState] = field(default_factory=dict)
    tasks: dict[str, Task] = field(default_factory=dict)
    health: HealthStatus | None = None
    online: bool | None = None
    last_error: str = ""
    log: list[str] = field(default_factory=list)

    def apply(self, event: OrchestrationEvent) -> None:
        match event:
            case SessionStarted(session=session):
                self.sessions[session.task_id] = session.state
            case SessionStateChanged(task_id=task_id, state=state):
                if task_id in self.sessions:
                    self.sessions[task_id] = state
            case SessionStopped(task_id=task_id):
                self.sessions.pop(task_id, None)
            case TasksLoaded(tasks=tasks):
                self.tasks = {t.id: t for t in tasks}
                self.last_error = ""
            case TaskSourceFailed(error=error):
                self.last_error = error
            case DiagnosticsCollected(snapshot=snapshot):
                self.health = snapshot.health
            case NetworkStatusChanged(reading=reading):
                self.online = reading.online
        self.log.append(describe(event))
        del self.log[:-BACKLOG]

    def status_line(self) -> str:
        health = self.health.value if self.health else "unknown"
        network = {True: "online", False: "offline", None: "unknown"}[self.online]
        line = f"Health: {health} | Network: {network} | Sessions: {len(self.sessions)}"
        if self.last_error:
            line += f" | Tasks: {self.last_error}"
        return line


class BoardApp(App[None]):
    TITLE = "beadherd"
    BINDINGS = [
        Binding("r", "refresh_now", "Refresh"),
        Binding("q", "quit", "Quit"),
    ]

    def __init__(
        self,
        bus: EventBus,
        *,
        manager: SessionManager | None = None,
        refresh: RefreshLoop | None = None,
    ) -> None:
        super().__init__()
        self._bus = bus
        self._manager = manager
        self._refresh = refresh
        self._bridge = HerdBridge(self)
        self.state = BoardState()

        self._status = Static("Health: unknown", id="status")
        self._sessions = DataTable(id="sessions")
        self._events = Static("", id="events")

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Vertical(self._status, self._sessions, self._events)
        yield Footer()

    async def on_mount(self) -> None:
        self._sessions.add_columns("", "Task", "State", "Title")
        for event in self._bus.recent(BACKLOG):
            self.state.apply(event)
        self._bridge.connect(self._bus)
        if self._manager is not None:
            await self._manager.restore()
        if self._refresh is not None:
            self._refresh.start()
        self._render_state()

    async def on_unmount(self) -> None:
        self._bridge.disconnect()
        if self._refresh is not None:
            await self._refresh.stop()
        if self._manager is not None:
            await self._manager.shutdown()

    def on_herd_event_message(self, message: HerdEventMessage) -> None:
        self.state.apply(message.event)
        self._render_state()

    async def action_refresh_now(self) -> None:
        if self._refresh is not None:
            await self._refresh.tick()

    def _render_state(self) -> None:
        status = Text(self.state.status_line())
        if self.state.health is not None:
            status.stylize(HEALTH_STYLES[self.state.health], 0, len("Health: ") + len(self.state.health.value))
        self._status.update(status)
        self._sessions.clear(columns=False)
        for task_id in sorted(self.state.sessions):
            state = self.state.sessions[task_id]
            task = self.state.tasks.get(task_id)
            style = STATE_STYLES[state]
            self._sessions.add_row(
                Text(state.icon, style=style),
                task_id,
                Text(state.value, style=style),
                task.title if task else "",
            )
        self._events.update("\n".join(self.state.log[-8:]))
