"""Session lifecycle orchestration: start, pause, resume, stop.

A session is assembled in a fixed order, each step failing fast::

    port (optional) -> worktree -> tmux session -> agent launch
        -> registry insert -> monitor attach

Lifecycle operations for one task ID are serialized by a per-task lock, so
they take effect in the order they were issued. Operations on different
tasks run independently.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict

from beadherd.adapters.git import GitClient, MergeResult
from beadherd.adapters.tmux import TmuxClient
from beadherd.config.schema import HerdConfig
from beadherd.coordinator.event_bus import EventBus
from beadherd.coordinator.monitor import SessionMonitor
from beadherd.coordinator.ports import PortAllocator
from beadherd.coordinator.registry import SessionRegistry
from beadherd.coordinator.state_machine import LifecycleEvent
from beadherd.errors import AlreadyActiveError, HerdError, PortInUseError, SessionNotFoundError
from beadherd.protocol.events import SessionStarted, SessionStateChanged, SessionStopped
from beadherd.protocol.models import Session, SessionState
from beadherd.utilities.logger import get_logger
from beadherd.workspace.worktree import WorktreeCoordinator

log = get_logger(__name__)

INTERRUPT_KEY = "C-c"
PORT_ENV = "PORT"


class SessionManager:
    def __init__(
        self,
        registry: SessionRegistry,
        ports: PortAllocator,
        worktrees: WorktreeCoordinator,
        tmux: TmuxClient,
        monitor: SessionMonitor,
        bus: EventBus,
        config: HerdConfig | None = None,
        *,
        git: GitClient | None = None,
    ) -> None:
        self._registry = registry
        self._ports = ports
        self._worktrees = worktrees
        self._tmux = tmux
        self._monitor = monitor
        self._bus = bus
        self._config = config or HerdConfig()
        self._git = git
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        task_id: str,
        *,
        base_branch: str | None = None,
        with_dev_server: bool = False,
        agent_command: str | None = None,
    ) -> Session:
        """Bring up a session for *task_id*.

        Raises AlreadyActiveError if one is running. If the start fails or
        is cancelled, the port is released and the tmux session killed; a
        worktree that was already created is left in place. The dev server
        port is exported as ``PORT`` in the tmux session environment, which
        is where :meth:`restore` reads it back from.
        """
        async with self._locks[task_id]:
            if task_id in self._registry:
                raise AlreadyActiveError(task_id)

            port = self._ports.allocate(task_id) if with_dev_server else None
            env = {PORT_ENV: str(port)} if port is not None else None
            worktree_path = ""
            tmux_created = False
            try:
                worktree = await self._worktrees.create(task_id, base_branch)
                worktree_path = worktree.path
                await self._tmux.new_session(
                    task_id, worktree.path, shell=self._config.session.shell, env=env
                )
                tmux_created = True
                command = agent_command or self._config.session.agent_command
                if command:
                    await self._tmux.send_keys(task_id, command)
                session = self._registry.start(
                    task_id,
                    worktree_path=worktree.path,
                    branch=worktree.branch,
                    tmux_session=task_id,
                    dev_server_port=port,
                )
            except BaseException as exc:
                self._ports.release(task_id)
                if tmux_created:
                    await self._kill_quietly(task_id)
                if worktree_path:
                    exc.add_note(f"worktree kept at {worktree_path}")
                log.warning("session start failed", task_id=task_id, error=repr(exc), worktree=worktree_path)
                raise

            self._monitor.attach(task_id)
            self._bus.publish(SessionStarted(session=session))
            self._bus.publish(
                SessionStateChanged(
                    task_id=task_id, state=session.state, previous=None, source="lifecycle"
                )
            )
            log.info("session started", task_id=task_id, path=worktree_path, port=port)
            return session

    async def pause(self, task_id: str) -> Session:
        """Mark the session paused, then interrupt the agent."""
        async with self._locks[task_id]:
            previous, session = self._commit(task_id, LifecycleEvent.PAUSE)
            await self._send_or_revert(session, previous, INTERRUPT_KEY, enter=False)
            return session

    async def resume(self, task_id: str) -> Session:
        """Mark the session busy, then prompt the agent to carry on."""
        async with self._locks[task_id]:
            previous, session = self._commit(task_id, LifecycleEvent.RESUME)
            await self._send_or_revert(session, previous, self._config.session.resume_prompt)
            return session

    async def stop(self, task_id: str, *, kill: bool = True) -> Session | None:
        """Tear down the session. Stopping an absent session is a no-op.

        Once this returns, the monitor can no longer publish for the task.
        The worktree is never touched.
        """
        async with self._locks[task_id]:
            await self._monitor.detach(task_id)
            session = self._registry.remove(task_id)
            self._ports.release(task_id)
            if session is None:
                return None
            if kill:
                await self._kill_quietly(session.tmux_session or task_id)
            self._bus.publish(SessionStopped(task_id=task_id))
            log.info("session stopped", task_id=task_id)
            return session

    async def delete_worktree(self, task_id: str, *, force: bool = False) -> None:
        """Remove the task's worktree and branch. Refused while a session is live."""
        async with self._locks[task_id]:
            if task_id in self._registry:
                raise AlreadyActiveError(task_id)
            await self._worktrees.remove(task_id, force=force)

    async def send_input(self, task_id: str, text: str) -> None:
        session = self._require(task_id)
        await self._tmux.send_keys(session.tmux_session, text)

    # ------------------------------------------------------------------
    # Git sync inside a session worktree
    # ------------------------------------------------------------------

    async def sync_with_base(
        self,
        task_id: str,
        *,
        base_branch: str | None = None,
        remote: str = "origin",
    ) -> MergeResult:
        """Fetch and merge ``remote/base`` into the task worktree.

        A conflicting merge is aborted so the worktree is left clean; the
        conflicting files are reported in the result.
        """
        if self._git is None:
            raise HerdError("git sync is not configured")
        session = self._require(task_id)
        base = base_branch or self._config.git.base_branch
        async with self._locks[task_id]:
            await self._git.fetch(session.worktree_path, remote)
            result = await self._git.merge(session.worktree_path, f"{remote}/{base}")
            if result.has_conflicts:
                await self._git.abort_merge(session.worktree_path)
                log.warning("sync aborted on conflicts", task_id=task_id, files=result.conflict_files)
        return result

    async def diff_stat(self, task_id: str, *, base_branch: str | None = None) -> str:
        if self._git is None:
            raise HerdError("git sync is not configured")
        session = self._require(task_id)
        return await self._git.diff_stat(session.worktree_path, base_branch or self._config.git.base_branch)

    # ------------------------------------------------------------------
    # Process lifetime
    # ------------------------------------------------------------------

    async def restore(self) -> list[Session]:
        """Re-adopt sessions that survived a restart.

        A tmux session named after the task of a managed worktree is taken
        to be that task's session. Its dev server port is read back from the
        session environment and reserved again. Restored sessions start
        ``busy`` and the monitor corrects the state on its first tick.
        """
        live = set(await self._tmux.list_sessions())
        restored: list[Session] = []
        for wt in await self._worktrees.list():
            if wt.task_id not in live:
                continue
            async with self._locks[wt.task_id]:
                if wt.task_id in self._registry:
                    continue
                port = await self._recover_port(wt.task_id)
                session = self._registry.start(
                    wt.task_id,
                    worktree_path=wt.path,
                    branch=wt.branch,
                    tmux_session=wt.task_id,
                    dev_server_port=port,
                )
                self._monitor.attach(wt.task_id)
            self._bus.publish(SessionStarted(session=session))
            restored.append(session)
        if restored:
            log.info("sessions restored", count=len(restored))
        return restored

    async def shutdown(self) -> None:
        """Stop all monitor loops. tmux sessions and worktrees are left running."""
        await self._monitor.stop_all()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, task_id: str) -> Session:
        session = self._registry.get(task_id)
        if session is None:
            raise SessionNotFoundError(task_id)
        return session

    def _commit(self, task_id: str, event: LifecycleEvent) -> tuple[SessionState, Session]:
        previous = self._require(task_id).state
        updated = self._registry.transition(task_id, event)
        self._bus.publish(
            SessionStateChanged(
                task_id=task_id, state=updated.state, previous=previous, source="lifecycle"
            )
        )
        log.info(f"session {event.value}", task_id=task_id, state=updated.state.value)
        return previous, updated

    async def _send_or_revert(
        self, session: Session, previous: SessionState, text: str, *, enter: bool = True
    ) -> None:
        """Deliver the keys for a committed transition, undoing it on failure."""
        try:
            await self._tmux.send_keys(session.tmux_session, text, enter=enter)
        except BaseException as exc:
            reverted = self._registry.compare_and_set(session.task_id, session.state, previous)
            if reverted is not None:
                self._bus.publish(
                    SessionStateChanged(
                        task_id=session.task_id, state=previous, previous=session.state, source="lifecycle"
                    )
                )
            log.warning(
                "lifecycle keys not delivered",
                task_id=session.task_id,
                error=repr(exc),
                reverted=reverted is not None,
            )
            raise

    async def _recover_port(self, task_id: str) -> int | None:
        value = await self._tmux.show_environment(task_id, PORT_ENV)
        if value is None:
            return None
        try:
            return self._ports.reserve(task_id, int(value))
        except ValueError:
            log.warning("ignoring malformed dev server port", task_id=task_id, value=value)
        except PortInUseError as exc:
            log.warning("restored session lost its port", task_id=task_id, port=exc.port, holder=exc.holder)
        return None

    async def _kill_quietly(self, name: str) -> None:
        try:
            await self._tmux.kill_session(name)
        except HerdError as exc:
            log.warning("tmux kill failed", session=name, error=str(exc))
