"""Global test fixtures for beadherd.

External tools are replaced by in-memory fakes; no test touches tmux, git,
bd or the network.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest

from beadherd.adapters.git import MergeResult, WorktreeEntry
from beadherd.config.schema import HerdConfig
from beadherd.coordinator.event_bus import EventBus
from beadherd.coordinator.monitor import SessionMonitor
from beadherd.coordinator.ports import PortAllocator
from beadherd.coordinator.registry import SessionRegistry
from beadherd.coordinator.sessions import SessionManager
from beadherd.errors import ExecError
from beadherd.workspace.worktree import WorktreeCoordinator


class FakeRunner:
    """CommandRunner that records calls and replays scripted results.

    ``responses`` maps the first few args (joined by spaces) to either a
    stdout string or an exception instance.
    """

    def __init__(self, responses: dict[str, Any] | None = None, default: str = "") -> None:
        self.responses = responses or {}
        self.default = default
        self.calls: list[dict[str, Any]] = []

    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: str | Path | None = None,
        timeout: float | None = None,
    ) -> str:
        self.calls.append({"args": list(args), "cwd": cwd, "timeout": timeout})
        joined = " ".join(args)
        for prefix, result in self.responses.items():
            if joined.startswith(prefix):
                if isinstance(result, BaseException):
                    raise result
                if isinstance(result, list):
                    item = result.pop(0)
                    if isinstance(item, BaseException):
                        raise item
                    return item
                return result
        return self.default


class FakeTmux:
    """In-memory tmux: sessions, scripted pane output and keystroke log.

    Panes without scripted output show a busy agent. ``new_session_gate``
    holds session creation until the event is set; ``on_send`` runs before
    each keystroke is recorded.
    """

    def __init__(self) -> None:
        self.sessions: dict[str, str] = {}
        self.env: dict[str, dict[str, str]] = {}
        self.outputs: dict[str, str] = {}
        self.default_output = "Working on it"
        self.keys: list[tuple[str, str, bool]] = []
        self.capture_error: Exception | None = None
        self.new_session_error: Exception | None = None
        self.new_session_gate: asyncio.Event | None = None
        self.on_send: Callable[[str, str], None] | None = None
        self.kill_error: Exception | None = None
        self.list_error: Exception | None = None
        self.captures = 0

    async def new_session(
        self,
        name: str,
        workdir: str = "",
        *,
        shell: str = "",
        env: Mapping[str, str] | None = None,
    ) -> None:
        if self.new_session_gate is not None:
            await self.new_session_gate.wait()
        if self.new_session_error is not None:
            raise self.new_session_error
        self.sessions[name] = workdir
        self.env[name] = dict(env or {})

    async def send_keys(self, name: str, text: str, *, enter: bool = True) -> None:
        if self.on_send is not None:
            self.on_send(name, text)
        self.keys.append((name, text, enter))

    async def capture_pane(self, name: str, lines: int, *, timeout: float | None = None) -> str:
        self.captures += 1
        if self.capture_error is not None:
            raise self.capture_error
        return self.outputs.get(name, self.default_output)

    async def kill_session(self, name: str) -> None:
        if self.kill_error is not None:
            raise self.kill_error
        self.sessions.pop(name, None)
        self.env.pop(name, None)

    async def show_environment(self, name: str, key: str) -> str | None:
        return self.env.get(name, {}).get(key)

    async def list_sessions(self) -> list[str]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.sessions)


class FakeGit:
    """In-memory git worktree bookkeeping that also creates directories."""

    def __init__(self, repo_dir: Path, branches: Sequence[str] = ("main",)) -> None:
        self.repo_dir = repo_dir
        self.branches = set(branches)
        self.worktrees: dict[str, WorktreeEntry] = {}
        self.deleted_branches: list[str] = []
        self.add_error: Exception | None = None
        self.merge_result = MergeResult(success=True)
        self.calls: list[tuple[str, ...]] = []

    async def branch_exists(self, ref: str) -> bool:
        return ref in self.branches

    async def prune_worktrees(self) -> None:
        self.calls.append(("prune",))

    async def add_worktree(self, path: str | Path, branch: str, base_branch: str) -> None:
        if self.add_error is not None:
            raise self.add_error
        Path(path).mkdir(parents=True)
        self.branches.add(branch)
        self.worktrees[str(path)] = WorktreeEntry(path=str(path), branch=branch)

    async def remove_worktree(self, path: str | Path, *, force: bool = False) -> None:
        self.calls.append(("remove", str(path)))
        self.worktrees.pop(str(path), None)

    async def list_worktrees(self) -> list[WorktreeEntry]:
        main = WorktreeEntry(path=str(self.repo_dir), branch="main")
        return [main, *self.worktrees.values()]

    async def delete_branch(self, branch: str) -> None:
        if branch not in self.branches:
            raise ExecError("git", ["branch", "-D", branch], returncode=1, stderr="not found")
        self.branches.discard(branch)
        self.deleted_branches.append(branch)

    async def fetch(self, cwd: str | Path, remote: str = "origin") -> None:
        self.calls.append(("fetch", str(cwd), remote))

    async def merge(self, cwd: str | Path, branch: str) -> MergeResult:
        self.calls.append(("merge", str(cwd), branch))
        return self.merge_result

    async def abort_merge(self, cwd: str | Path) -> None:
        self.calls.append(("abort", str(cwd)))

    async def diff_stat(self, cwd: str | Path, base: str | None = None) -> str:
        return " 1 file changed, 2 insertions(+)"


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    repo = tmp_path / "myapp"
    repo.mkdir()
    return repo


@pytest.fixture
def config() -> HerdConfig:
    return HerdConfig()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def ports() -> PortAllocator:
    return PortAllocator(3000, 3100)


@pytest.fixture
def fake_tmux() -> FakeTmux:
    return FakeTmux()


@pytest.fixture
def fake_git(repo_dir: Path) -> FakeGit:
    return FakeGit(repo_dir)


@pytest.fixture
def worktrees(fake_git: FakeGit, repo_dir: Path, config: HerdConfig) -> WorktreeCoordinator:
    return WorktreeCoordinator(
        fake_git,  # type: ignore[arg-type]
        repo_dir,
        worktree_config=config.worktree,
        git_config=config.git,
    )


@pytest.fixture
def monitor(fake_tmux: FakeTmux, registry: SessionRegistry, bus: EventBus) -> SessionMonitor:
    return SessionMonitor(
        fake_tmux,  # type: ignore[arg-type]
        registry,
        bus,
        poll_interval=0.01,
        capture_lines=100,
        capture_timeout=1.0,
    )


@pytest.fixture
def manager(
    registry: SessionRegistry,
    ports: PortAllocator,
    worktrees: WorktreeCoordinator,
    fake_tmux: FakeTmux,
    monitor: SessionMonitor,
    bus: EventBus,
    config: HerdConfig,
    fake_git: FakeGit,
) -> SessionManager:
    return SessionManager(
        registry,
        ports,
        worktrees,
        fake_tmux,  # type: ignore[arg-type]
        monitor,
        bus,
        config,
        git=fake_git,  # type: ignore[arg-type]
    )
