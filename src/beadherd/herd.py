"""Wires the adapters and coordinator pieces together from a config."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from beadherd.adapters.beads import BeadsClient
from beadherd.adapters.git import GitClient
from beadherd.adapters.network import NetworkProbe
from beadherd.adapters.tmux import TmuxClient
from beadherd.config.schema import HerdConfig
from beadherd.coordinator.diagnostics import DiagnosticsAggregator
from beadherd.coordinator.event_bus import EventBus
from beadherd.coordinator.loop import RefreshLoop
from beadherd.coordinator.monitor import SessionMonitor
from beadherd.coordinator.ports import PortAllocator
from beadherd.coordinator.registry import SessionRegistry
from beadherd.coordinator.sessions import SessionManager
from beadherd.workspace.worktree import WorktreeCoordinator


@dataclass(slots=True)
class Herd:
    config: HerdConfig
    repo_dir: Path
    bus: EventBus
    registry: SessionRegistry
    ports: PortAllocator
    tmux: TmuxClient
    git: GitClient
    beads: BeadsClient
    network: NetworkProbe
    worktrees: WorktreeCoordinator
    monitor: SessionMonitor
    manager: SessionManager
    aggregator: DiagnosticsAggregator
    refresh: RefreshLoop


def build_herd(config: HerdConfig, repo_dir: str | Path) -> Herd:
    repo = Path(repo_dir).resolve()
    timeout = config.session.command_timeout_seconds

    bus = EventBus()
    registry = SessionRegistry()
    ports = PortAllocator(config.dev_server.base_port, config.dev_server.max_port)
    tmux = TmuxClient(timeout=timeout)
    git = GitClient(repo, timeout=max(timeout, 30.0))
    beads = BeadsClient(
        binary=config.beads.binary,
        cwd=repo,
        timeout=config.beads.list_timeout_seconds,
        retry_attempts=config.network.retry_attempts,
    )
    network = NetworkProbe(config.network.check_url, timeout=config.network.timeout_seconds)
    worktrees = WorktreeCoordinator(
        git, repo, worktree_config=config.worktree, git_config=config.git
    )
    monitor = SessionMonitor(
        tmux,
        registry,
        bus,
        poll_interval=config.monitor.poll_interval_ms / 1000.0,
        capture_lines=config.monitor.capture_lines,
        capture_timeout=config.monitor.capture_timeout_seconds,
    )
    manager = SessionManager(registry, ports, worktrees, tmux, monitor, bus, config, git=git)
    aggregator = DiagnosticsAggregator(
        registry, ports, network=network, tmux=tmux, timeout=config.network.timeout_seconds
    )
    refresh = RefreshLoop(
        beads,
        aggregator,
        bus,
        interval=config.beads.refresh_interval_seconds,
        list_timeout=config.beads.list_timeout_seconds,
        diagnostics_interval=config.diagnostics.interval_seconds,
    )
    return Herd(
        config=config,
        repo_dir=repo,
        bus=bus,
        registry=registry,
        ports=ports,
        tmux=tmux,
        git=git,
        beads=beads,
        network=network,
        worktrees=worktrees,
        monitor=monitor,
        manager=manager,
        aggregator=aggregator,
        refresh=refresh,
    )
