"""Diagnostics aggregation: a health snapshot of the whole herd."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Collection, Sequence
from pathlib import Path

from beadherd.adapters.network import NetworkProbe
from beadherd.adapters.tmux import TmuxClient
from beadherd.coordinator.ports import PortAllocator
from beadherd.coordinator.registry import SessionRegistry
from beadherd.errors import HerdError
from beadherd.protocol.models import (
    DiagnosticsSnapshot,
    HealthStatus,
    NetworkInfo,
    NetworkReading,
    PortInfo,
    SessionInfo,
    SessionState,
    WorktreeInfo,
    utc_now,
)
from beadherd.utilities.logger import get_logger

log = get_logger(__name__)


class DiagnosticsAggregator:
    """Builds :class:`DiagnosticsSnapshot` values.

    ``collect`` is synchronous and pure: it reads the registry, the port table
    and one ``Path.exists`` per session worktree. The slow inputs (network
    probe, tmux listing) are passed in, or gathered by ``refresh`` under a
    timeout; only ``refresh`` updates :attr:`last`. A missing or failed input
    lowers the health score; it never makes collection fail.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        ports: PortAllocator,
        *,
        network: NetworkProbe | None = None,
        tmux: TmuxClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        self._registry = registry
        self._ports = ports
        self._network = network
        self._tmux = tmux
        self._timeout = timeout
        self._last: DiagnosticsSnapshot | None = None

    @property
    def last(self) -> DiagnosticsSnapshot | None:
        return self._last

    def collect(
        self,
        *,
        network: NetworkReading | None = None,
        tmux_sessions: Sequence[str] | None = None,
        tmux_error: str = "",
        known_task_ids: Collection[str] | None = None,
        network_required: bool = False,
    ) -> DiagnosticsSnapshot:
        errors: list[str] = []
        warnings: list[str] = []
        now = utc_now()
        sessions = self._registry.snapshot()
        allocations = self._ports.allocations()

        # Sessions
        session_infos: list[SessionInfo] = []
        for task_id in sorted(sessions):
            s = sessions[task_id]
            uptime = (now - s.started_at).total_seconds() if s.started_at else 0.0
            session_infos.append(
                SessionInfo(
                    task_id=task_id,
                    state=s.state,
                    started_at=s.started_at,
                    worktree_path=s.worktree_path,
                    uptime_s=max(uptime, 0.0),
                )
            )
            if s.state == SessionState.ERROR:
                warnings.append(f"Session {task_id} is in error state")

        # Ports: allocator table plus whatever sessions claim
        holders: dict[int, set[str]] = defaultdict(set)
        for task_id, port in allocations.items():
            holders[port].add(task_id)
        for task_id, s in sessions.items():
            if s.dev_server_port is None:
                continue
            holders[s.dev_server_port].add(task_id)
            allocated = allocations.get(task_id)
            if allocated != s.dev_server_port:
                warnings.append(
                    f"Session {task_id} records port {s.dev_server_port} "
                    f"but allocator has {allocated if allocated is not None else 'none'}"
                )
        port_infos: list[PortInfo] = []
        for port in sorted(holders):
            owners = sorted(holders[port])
            conflict = len(owners) > 1
            if conflict:
                errors.append(f"Port {port} allocated to multiple tasks: {', '.join(owners)}")
            port_infos.extend(PortInfo(port=port, task_id=owner, conflict=conflict) for owner in owners)

        # Worktrees
        worktree_infos: list[WorktreeInfo] = []
        for task_id in sorted(sessions):
            path = sessions[task_id].worktree_path
            if not path:
                continue
            exists = Path(path).exists()
            worktree_infos.append(WorktreeInfo(task_id=task_id, path=path, exists=exists))
            if not exists:
                warnings.append(f"Worktree for {task_id} is missing: {path}")

        # Tmux
        if tmux_error:
            warnings.append(f"Failed to list tmux sessions: {tmux_error}")
        elif tmux_sessions is not None and known_task_ids:
            for name in sorted(set(tmux_sessions)):
                if name in known_task_ids and name not in sessions:
                    warnings.append(f"Orphaned tmux session: {name}")

        # Network
        if network is None:
            net_info = NetworkInfo(online=False, available=False)
            message = "Network status unavailable"
            (errors if network_required else warnings).append(message)
        else:
            net_info = NetworkInfo(
                online=network.online,
                available=True,
                latency_ms=network.latency_ms,
                checked_at=network.checked_at,
                error=network.error,
            )
            if not network.online:
                message = "Network is offline" + (f": {network.error}" if network.error else "")
                (errors if network_required else warnings).append(message)

        if errors:
            health = HealthStatus.CRITICAL
        elif warnings:
            health = HealthStatus.DEGRADED
        else:
            health = HealthStatus.HEALTHY

        snapshot = DiagnosticsSnapshot(
            timestamp=now,
            health=health,
            errors=tuple(errors),
            warnings=tuple(warnings),
            sessions=tuple(session_infos),
            ports=tuple(port_infos),
            worktrees=tuple(worktree_infos),
            network=(net_info,),
        )
        return snapshot

    async def refresh(
        self,
        *,
        known_task_ids: Collection[str] | None = None,
        network_required: bool = False,
    ) -> DiagnosticsSnapshot:
        """Gather network and tmux inputs, collect off the event loop and
        remember the result as :attr:`last`."""
        reading, (tmux_sessions, tmux_error) = await asyncio.gather(
            self._probe_network(), self._list_tmux()
        )
        snapshot = await asyncio.to_thread(
            self.collect,
            network=reading,
            tmux_sessions=tmux_sessions,
            tmux_error=tmux_error,
            known_task_ids=known_task_ids,
            network_required=network_required,
        )
        self._last = snapshot
        return snapshot

    async def _probe_network(self) -> NetworkReading | None:
        if self._network is None:
            return None
        try:
            return await asyncio.wait_for(
                self._network.check_online(self._timeout), timeout=self._timeout + 1.0
            )
        except TimeoutError:
            return NetworkReading(online=False, error=f"probe timed out after {self._timeout}s")

    async def _list_tmux(self) -> tuple[list[str] | None, str]:
        if self._tmux is None:
            return None, ""
        try:
            names = await asyncio.wait_for(self._tmux.list_sessions(), timeout=self._timeout)
        except TimeoutError:
            return None, f"timed out after {self._timeout}s"
        except HerdError as exc:
            log.debug("tmux list failed", error=str(exc))
            return None, str(exc)
        return names, ""


def _format_uptime(seconds: float) -> str:
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m{seconds % 60:02d}s"
    return f"{seconds // 3600}h{(seconds % 3600) // 60:02d}m"


def format_report(snapshot: DiagnosticsSnapshot) -> str:
    """Human-readable diagnostics report."""
    out: list[str] = [
        f"System Status: {snapshot.health.value.upper()}",
        f"Last Updated: {snapshot.timestamp.strftime('%H:%M:%S')}",
        "",
    ]
    if snapshot.errors:
        out.append("ERRORS:")
        out.extend(f"  ✗ {e}" for e in snapshot.errors)
        out.append("")
    if snapshot.warnings:
        out.append("WARNINGS:")
        out.extend(f"  ⚠ {w}" for w in snapshot.warnings)
        out.append("")

    out.append("NETWORK:")
    for net in snapshot.network:
        if not net.available:
            out.append("  Status: unknown")
            continue
        status = "online" if net.online else "offline"
        latency = f" ({net.latency_ms:.0f} ms)" if net.latency_ms is not None else ""
        out.append(f"  Status: {status}{latency}")
        if net.checked_at is not None:
            out.append(f"  Last Check: {net.checked_at.strftime('%H:%M:%S')}")
    out.append("")

    out.append(f"SESSIONS: {len(snapshot.sessions)} active")
    for s in snapshot.sessions:
        uptime = f" (uptime: {_format_uptime(s.uptime_s)})" if s.started_at else ""
        out.append(f"  {s.state.icon} {s.task_id}: {s.state.value}{uptime}")

    if snapshot.ports:
        out.append("")
        out.append(f"PORTS: {len(snapshot.ports)} allocated")
        for p in snapshot.ports:
            status = "CONFLICT" if p.conflict else "ok"
            out.append(f"  :{p.port} → {p.task_id} ({status})")

    if snapshot.worktrees:
        out.append("")
        out.append(f"WORKTREES: {len(snapshot.worktrees)} active")
        for wt in snapshot.worktrees:
            marker = "" if wt.exists else " (missing)"
            out.append(f"  {wt.task_id}: {wt.path}{marker}")

    return "\n".join(out)
