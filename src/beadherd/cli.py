"""CLI entrypoint for beadherd."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import click

from beadherd.config.loader import find_config, load_config
from beadherd.coordinator.diagnostics import format_report
from beadherd.coordinator.phases import UNRESOLVED, blocker_titles, children_of, compute_phases
from beadherd.coordinator.scheduler import startable_tasks
from beadherd.errors import HerdError
from beadherd.herd import Herd, build_herd
from beadherd.protocol.models import HealthStatus, TaskStatus
from beadherd.utilities.logger import get_logger, setup_logging

log = get_logger(__name__)

T = TypeVar("T")


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: nearest .beadherd.yaml)",
)
@click.option("--debug", "debug_flag", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, debug_flag: bool) -> None:
    """Run parallel coding agents, one per bead, each in its own worktree."""
    path = config_path or find_config(Path.cwd())
    try:
        cfg = load_config(path)
    except HerdError as exc:
        raise click.ClickException(str(exc)) from exc
    debug = debug_flag or cfg.debug
    setup_logging(debug=debug)
    ctx.meta["debug"] = debug
    repo_dir = path.parent if path.exists() else Path.cwd()
    ctx.obj = build_herd(cfg, repo_dir)


def _run(herd: Herd, fn: Callable[[Herd], Awaitable[T]]) -> T:
    """Restore live sessions, run *fn*, then stop every monitor loop."""

    async def _main() -> T:
        try:
            await herd.manager.restore()
            return await fn(herd)
        finally:
            await herd.manager.shutdown()

    try:
        return asyncio.run(_main())
    except HerdError as exc:
        message = "\n".join([str(exc), *getattr(exc, "__notes__", [])])
        raise click.ClickException(message) from exc


@main.command("start")
@click.argument("task_id")
@click.option("--base-branch", default=None, help="Branch to fork the worktree from")
@click.option("--dev-server", is_flag=True, help="Reserve a dev server port")
@click.option("--agent-command", default=None, help="Override the agent launch command")
@click.pass_obj
def start_command(
    herd: Herd,
    task_id: str,
    base_branch: str | None,
    dev_server: bool,
    agent_command: str | None,
) -> None:
    """Start an agent session for TASK_ID."""

    async def _start(h: Herd) -> tuple[Any, bool]:
        session = await h.manager.start(
            task_id,
            base_branch=base_branch,
            with_dev_server=dev_server,
            agent_command=agent_command,
        )
        try:
            await h.beads.update_status(task_id, TaskStatus.IN_PROGRESS)
        except HerdError as exc:
            log.warning("bead status not updated", task_id=task_id, error=str(exc))
            return session, False
        return session, True

    session, claimed = _run(herd, _start)
    click.echo(f"{session.task_id}: {session.state.value} in {session.worktree_path}")
    if not claimed:
        click.echo(f"  warning: could not mark {task_id} in_progress in beads")
    if session.dev_server_port is not None:
        click.echo(f"  dev server port: {session.dev_server_port}")
    click.echo(f"  attach with: tmux attach -t {session.tmux_session}")


@main.command("stop")
@click.argument("task_id")
@click.option("--delete-worktree", is_flag=True, help="Also remove the worktree and its branch")
@click.option("--force", is_flag=True, help="Remove the worktree even with local changes")
@click.option("--close", "close_bead", is_flag=True, help="Close the bead in beads")
@click.option("--reason", default="", help="Reason recorded when closing the bead")
@click.pass_obj
def stop_command(
    herd: Herd,
    task_id: str,
    delete_worktree: bool,
    force: bool,
    close_bead: bool,
    reason: str,
) -> None:
    """Stop the session for TASK_ID. The worktree is kept unless asked."""

    async def _stop(h: Herd) -> bool:
        stopped = await h.manager.stop(task_id)
        if delete_worktree:
            await h.manager.delete_worktree(task_id, force=force)
        if close_bead:
            await h.beads.close(task_id, reason)
        return stopped is not None

    stopped = _run(herd, _stop)
    click.echo(f"{task_id}: stopped" if stopped else f"{task_id}: no active session")
    if delete_worktree:
        click.echo(f"{task_id}: worktree removed")
    if close_bead:
        click.echo(f"{task_id}: bead closed")


@main.command("ready")
@click.pass_obj
def ready_command(herd: Herd) -> None:
    """List beads with no open blockers, as reported by ``bd ready``."""

    async def _ready(h: Herd) -> Any:
        return await h.beads.ready()

    tasks = _run(herd, _ready)
    if not tasks:
        click.echo("No ready tasks")
        return
    active = set(herd.registry.snapshot())
    for t in sorted(tasks, key=lambda t: (t.priority, t.id)):
        marker = "*" if t.id in active else " "
        click.echo(f"{marker} {t.id:<12} P{t.priority}  {t.title}")


@main.command("sessions")
@click.pass_obj
def sessions_command(herd: Herd) -> None:
    """List live sessions."""

    async def _sessions(h: Herd) -> list[Any]:
        for task_id in h.registry.snapshot():
            await h.monitor.poll_once(task_id)
        return sorted(h.registry.snapshot().values(), key=lambda s: s.task_id)

    sessions = _run(herd, _sessions)
    if not sessions:
        click.echo("No active sessions")
        return
    for s in sessions:
        click.echo(f"{s.state.icon} {s.task_id:<12} {s.state.value:<8} {s.worktree_path}")


@main.command("phases")
@click.option("--parent", "parent_id", default=None, help="Only the children of this epic")
@click.pass_obj
def phases_command(herd: Herd, parent_id: str | None) -> None:
    """Show dependency phases and the tasks that can start now."""

    async def _load(h: Herd) -> Any:
        return await h.beads.list()

    tasks = _run(herd, _load)
    if parent_id:
        ids = children_of(parent_id, tasks)
    else:
        ids = {t.id for t in tasks if not t.is_done}
    by_id = {t.id: t for t in tasks}
    assignment = compute_phases(ids, by_id)

    for phase, task_ids in assignment.tasks_by_phase():
        click.echo(f"Phase {phase}:")
        for tid in task_ids:
            blockers = blocker_titles(tid, assignment, by_id)
            suffix = f"  (after: {', '.join(blockers)})" if blockers else ""
            click.echo(f"  {tid}  {by_id[tid].title}{suffix}")
    if assignment.unresolved:
        click.echo("Unresolved (dependency cycle):")
        for tid in sorted(t for t, p in assignment.phases.items() if p == UNRESOLVED):
            click.echo(f"  {tid}  {by_id[tid].title}")

    active = set(herd.registry.snapshot())
    ready = startable_tasks([by_id[t] for t in ids], assignment, active)
    click.echo("Startable: " + (", ".join(t.id for t in ready) if ready else "none"))


@main.command("doctor")
@click.option("--network-required", is_flag=True, help="Treat an offline network as critical")
@click.pass_obj
def doctor_command(herd: Herd, network_required: bool) -> None:
    """Print a diagnostics report. Exits 1 when health is critical."""

    async def _doctor(h: Herd) -> Any:
        try:
            known = {t.id for t in await h.beads.list()}
        except HerdError as exc:
            log.warning("task list unavailable", error=str(exc))
            known = set()
        return await h.aggregator.refresh(known_task_ids=known, network_required=network_required)

    snapshot = _run(herd, _doctor)
    click.echo(format_report(snapshot))
    raise SystemExit(1 if snapshot.health == HealthStatus.CRITICAL else 0)


@main.command("sync")
@click.argument("task_id")
@click.option("--base-branch", default=None, help="Branch to merge from (default: config)")
@click.pass_obj
def sync_command(herd: Herd, task_id: str, base_branch: str | None) -> None:
    """Merge the latest base branch into TASK_ID's worktree."""

    async def _sync(h: Herd) -> Any:
        reading = await h.network.check_online()
        if not reading.online:
            raise click.ClickException(f"Network is offline: {reading.error or 'unreachable'}")
        return await h.manager.sync_with_base(task_id, base_branch=base_branch)

    result = _run(herd, _sync)
    if result.has_conflicts:
        click.echo(f"{task_id}: merge aborted, conflicts in:")
        for name in result.conflict_files:
            click.echo(f"  {name}")
        raise SystemExit(1)
    click.echo(f"{task_id}: up to date with base")


@main.command("board")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where logs go while the board owns the terminal (default: .beadherd/board.log)",
)
@click.pass_context
def board_command(ctx: click.Context, log_file: Path | None) -> None:
    """Open the live sessions board."""
    from beadherd.tui.app import BoardApp

    herd: Herd = ctx.obj
    target = log_file or herd.repo_dir / ".beadherd" / "board.log"
    setup_logging(debug=ctx.meta.get("debug", False), log_file=target)
    BoardApp(herd.bus, manager=herd.manager, refresh=herd.refresh).run()


if __name__ == "__main__":
    main()
