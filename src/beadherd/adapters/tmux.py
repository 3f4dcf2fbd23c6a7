"""tmux adapter: the session process driver."""

from __future__ import annotations

from collections.abc import Mapping

from beadherd.adapters.runner import CommandRunner, ExecRunner
from beadherd.errors import ExecError
from beadherd.utilities.logger import get_logger

log = get_logger(__name__)


class TmuxClient:
    """Creates, drives, inspects and kills detached tmux sessions."""

    def __init__(self, runner: CommandRunner | None = None, *, timeout: float = 10.0) -> None:
        self._runner = runner or ExecRunner("tmux", default_timeout=timeout)
        self._timeout = timeout

    async def new_session(
        self,
        name: str,
        workdir: str = "",
        *,
        shell: str = "",
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Start a detached session; *env* lands in the session environment."""
        args = ["new-session", "-d", "-s", name]
        if workdir:
            args.extend(["-c", workdir])
        for key, value in (env or {}).items():
            args.extend(["-e", f"{key}={value}"])
        if shell:
            args.append(shell)
        log.debug("creating tmux session", name=name, workdir=workdir)
        await self._runner.run(args, timeout=self._timeout)

    async def send_keys(self, name: str, text: str, *, enter: bool = True) -> None:
        args = ["send-keys", "-t", name, text]
        if enter:
            args.append("C-m")
        await self._runner.run(args, timeout=self._timeout)

    async def capture_pane(self, name: str, lines: int, *, timeout: float | None = None) -> str:
        """Return at most the last *lines* lines of the session's active pane."""
        out = await self._runner.run(
            ["capture-pane", "-t", name, "-p", "-S", f"-{lines}"],
            timeout=timeout or self._timeout,
        )
        tail = out.splitlines()[-lines:]
        return "\n".join(tail)

    async def kill_session(self, name: str) -> None:
        log.debug("killing tmux session", name=name)
        await self._runner.run(["kill-session", "-t", name], timeout=self._timeout)

    async def show_environment(self, name: str, key: str) -> str | None:
        """Value of *key* in the session environment, or ``None`` if unset."""
        try:
            out = await self._runner.run(["show-environment", "-t", name, key], timeout=self._timeout)
        except ExecError as exc:
            # Unknown variables and missing sessions both exit non-zero.
            if exc.returncode is None:
                raise
            return None
        line = out.strip()
        prefix = f"{key}="
        if not line.startswith(prefix):
            return None
        return line[len(prefix):]

    async def list_sessions(self) -> list[str]:
        try:
            out = await self._runner.run(
                ["list-sessions", "-F", "#{session_name}"],
                timeout=self._timeout,
            )
        except ExecError as exc:
            # tmux exits non-zero when no server is running, which means no sessions.
            if exc.returncode is None:
                raise
            return []
        return [line for line in out.splitlines() if line.strip()]
