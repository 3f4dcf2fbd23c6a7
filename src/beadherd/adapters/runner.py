"""Async subprocess runner shared by the tmux, git and beads adapters."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from beadherd.errors import CommandTimeoutError, ExecError


class CommandRunner(Protocol):
    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: str | Path | None = None,
        timeout: float | None = None,
    ) -> str: ...


class ExecRunner:
    """Runs ``binary args...`` and returns stripped stdout.

    Non-zero exit raises ``ExecError``; exceeding *timeout* kills the process
    and raises ``CommandTimeoutError``. A missing binary is an ``ExecError``
    that is not retryable.
    """

    def __init__(self, binary: str, *, default_timeout: float = 10.0) -> None:
        self._binary = binary
        self._default_timeout = default_timeout

    async def run(
        self,
        args: Sequence[str],
        *,
        cwd: str | Path | None = None,
        timeout: float | None = None,
    ) -> str:
        limit = self._default_timeout if timeout is None else timeout
        try:
            process = await asyncio.create_subprocess_exec(
                self._binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
            )
        except FileNotFoundError as exc:
            raise ExecError(
                self._binary,
                args,
                message=f"{self._binary} not found on PATH",
                retryable=False,
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=limit)
        except TimeoutError:
            process.kill()
            await process.wait()
            raise CommandTimeoutError(self._binary, args, limit) from None

        if process.returncode != 0:
            raise ExecError(
                self._binary,
                args,
                returncode=process.returncode,
                stderr=stderr.decode("utf-8", errors="replace"),
                stdout=stdout.decode("utf-8", errors="replace"),
            )
        return stdout.decode("utf-8", errors="replace").strip()
