"""Beads task source: wraps the ``bd`` CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from beadherd.adapters.runner import CommandRunner, ExecRunner
from beadherd.errors import TaskSourceError
from beadherd.protocol.models import Task, TaskStatus
from beadherd.utilities.logger import get_logger
from beadherd.utilities.retry import with_retry

log = get_logger(__name__)


class BeadsClient:
    """Read-mostly client for the beads task tracker.

    Transient failures are retried a few times with short backoff; whatever
    still fails is raised to the caller, which retries on its next tick.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        *,
        binary: str = "bd",
        cwd: str | Path | None = None,
        timeout: float = 5.0,
        retry_attempts: int = 3,
    ) -> None:
        self._runner = runner or ExecRunner(binary, default_timeout=timeout)
        self._cwd = cwd
        self._timeout = timeout
        self._retry_attempts = max(retry_attempts, 1)

    async def list(self, timeout: float | None = None) -> list[Task]:
        return await self._query(["list", "--json"], op="list", timeout=timeout)

    async def ready(self, timeout: float | None = None) -> list[Task]:
        return await self._query(["ready", "--json"], op="ready", timeout=timeout)

    async def update_status(self, task_id: str, status: TaskStatus) -> None:
        log.debug("updating bead status", task_id=task_id, status=status.value)
        await self._runner.run(
            ["update", task_id, f"--status={status.value}"],
            cwd=self._cwd,
            timeout=self._timeout,
        )

    async def close(self, task_id: str, reason: str = "") -> None:
        args = ["close", task_id]
        if reason:
            args.append(f"--reason={reason}")
        await self._runner.run(args, cwd=self._cwd, timeout=self._timeout)

    async def _query(self, args: list[str], *, op: str, timeout: float | None) -> list[Task]:
        limit = self._timeout if timeout is None else timeout

        @with_retry(max_attempts=self._retry_attempts)
        async def _run() -> str:
            return await self._runner.run(args, cwd=self._cwd, timeout=limit)

        out = await _run()
        tasks = parse_tasks(out, op=op)
        log.debug("fetched beads", op=op, count=len(tasks))
        return tasks


def parse_tasks(payload: str, *, op: str = "list") -> list[Task]:
    if not payload.strip():
        return []
    try:
        raw: Any = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise TaskSourceError(op, f"failed to parse JSON: {exc}", retryable=False) from exc
    if isinstance(raw, dict):
        raw = raw.get("issues", raw.get("tasks", []))
    if not isinstance(raw, list):
        raise TaskSourceError(op, "expected a JSON array of issues", retryable=False)
    return [Task.from_dict(item) for item in raw if isinstance(item, dict) and "id" in item]
