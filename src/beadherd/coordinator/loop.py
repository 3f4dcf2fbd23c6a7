"""Background refresh loop: reloads tasks and collects diagnostics."""

from __future__ import annotations

import asyncio
import time

from beadherd.adapters.beads import BeadsClient
from beadherd.coordinator.diagnostics import DiagnosticsAggregator
from beadherd.coordinator.event_bus import EventBus
from beadherd.errors import HerdError
from beadherd.protocol.events import (
    DiagnosticsCollected,
    NetworkStatusChanged,
    TaskSourceFailed,
    TasksLoaded,
)
from beadherd.protocol.models import NetworkReading, Task
from beadherd.utilities.logger import get_logger

log = get_logger(__name__)


class RefreshLoop:
    """Periodic timer for the slow, shared inputs.

    A failed task load is published as :class:`TaskSourceFailed` and retried
    on the next tick; nothing here raises into the loop.
    """

    def __init__(
        self,
        beads: BeadsClient,
        aggregator: DiagnosticsAggregator,
        bus: EventBus,
        *,
        interval: float = 5.0,
        list_timeout: float = 5.0,
        diagnostics_interval: float | None = None,
    ) -> None:
        self._beads = beads
        self._aggregator = aggregator
        self._bus = bus
        self._interval = interval
        self._list_timeout = list_timeout
        self._diagnostics_interval = interval if diagnostics_interval is None else diagnostics_interval
        self._task: asyncio.Task[None] | None = None
        self._tasks: tuple[Task, ...] = ()
        self._online: bool | None = None

    @property
    def tasks(self) -> tuple[Task, ...]:
        """Tasks from the last successful load."""
        return self._tasks

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="refresh-loop")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def tick(self, *, diagnostics: bool = True) -> None:
        """Run one load-then-collect cycle."""
        await self._load_tasks()
        if not diagnostics:
            return
        snapshot = await self._aggregator.refresh(known_task_ids={t.id for t in self._tasks})
        self._bus.publish(DiagnosticsCollected(snapshot=snapshot))

        for net in snapshot.network:
            if not net.available or net.online == self._online:
                continue
            self._online = net.online
            reading = NetworkReading(
                online=net.online,
                latency_ms=net.latency_ms,
                checked_at=net.checked_at or snapshot.timestamp,
                error=net.error,
            )
            self._bus.publish(NetworkStatusChanged(reading=reading))
            log.info("network status changed", online=net.online)

    async def _load_tasks(self) -> None:
        try:
            tasks = await self._beads.list(timeout=self._list_timeout)
        except HerdError as exc:
            log.warning("task load failed", error=str(exc))
            self._bus.publish(TaskSourceFailed(error=str(exc)))
            return
        self._tasks = tuple(tasks)
        self._bus.publish(TasksLoaded(tasks=self._tasks))

    async def _run(self) -> None:
        last_collect: float | None = None
        while True:
            now = time.monotonic()
            due = last_collect is None or now - last_collect >= self._diagnostics_interval
            try:
                await self.tick(diagnostics=due)
                if due:
                    last_collect = now
            except asyncio.CancelledError:
                raise
            except Exception:
                log.exception("refresh tick failed")
            await asyncio.sleep(self._interval)
