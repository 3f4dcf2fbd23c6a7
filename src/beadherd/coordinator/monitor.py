"""Session state monitor: one polling loop per live session."""

from __future__ import annotations

import asyncio

from beadherd.adapters.tmux import TmuxClient
from beadherd.coordinator.event_bus import EventBus
from beadherd.coordinator.patterns import classify_output
from beadherd.coordinator.registry import SessionRegistry
from beadherd.errors import HerdError
from beadherd.protocol.events import SessionStateChanged
from beadherd.protocol.models import SessionState
from beadherd.utilities.logger import get_logger

log = get_logger(__name__)


class SessionMonitor:
    """Keeps each session's state current by classifying its pane output.

    Each attached task gets its own ``asyncio.Task`` that captures, classifies
    and sleeps in sequence, so a slow capture delays the next tick instead of
    overlapping it. State changes are published only when the registry
    accepts a different state, which makes consecutive duplicate events for a
    task impossible. A failed capture counts as an ``error`` observation.
    """

    def __init__(
        self,
        tmux: TmuxClient,
        registry: SessionRegistry,
        bus: EventBus,
        *,
        poll_interval: float = 0.5,
        capture_lines: int = 100,
        capture_timeout: float = 2.0,
    ) -> None:
        self._tmux = tmux
        self._registry = registry
        self._bus = bus
        self._poll_interval = poll_interval
        self._capture_lines = capture_lines
        self._capture_timeout = capture_timeout
        self._loops: dict[str, asyncio.Task[None]] = {}

    def attach(self, task_id: str) -> None:
        """Start watching *task_id*, replacing any loop already running for it."""
        previous = self._loops.pop(task_id, None)
        if previous is not None:
            previous.cancel()
        self._loops[task_id] = asyncio.create_task(
            self._watch(task_id), name=f"monitor:{task_id}"
        )
        log.debug("monitor attached", task_id=task_id)

    async def detach(self, task_id: str) -> None:
        """Stop watching *task_id*. Returns once the loop can no longer publish."""
        loop_task = self._loops.pop(task_id, None)
        if loop_task is None:
            return
        loop_task.cancel()
        await asyncio.gather(loop_task, return_exceptions=True)
        log.debug("monitor detached", task_id=task_id)

    async def stop_all(self) -> None:
        loops = list(self._loops.values())
        self._loops.clear()
        for loop_task in loops:
            loop_task.cancel()
        if loops:
            await asyncio.gather(*loops, return_exceptions=True)
        log.debug("all monitors stopped", count=len(loops))

    def is_watching(self, task_id: str) -> bool:
        loop_task = self._loops.get(task_id)
        return loop_task is not None and not loop_task.done()

    @property
    def watched(self) -> list[str]:
        return sorted(tid for tid, t in self._loops.items() if not t.done())

    async def poll_once(self, task_id: str) -> SessionState | None:
        """Run one capture-classify-publish cycle.

        Returns the new state when it changed, else ``None``.
        """
        session = self._registry.get(task_id)
        if session is None:
            return None

        try:
            output = await self._tmux.capture_pane(
                session.tmux_session or task_id,
                self._capture_lines,
                timeout=self._capture_timeout,
            )
        except (HerdError, OSError) as exc:
            log.debug("capture failed", task_id=task_id, error=str(exc))
            detected = SessionState.ERROR
        else:
            detected = classify_output(output, max_lines=self._capture_lines)

        previous = self._registry.get(task_id)
        if previous is None:
            return None
        updated = self._registry.observe(task_id, detected)
        if updated is None:
            return None

        self._bus.publish(
            SessionStateChanged(
                task_id=task_id,
                state=updated.state,
                previous=previous.state,
                source="monitor",
            )
        )
        log.info(
            "session state changed",
            task_id=task_id,
            previous=previous.state.value,
            state=updated.state.value,
        )
        return updated.state

    async def _watch(self, task_id: str) -> None:
        try:
            while task_id in self._registry:
                await self.poll_once(task_id)
                await asyncio.sleep(self._poll_interval)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("monitor loop failed", task_id=task_id)
        finally:
            if self._loops.get(task_id) is asyncio.current_task():
                del self._loops[task_id]
