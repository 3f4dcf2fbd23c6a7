"""Dev server port allocation."""

from __future__ import annotations

import threading

from beadherd.errors import NoPortsAvailableError, PortInUseError
from beadherd.utilities.logger import get_logger

log = get_logger(__name__)


class PortAllocator:
    """Hands out ports from ``[base_port, max_port]``, one per task.

    Allocation scans upward from ``base_port`` and returns the first port no
    other task holds, so released ports are reused lowest-first. The table is
    the only source of truth; the OS is not probed.
    """

    def __init__(self, base_port: int = 3000, max_port: int = 3100) -> None:
        if base_port > max_port:
            raise ValueError(f"base_port {base_port} is above max_port {max_port}")
        self._base_port = base_port
        self._max_port = max_port
        self._by_task: dict[str, int] = {}
        self._lock = threading.Lock()

    def allocate(self, task_id: str) -> int:
        """Return the task's port, allocating one if it has none."""
        with self._lock:
            existing = self._by_task.get(task_id)
            if existing is not None:
                return existing
            used = set(self._by_task.values())
            for port in range(self._base_port, self._max_port + 1):
                if port not in used:
                    self._by_task[task_id] = port
                    log.debug("port allocated", task_id=task_id, port=port)
                    return port
        raise NoPortsAvailableError(self._base_port, self._max_port)

    def reserve(self, task_id: str, port: int) -> int:
        """Record a port the task already uses, e.g. one found after a restart.

        The port need not lie in the allocation range. Raises PortInUseError
        if another task holds it, or if the task holds a different port.
        """
        with self._lock:
            for holder, held in self._by_task.items():
                if held == port and holder != task_id:
                    raise PortInUseError(port, holder)
            existing = self._by_task.get(task_id)
            if existing is not None and existing != port:
                raise PortInUseError(existing, task_id)
            self._by_task[task_id] = port
        log.debug("port reserved", task_id=task_id, port=port)
        return port

    def release(self, task_id: str) -> None:
        """Free the task's port. Releasing an unknown task is a no-op."""
        with self._lock:
            port = self._by_task.pop(task_id, None)
        if port is not None:
            log.debug("port released", task_id=task_id, port=port)

    def port_for(self, task_id: str) -> int | None:
        with self._lock:
            return self._by_task.get(task_id)

    def allocations(self) -> dict[str, int]:
        """Copy of the task ID -> port table."""
        with self._lock:
            return dict(self._by_task)

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_task)
