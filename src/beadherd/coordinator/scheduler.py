"""Startable-task selection from phases and live sessions."""

from __future__ import annotations

from collections.abc import Container, Iterable, Mapping

from beadherd.coordinator.phases import PhaseAssignment
from beadherd.protocol.models import Task


def startable_tasks(
    tasks: Iterable[Task],
    assignment: PhaseAssignment,
    active: Container[str],
) -> list[Task]:
    """Return tasks that can get a session right now.

    A task is startable when it is not done, has no active session, is not
    stuck behind a dependency cycle, and every in-set blocker is done. Tasks
    the assignment does not cover are judged on their own status alone.
    Results are ordered by ``(priority, id)``.
    """
    pool = list(tasks)
    by_id: Mapping[str, Task] = {t.id: t for t in pool}
    ready: list[Task] = []
    for task in pool:
        if task.is_done or task.id in active or task.id in assignment.unresolved:
            continue
        blockers = assignment.blocked_by.get(task.id, ())
        if all(by_id[b].is_done for b in blockers if b in by_id):
            ready.append(task)
    return sorted(ready, key=lambda t: (t.priority, t.id))
