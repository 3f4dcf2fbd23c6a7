"""Dependency phases: level tasks by their ``blocks`` dependencies.

Phase definition, over the given task set only:
    phase[t] = 0                              if t has no in-set blockers
    phase[t] = 1 + max(phase[b] for b in blockers)  otherwise

A blocker outside the set is treated as already satisfied. Tasks that sit on
a cycle (a task blocking itself included), or depend on one, never get a phase;
they are reported with ``UNRESOLVED`` instead.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict, deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from beadherd.protocol.models import Task

logger = logging.getLogger(__name__)

UNRESOLVED = -1


@dataclass(slots=True, frozen=True)
class PhaseAssignment:
    phases: dict[str, int] = field(default_factory=dict)
    blocked_by: dict[str, tuple[str, ...]] = field(default_factory=dict)
    unresolved: frozenset[str] = frozenset()
    max_phase: int = 0
    phase_counts: dict[int, int] = field(default_factory=dict)

    def phase_of(self, task_id: str) -> int | None:
        return self.phases.get(task_id)

    def is_blocked(self, task_id: str) -> bool:
        """True for tasks past phase 0 and for unresolved tasks."""
        phase = self.phases.get(task_id)
        return phase is not None and phase != 0

    def tasks_by_phase(self) -> list[tuple[int, list[str]]]:
        """``[(phase, sorted task IDs), ...]`` in phase order, unresolved excluded."""
        grouped: dict[int, list[str]] = defaultdict(list)
        for task_id, phase in self.phases.items():
            if phase != UNRESOLVED:
                grouped[phase].append(task_id)
        return [(phase, sorted(grouped[phase])) for phase in sorted(grouped)]


def compute_phases(task_ids: Iterable[str], tasks_by_id: Mapping[str, Task]) -> PhaseAssignment:
    """Level *task_ids* into phases using Kahn's algorithm."""
    members = set(task_ids)
    blockers: dict[str, tuple[str, ...]] = {}
    dependents: dict[str, list[str]] = defaultdict(list)
    for task_id in members:
        task = tasks_by_id.get(task_id)
        in_set = sorted(b for b in task.blocking_ids if b in members) if task else []
        blockers[task_id] = tuple(in_set)
        for blocker in in_set:
            dependents[blocker].append(task_id)

    in_degree = {task_id: len(blockers[task_id]) for task_id in members}
    phases: dict[str, int] = {}
    queue: deque[str] = deque(sorted(t for t, deg in in_degree.items() if deg == 0))
    for task_id in queue:
        phases[task_id] = 0

    while queue:
        task_id = queue.popleft()
        for child in dependents[task_id]:
            phases[child] = max(phases.get(child, 0), phases[task_id] + 1)
            in_degree[child] -= 1
            if in_degree[child] == 0:
                queue.append(child)

    unresolved = frozenset(t for t, deg in in_degree.items() if deg > 0)
    if unresolved:
        logger.warning("Dependency cycle: %d task(s) unresolved", len(unresolved))
    for task_id in unresolved:
        phases[task_id] = UNRESOLVED

    resolved = [p for p in phases.values() if p != UNRESOLVED]
    return PhaseAssignment(
        phases=phases,
        blocked_by=blockers,
        unresolved=unresolved,
        max_phase=max(resolved, default=0),
        phase_counts=dict(Counter(resolved)),
    )


def blocker_titles(task_id: str, assignment: PhaseAssignment, tasks_by_id: Mapping[str, Task]) -> list[str]:
    """Titles of the in-set tasks blocking *task_id*; unknown IDs fall back to the ID."""
    titles: list[str] = []
    for blocker in assignment.blocked_by.get(task_id, ()):
        task = tasks_by_id.get(blocker)
        titles.append(task.title if task and task.title else blocker)
    return titles


def children_of(parent_id: str, tasks: Iterable[Task]) -> set[str]:
    """IDs of tasks whose parent is *parent_id*."""
    return {t.id for t in tasks if t.parent_id == parent_id}
