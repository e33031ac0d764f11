"""
Dependency graph for task availability and archive protection.

Provides a pure query object built from a snapshot of the full task set
(active and archived). Immutable after construction; callers build a fresh
graph for every operation instead of patching an existing one.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from .models import CycleError, MissingDependencyError, TaskRecord


class AvailabilityKind(str, Enum):
    """Outcome of an availability check."""

    AVAILABLE = "available"
    BLOCKED = "blocked"
    MISSING_DEPENDENCY = "missing_dependency"
    NOT_WORKABLE = "not_workable"


@dataclass(frozen=True)
class Availability:
    """Availability of one task, with the dependency ids that explain it."""

    task_id: str
    kind: AvailabilityKind
    unmet: tuple[str, ...] = ()
    unknown: tuple[str, ...] = ()

    @property
    def is_available(self) -> bool:
        return self.kind == AvailabilityKind.AVAILABLE


@dataclass
class GraphValidation:
    """Validation findings for a task set."""

    cycles: list[list[str]] = field(default_factory=list)
    missing: dict[str, tuple[str, ...]] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.cycles and not self.missing

    def raise_for_errors(self) -> None:
        """Raise the first category of error found, missing references first."""
        if self.missing:
            raise MissingDependencyError(self.missing)
        if self.cycles:
            raise CycleError(self.cycles)


class DependencyGraph:
    """Immutable dependency graph built from a snapshot of task records.

    The graph models two kinds of edges:

    * **forward edge** (``dependencies``): task A depends on task B  →  A cannot
      start until B is done.
    * **reverse edge** (``dependents``): B is referenced by A, so archiving or
      deleting B must consider A.

    Archived records are part of the snapshot and count as done.

    Example::

        graph = DependencyGraph(store.load_tasks())
        graph.compute_status("backend-002")
        graph.reverse_dependents("backend-001")
    """

    __slots__ = ("_tasks", "_forward", "_reverse", "_all_ids")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def __init__(self, tasks: list[TaskRecord]) -> None:
        self._tasks: dict[str, TaskRecord] = {t.id: t for t in tasks}
        self._all_ids: frozenset[str] = frozenset(self._tasks)

        # forward[A] = (B, C) means A depends on B and C (dangling refs kept)
        self._forward: dict[str, tuple[str, ...]] = {}
        # reverse[B] = {A} means A lists B as a dependency
        self._reverse: dict[str, set[str]] = {}

        for task in tasks:
            self._forward[task.id] = task.dependencies
            for dep_id in task.dependencies:
                self._reverse.setdefault(dep_id, set()).add(task.id)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._all_ids

    def __len__(self) -> int:
        return len(self._all_ids)

    def get(self, task_id: str) -> TaskRecord | None:
        return self._tasks.get(task_id)

    @property
    def task_ids(self) -> list[str]:
        return sorted(self._all_ids)

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def compute_status(self, task_id: str) -> Availability:
        """Compute whether *task_id* can be worked on right now.

        Unknown dependency ids win over unmet ones: a task with a dangling
        reference reports MISSING_DEPENDENCY even if other deps are unmet.

        Raises:
            MissingDependencyError: If *task_id* itself is not in the graph.
        """
        task = self._tasks.get(task_id)
        if task is None:
            raise MissingDependencyError({task_id: (task_id,)})

        deps = self._forward.get(task_id, ())
        unknown = tuple(dep for dep in deps if dep not in self._all_ids)
        if unknown:
            return Availability(task_id, AvailabilityKind.MISSING_DEPENDENCY, unknown=unknown)

        unmet = tuple(dep for dep in deps if not self._tasks[dep].is_done)

        if task.archived or not task.status.is_workable:
            return Availability(task_id, AvailabilityKind.NOT_WORKABLE, unmet=unmet)
        if unmet:
            return Availability(task_id, AvailabilityKind.BLOCKED, unmet=unmet)
        return Availability(task_id, AvailabilityKind.AVAILABLE)

    def available_tasks(self) -> list[str]:
        """Ids of tasks that can be started now, sorted."""
        return [tid for tid in self.task_ids if self.compute_status(tid).is_available]

    def blocked_tasks(self) -> dict[str, tuple[str, ...]]:
        """Workable tasks waiting on incomplete dependencies, with those dependencies."""
        blocked: dict[str, tuple[str, ...]] = {}
        for tid in self.task_ids:
            availability = self.compute_status(tid)
            if availability.kind == AvailabilityKind.BLOCKED:
                blocked[tid] = availability.unmet
        return blocked

    # ------------------------------------------------------------------
    # Reverse-dependency queries
    # ------------------------------------------------------------------

    def reverse_dependents(self, task_id: str) -> list[str]:
        """Return ids of tasks that list *task_id* as a dependency."""
        return sorted(self._reverse.get(task_id, set()))

    def active_dependents(self, task_id: str) -> list[str]:
        """Reverse dependents that are neither archived nor done."""
        return [
            dependent
            for dependent in self.reverse_dependents(task_id)
            if self._tasks[dependent].is_active
        ]

    def transitive_dependents(self, task_id: str) -> set[str]:
        """BFS through reverse edges to find every task downstream of *task_id*."""
        visited: set[str] = set()
        queue: deque[str] = deque([task_id])

        while queue:
            current = queue.popleft()
            for neighbour in self._reverse.get(current, set()):
                if neighbour not in visited and neighbour != task_id:
                    visited.add(neighbour)
                    queue.append(neighbour)

        return visited

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def missing_references(self) -> dict[str, tuple[str, ...]]:
        """Map each task with dangling dependency ids to those ids."""
        missing: dict[str, tuple[str, ...]] = {}
        for tid in self.task_ids:
            unknown = tuple(dep for dep in self._forward[tid] if dep not in self._all_ids)
            if unknown:
                missing[tid] = unknown
        return missing

    def detect_cycles(self) -> list[list[str]]:
        """Find dependency cycles using three-color DFS (white / gray / black).

        Each cycle is reported as the full path, starting and ending with the
        same id (``["a", "b", "a"]``). Traversal order is sorted, so results
        are deterministic. The walk keeps its own stack, so chain length is
        not bounded by the interpreter's recursion limit.
        """
        WHITE, GRAY, BLACK = 0, 1, 2  # noqa: N806
        color: dict[str, int] = {tid: WHITE for tid in self._all_ids}
        cycles: list[list[str]] = []

        for root in self.task_ids:
            if color[root] != WHITE:
                continue
            color[root] = GRAY
            path = [root]
            pending = [iter(sorted(self._forward.get(root, ())))]

            while pending:
                for dep in pending[-1]:
                    if dep not in color:
                        continue  # dangling ref, reported by missing_references
                    if color[dep] == GRAY:
                        cycles.append(path[path.index(dep) :] + [dep])
                    elif color[dep] == WHITE:
                        color[dep] = GRAY
                        path.append(dep)
                        pending.append(iter(sorted(self._forward.get(dep, ()))))
                        break
                else:
                    pending.pop()
                    color[path.pop()] = BLACK

        return cycles

    def validate(self) -> GraphValidation:
        """Collect cycles and missing references in one pass."""
        return GraphValidation(cycles=self.detect_cycles(), missing=self.missing_references())

    # ------------------------------------------------------------------
    # Aggregate stats
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict[str, int]:
        """Summary statistics: node_count, edge_count, archived_count."""
        return {
            "node_count": len(self._all_ids),
            "edge_count": sum(len(deps) for deps in self._forward.values()),
            "archived_count": sum(1 for t in self._tasks.values() if t.archived),
        }
