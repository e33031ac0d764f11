"""
Archive protection for completed tasks.

A done task may leave the active tree only when no active task still lists
it as a dependency. Otherwise the dependent would lose the record it points
at and the dependency graph would silently change meaning.

The guard evaluates that rule over a fresh DependencyGraph for every
operation and applies it per task: one refused task never aborts the batch.
Task files the store could not parse still count: a done task stays put
while an unparsed, possibly active file lists it, or when an unparsed file
is too broken to tell what it lists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from taskguard.core.github.models import IssueState
from taskguard.core.github.service import IssueService, ServiceError
from taskguard.core.mapping.store import IssueMappingStore
from taskguard.core.tasks.graph import DependencyGraph
from taskguard.core.tasks.models import TaskStatus
from taskguard.core.tasks.store import TaskLoadError, TaskStore, TaskStoreError

logger = logging.getLogger(__name__)


class LifecycleViolation(Exception):
    """An archive, delete or restore request refused for one task."""

    def __init__(self, task_id: str, reason: str, dependents: list[str] | None = None) -> None:
        super().__init__(f"{task_id}: {reason}")
        self.task_id = task_id
        self.reason = reason
        self.dependents = dependents or []


class LifecycleAction(str, Enum):
    ARCHIVE = "archive"
    DELETE = "delete"
    RESTORE = "restore"


@dataclass
class ArchivePlan:
    """Partition of the non-archived done tasks."""

    archivable: list[str] = field(default_factory=list)
    blocked: dict[str, list[str]] = field(default_factory=dict)
    reasons: dict[str, str] = field(default_factory=dict)


@dataclass
class LifecycleOutcome:
    """Result of one task's archive/delete/restore.

    ``failed`` separates a store error from a refusal by the guard.
    """

    task_id: str
    action: LifecycleAction
    ok: bool
    message: str = ""
    path: Path | None = None
    warnings: list[str] = field(default_factory=list)
    dry_run: bool = False
    failed: bool = False


@dataclass
class LifecycleReport:
    action: LifecycleAction
    outcomes: list[LifecycleOutcome] = field(default_factory=list)
    load_errors: list[TaskLoadError] = field(default_factory=list)
    dry_run: bool = False

    @property
    def succeeded(self) -> list[LifecycleOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def refused(self) -> list[LifecycleOutcome]:
        return [o for o in self.outcomes if not o.ok and not o.failed]

    @property
    def failed(self) -> list[LifecycleOutcome]:
        return [o for o in self.outcomes if o.failed]

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


class LifecycleGuard:
    """
    Safe archive, clean and restore of tasks.

    The mapping store and issue service are optional. Without them the guard
    only moves files; with them it keeps mappings and remote issues in step.

    Example:
        >>> guard = LifecycleGuard(MarkdownTaskStore(project_dir))
        >>> guard.plan_archive().blocked
        {'backend-001': ['api-002']}
        >>> report = guard.archive(dry_run=True)
    """

    def __init__(
        self,
        tasks: TaskStore,
        mappings: IssueMappingStore | None = None,
        service: IssueService | None = None,
    ) -> None:
        self.tasks = tasks
        self.mappings = mappings
        self.service = service

    def _graph(self) -> DependencyGraph:
        return DependencyGraph(self.tasks.load_tasks())

    def _unparsed(self) -> list[TaskLoadError]:
        return [error for error in self.tasks.load_errors if error.may_be_active]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def dependents_of(self, task_id: str, graph: DependencyGraph) -> list[str]:
        """Active dependents of *task_id*, unparsed task files included."""
        dependents = graph.active_dependents(task_id)
        for error in self._unparsed():
            if error.dependencies and task_id in error.dependencies:
                dependents.append(f"{error.label} (unparsed)")
        return dependents

    def hold_reason(self, task_id: str, graph: DependencyGraph) -> str | None:
        """Why a done task has to stay in the active tree, None if nothing holds it."""
        dependents = self.dependents_of(task_id, graph)
        if dependents:
            return f"still required by active task(s): {', '.join(dependents)}"
        unreadable = [error.label for error in self._unparsed() if error.dependencies is None]
        if unreadable:
            return f"unreadable task file(s) may depend on it: {', '.join(unreadable)}"
        return None

    def is_safe_to_archive(self, task_id: str, graph: DependencyGraph | None = None) -> bool:
        """True when the task is done and no active task depends on it."""
        graph = graph or self._graph()
        task = graph.get(task_id)
        if task is None or task.status != TaskStatus.DONE:
            return False
        return self.hold_reason(task_id, graph) is None

    def plan_archive(self, graph: DependencyGraph | None = None) -> ArchivePlan:
        graph = graph or self._graph()
        plan = ArchivePlan()
        for task_id in graph.task_ids:
            task = graph.get(task_id)
            if task is None or task.archived or task.status != TaskStatus.DONE:
                continue
            reason = self.hold_reason(task_id, graph)
            if reason is None:
                plan.archivable.append(task_id)
            else:
                plan.blocked[task_id] = self.dependents_of(task_id, graph)
                plan.reasons[task_id] = reason
        return plan

    def check_archive(self, task_id: str, graph: DependencyGraph | None = None) -> None:
        """
        Raise if *task_id* may not leave the active tree.

        Raises:
            LifecycleViolation: If the task is unknown, archived, not done or
                still needed by an active dependent
        """
        graph = graph or self._graph()
        task = graph.get(task_id)
        if task is None:
            raise LifecycleViolation(task_id, "task not found")
        if task.archived:
            raise LifecycleViolation(task_id, "task is already archived")
        if task.status != TaskStatus.DONE:
            raise LifecycleViolation(task_id, f"task is {task.status.value}, not done")
        reason = self.hold_reason(task_id, graph)
        if reason is not None:
            raise LifecycleViolation(task_id, reason, self.dependents_of(task_id, graph))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def archive(self, dry_run: bool = False) -> LifecycleReport:
        """Archive every safe done task; blocked ones get a refusal line."""
        graph = self._graph()
        plan = self.plan_archive(graph)
        report = LifecycleReport(
            action=LifecycleAction.ARCHIVE,
            load_errors=list(self.tasks.load_errors),
            dry_run=dry_run,
        )
        mappings_changed = False

        for task_id, dependents in plan.blocked.items():
            violation = LifecycleViolation(task_id, plan.reasons[task_id], dependents)
            report.outcomes.append(
                self._refused(task_id, LifecycleAction.ARCHIVE, violation, dry_run)
            )

        for task_id in plan.archivable:
            outcome = LifecycleOutcome(
                task_id=task_id, action=LifecycleAction.ARCHIVE, ok=True, dry_run=dry_run
            )
            report.outcomes.append(outcome)
            if dry_run:
                outcome.message = "would archive"
                continue

            try:
                outcome.path = self.tasks.archive_task(task_id)
            except TaskStoreError as e:
                self._store_failed(outcome, e)
                continue
            outcome.message = "archived"
            logger.info("Archived %s to %s", task_id, outcome.path)

            mappings_changed |= self._sync_mapping(task_id, outcome, archived=True)

        if mappings_changed and self.mappings is not None:
            self.mappings.save()

        report.outcomes.sort(key=lambda o: o.task_id)
        return report

    def clean(self, force: bool = False, dry_run: bool = False) -> LifecycleReport:
        """
        Permanently delete done, non-archived tasks that are safe to archive.

        Tasks with a GitHub mapping are refused unless *force* is set. A
        forced delete keeps the mapping, which then shows up as an orphan.
        """
        graph = self._graph()
        plan = self.plan_archive(graph)
        report = LifecycleReport(
            action=LifecycleAction.DELETE,
            load_errors=list(self.tasks.load_errors),
            dry_run=dry_run,
        )

        for task_id, dependents in plan.blocked.items():
            violation = LifecycleViolation(task_id, plan.reasons[task_id], dependents)
            report.outcomes.append(
                self._refused(task_id, LifecycleAction.DELETE, violation, dry_run)
            )

        for task_id in plan.archivable:
            mapping = self.mappings.get(task_id) if self.mappings is not None else None
            if mapping is not None and not force:
                violation = LifecycleViolation(
                    task_id,
                    f"mapped to issue #{mapping.remote_issue_number}; archive it or pass --force",
                )
                report.outcomes.append(
                    self._refused(task_id, LifecycleAction.DELETE, violation, dry_run)
                )
                continue

            outcome = LifecycleOutcome(
                task_id=task_id, action=LifecycleAction.DELETE, ok=True, dry_run=dry_run
            )
            if mapping is not None:
                outcome.warnings.append(
                    f"mapping to issue #{mapping.remote_issue_number} left as orphan"
                )
            report.outcomes.append(outcome)
            if dry_run:
                outcome.message = "would delete"
                continue

            try:
                self.tasks.delete_task(task_id)
            except TaskStoreError as e:
                self._store_failed(outcome, e)
                continue
            outcome.message = "deleted"
            logger.info("Deleted %s", task_id)

        report.outcomes.sort(key=lambda o: o.task_id)
        return report

    def restore(self, task_id: str, dry_run: bool = False) -> LifecycleOutcome:
        """Move an archived task back to the active tree and reopen its issue."""
        graph = self._graph()
        task = graph.get(task_id)
        if task is None:
            violation = LifecycleViolation(task_id, "task not found")
            return self._refused(task_id, LifecycleAction.RESTORE, violation, dry_run)
        if not task.archived:
            violation = LifecycleViolation(task_id, "task is not archived")
            return self._refused(task_id, LifecycleAction.RESTORE, violation, dry_run)

        outcome = LifecycleOutcome(
            task_id=task_id, action=LifecycleAction.RESTORE, ok=True, dry_run=dry_run
        )
        if dry_run:
            outcome.message = "would restore"
            return outcome

        try:
            outcome.path = self.tasks.restore_task(task_id)
        except TaskStoreError as e:
            self._store_failed(outcome, e)
            return outcome
        outcome.message = "restored"
        logger.info("Restored %s to %s", task_id, outcome.path)

        if self._sync_mapping(task_id, outcome, archived=False) and self.mappings is not None:
            self.mappings.save()
        return outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _sync_mapping(self, task_id: str, outcome: LifecycleOutcome, *, archived: bool) -> bool:
        """Mirror the archived flag on the mapping and the issue state remotely.

        Returns True when the mapping store changed.
        """
        if self.mappings is None:
            return False
        mapping = self.mappings.get(task_id)
        if mapping is None:
            return False

        if archived:
            self.mappings.mark_archived(task_id)
        else:
            self.mappings.mark_unarchived(task_id)

        if self.service is not None:
            state = IssueState.CLOSED if archived else IssueState.OPEN
            try:
                self.service.update_issue_state(mapping.remote_issue_id, state)
            except ServiceError as e:
                # The local move already happened; the issue catches up on the next sync
                verb = "close" if archived else "reopen"
                warning = f"could not {verb} issue #{mapping.remote_issue_number}: {e}"
                outcome.warnings.append(warning)
                logger.warning("%s: %s", task_id, warning)
        return True

    @staticmethod
    def _store_failed(outcome: LifecycleOutcome, error: TaskStoreError) -> None:
        outcome.ok = False
        outcome.failed = True
        outcome.message = str(error)
        logger.warning("%s of %s failed: %s", outcome.action.value, outcome.task_id, error)

    @staticmethod
    def _refused(
        task_id: str,
        action: LifecycleAction,
        violation: LifecycleViolation,
        dry_run: bool,
    ) -> LifecycleOutcome:
        logger.info("Refused to %s %s: %s", action.value, task_id, violation.reason)
        return LifecycleOutcome(
            task_id=task_id,
            action=action,
            ok=False,
            message=violation.reason,
            dry_run=dry_run,
        )
