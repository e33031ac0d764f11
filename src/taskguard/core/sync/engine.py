"""
Bidirectional reconciliation between local tasks and a GitHub Projects board.

One run is sequential: discover the board's Status field and list remote
issues (read-only), then walk the tasks in id order. Each task either gets a
remote issue (unmapped), or is compared against its mapping baseline::

    Unmapped -> CreateRemote -> Mapped
    Mapped   -> CompareStatus -> IN_SYNC | LOCAL_NEWER | REMOTE_NEWER | CONFLICT

Per-task failures are reported and the run continues. A task file the store
could not parse gets a failed line of its own. The mapping store is
saved after every task whose mapping changed, so an interrupted run keeps
what it already did. Nothing is rolled back.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from taskguard.core.github.matcher import column_to_status, match_option
from taskguard.core.github.models import (
    IssueState,
    RemoteIssue,
    StatusField,
    issue_body,
    issue_title,
)
from taskguard.core.github.service import IssueService, ServiceError
from taskguard.core.mapping.models import IssueMapping
from taskguard.core.mapping.store import IssueMappingStore
from taskguard.core.sync.models import (
    CompareState,
    SyncMode,
    SyncOutcome,
    SyncReport,
    TaskSyncReport,
)
from taskguard.core.tasks.models import TaskRecord, TaskStatus
from taskguard.core.tasks.store import TaskStore, TaskStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DRY_RUN_ITEM_ID = "<dry-run>"


class SyncAbortedError(Exception):
    """The run failed before any task was processed; nothing was changed."""


class _StepFailed(Exception):
    """Internal: a mutating step failed after earlier steps succeeded."""


def _same_column(a: str | None, b: str | None) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


class _RunContext:
    """Read-only remote state gathered once at the start of a run."""

    def __init__(self, status_field: StatusField, issues: list[RemoteIssue]) -> None:
        self.status_field = status_field
        self.issues_by_number = {issue.number: issue for issue in issues}
        self.issues_by_marker: dict[str, RemoteIssue] = {}
        for issue in issues:
            marker = issue.task_marker
            if marker and marker not in self.issues_by_marker:
                self.issues_by_marker[marker] = issue
        self.adopted: set[int] = set()


class SyncEngine:
    """
    Reconcile local task statuses with issues on a GitHub Projects board.

    The engine does not load the mapping store itself: callers load it first
    so a corrupted file aborts before any remote call is made.

    Example:
        >>> mappings = IssueMappingStore.for_project(project_dir).load()
        >>> engine = SyncEngine(store, mappings, client, board_id=board_id, repo="octo/app")
        >>> report = engine.run(SyncMode.BOTH, dry_run=True)
    """

    def __init__(
        self,
        tasks: TaskStore,
        mappings: IssueMappingStore,
        service: IssueService,
        *,
        board_id: str,
        repo: str,
    ) -> None:
        self.tasks = tasks
        self.mappings = mappings
        self.service = service
        self.board_id = board_id
        self.repo = repo
        self._dry_run = False

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, mode: SyncMode, dry_run: bool = False) -> SyncReport:
        """
        Execute one sync run.

        Raises:
            SyncAbortedError: If the board's Status field or the issue list
                cannot be read. No mutation has happened at that point.
        """
        self._dry_run = dry_run
        report = SyncReport(mode=mode, dry_run=dry_run)

        records = sorted(self.tasks.load_tasks(), key=lambda t: t.id)
        load_errors = list(self.tasks.load_errors)
        known_ids = [t.id for t in records] + [e.task_id for e in load_errors if e.task_id]

        for orphan in self.mappings.orphans(known_ids):
            report.warnings.append(
                f"Mapping for {orphan.task_id} (issue #{orphan.remote_issue_number}) "
                "has no local task"
            )
        for number, task_ids in self.mappings.duplicate_issue_numbers().items():
            report.warnings.append(
                f"Issue #{number} is mapped to several tasks: {', '.join(task_ids)}"
            )

        context = self._discover()
        if not context.status_field.options:
            report.warnings.append("Board Status field has no columns; statuses will not be set")

        for task in records:
            line = self._sync_task(task, mode, context)
            line.dry_run = dry_run
            report.tasks.append(line)

        loaded = {t.id for t in records}
        for error in load_errors:
            if error.task_id in loaded:
                # Second copy of a task that did load
                report.warnings.append(f"Ignored task file {error}")
                continue
            mapping = self.mappings.get(error.task_id) if error.task_id else None
            report.tasks.append(
                TaskSyncReport(
                    task_id=error.label,
                    outcome=SyncOutcome.FAILED,
                    message=f"task file could not be parsed: {error.message}",
                    issue_number=mapping.remote_issue_number if mapping else None,
                    dry_run=dry_run,
                )
            )

        if mode.pulls:
            for number in sorted(context.issues_by_number):
                if number in context.adopted:
                    continue
                if self.mappings.find_by_remote_issue_number(number) is None:
                    report.untracked_issues.append(number)

        logger.info("Sync %s finished: %s", mode.value, report.summary())
        return report

    def _discover(self) -> _RunContext:
        try:
            status_field = self.service.get_status_column_options(self.board_id)
        except ServiceError as e:
            raise SyncAbortedError(f"Could not read the board's Status field: {e}") from e
        logger.debug("Board columns: %s", ", ".join(status_field.column_names))

        try:
            issues = self.service.list_issues(self.repo)
        except ServiceError as e:
            raise SyncAbortedError(f"Could not list issues of {self.repo}: {e}") from e

        return _RunContext(status_field, issues)

    def _sync_task(self, task: TaskRecord, mode: SyncMode, context: _RunContext) -> TaskSyncReport:
        mapping = self.mappings.get(task.id)
        try:
            if mapping is None:
                return self._sync_unmapped(task, mode, context)
            return self._sync_mapped(task, mapping, mode, context)
        except (ServiceError, TaskStoreError, _StepFailed) as e:
            logger.warning("Sync of %s failed: %s", task.id, e)
            return TaskSyncReport(
                task_id=task.id,
                outcome=SyncOutcome.FAILED,
                message=str(e),
                issue_number=mapping.remote_issue_number if mapping else None,
            )

    # ------------------------------------------------------------------
    # Unmapped tasks
    # ------------------------------------------------------------------

    def _sync_unmapped(
        self, task: TaskRecord, mode: SyncMode, context: _RunContext
    ) -> TaskSyncReport:
        if task.archived:
            return TaskSyncReport(
                task_id=task.id, outcome=SyncOutcome.SKIPPED, message="archived, never pushed"
            )
        if not mode.pushes:
            return TaskSyncReport(
                task_id=task.id, outcome=SyncOutcome.SKIPPED, message="not on GitHub yet"
            )

        existing = context.issues_by_marker.get(task.id)
        if existing is not None and self.mappings.find_by_remote_issue_number(existing.number):
            existing = None

        if existing is not None:
            issue = existing
            context.adopted.add(issue.number)
            message = "adopted existing issue"
            logger.info("Adopting issue #%d for %s", issue.number, task.id)
        else:
            issue = self._call(
                lambda: self.service.create_issue(
                    issue_title(task.id, task.title), issue_body(task.id, task.body)
                ),
                None,
            )
            message = "created issue"
            if issue is not None:
                logger.info("Created issue #%d for %s", issue.number, task.id)

        warnings: list[str] = []
        try:
            issue_id = issue.id if issue is not None else ""
            item_id = self._call(lambda: self.service.add_to_board(self.board_id, issue_id), None)
            column = self._place_in_column(task, item_id or DRY_RUN_ITEM_ID, context, warnings)

            current = issue.state if issue is not None else IssueState.OPEN
            self._align_issue_state(issue_id, current, task.status)
        except ServiceError as e:
            if issue is not None and existing is None:
                raise _StepFailed(
                    f"issue #{issue.number} was created but {e}; the next push adopts it"
                ) from e
            raise

        if issue is not None and item_id is not None:
            mapping = IssueMapping(
                task_id=task.id,
                remote_issue_id=issue.id,
                remote_issue_number=issue.number,
                board_item_id=item_id,
            )
            mapping.mark_synced(task.status, column)
            self._persist(mapping)

        return TaskSyncReport(
            task_id=task.id,
            outcome=SyncOutcome.CREATED,
            message=message,
            issue_number=issue.number if issue is not None else None,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Mapped tasks
    # ------------------------------------------------------------------

    def _sync_mapped(
        self,
        task: TaskRecord,
        mapping: IssueMapping,
        mode: SyncMode,
        context: _RunContext,
    ) -> TaskSyncReport:
        current_column: str | None = None
        if mapping.board_item_id is not None:
            current_column = self.service.get_board_item(mapping.board_item_id).column_name

        state, remote_status = self._compare(task, mapping, mode, current_column)
        line = TaskSyncReport(
            task_id=task.id,
            outcome=SyncOutcome.SKIPPED,
            issue_number=mapping.remote_issue_number,
            state=state,
        )

        if task.archived:
            return self._sync_archived(task, mapping, mode, context, line)

        if state == CompareState.IN_SYNC:
            line.message = "in sync"
            if task.status != mapping.last_synced_status or not _same_column(
                current_column, mapping.remote_column
            ):
                # Both sides moved to the same place; record the new baseline
                updated = mapping.model_copy(deep=True)
                updated.mark_synced(task.status, current_column)
                self._persist(updated)
            return line

        if state == CompareState.CONFLICT:
            if mode == SyncMode.BOTH:
                line.outcome = SyncOutcome.CONFLICT
                line.message = (
                    f"local is {task.status.value}, board is '{current_column}'; "
                    "resolve manually, then push or pull"
                )
                logger.warning("Conflict on %s: %s", task.id, line.message)
                return line
            line.warnings.append(
                f"board column also changed to '{current_column}'"
                if mode == SyncMode.PUSH
                else f"local status {task.status.value} also changed"
            )

        pushing = state == CompareState.LOCAL_NEWER or (
            state == CompareState.CONFLICT and mode == SyncMode.PUSH
        )
        if pushing:
            if not mode.pushes:
                line.message = f"local status {task.status.value} not pulled; run push"
                return line
            return self._push_update(task, mapping, context, current_column, line)

        if not mode.pulls:
            line.message = f"board column '{current_column}' changed; run pull"
            return line
        return self._pull_update(task, mapping, remote_status, current_column, line)

    def _compare(
        self,
        task: TaskRecord,
        mapping: IssueMapping,
        mode: SyncMode,
        current_column: str | None,
    ) -> tuple[CompareState, TaskStatus | None]:
        remote_status: TaskStatus | None = None
        if current_column is not None:
            resolution = column_to_status(current_column)
            remote_status = resolution.status

        if mapping.last_synced_status is None:
            # Mapping without a baseline (written by an older release)
            if remote_status == task.status:
                return CompareState.IN_SYNC, remote_status
            return (
                CompareState.REMOTE_NEWER if mode == SyncMode.PULL else CompareState.LOCAL_NEWER
            ), remote_status

        local_changed = task.status != mapping.last_synced_status
        remote_changed = current_column is not None and not _same_column(
            current_column, mapping.remote_column
        )

        if local_changed and remote_changed:
            if remote_status == task.status:
                return CompareState.IN_SYNC, remote_status
            return CompareState.CONFLICT, remote_status
        if local_changed:
            return CompareState.LOCAL_NEWER, remote_status
        if remote_changed:
            return CompareState.REMOTE_NEWER, remote_status
        return CompareState.IN_SYNC, remote_status

    def _push_update(
        self,
        task: TaskRecord,
        mapping: IssueMapping,
        context: _RunContext,
        current_column: str | None,
        line: TaskSyncReport,
    ) -> TaskSyncReport:
        updated = mapping.model_copy(deep=True)

        if updated.board_item_id is None:
            item_id = self._call(
                lambda: self.service.add_to_board(self.board_id, mapping.remote_issue_id), None
            )
            updated.board_item_id = item_id
        item_id = updated.board_item_id or DRY_RUN_ITEM_ID

        column = self._place_in_column(task, item_id, context, line.warnings)
        if column is None:
            column = current_column

        issue = context.issues_by_number.get(mapping.remote_issue_number)
        if issue is not None:
            current_state = issue.state
        else:
            was_done = mapping.last_synced_status == TaskStatus.DONE
            current_state = IssueState.CLOSED if was_done else IssueState.OPEN
        self._align_issue_state(mapping.remote_issue_id, current_state, task.status)

        updated.mark_synced(task.status, column)
        self._persist(updated)

        line.outcome = SyncOutcome.UPDATED
        line.message = f"board set to {task.status.value}"
        return line

    def _pull_update(
        self,
        task: TaskRecord,
        mapping: IssueMapping,
        remote_status: TaskStatus | None,
        current_column: str | None,
        line: TaskSyncReport,
    ) -> TaskSyncReport:
        if remote_status is None:
            line.message = "board item has no status"
            return line

        if current_column is not None and column_to_status(current_column).fallback:
            line.warnings.append(f"unrecognized column '{current_column}' treated as todo")

        updated = mapping.model_copy(deep=True)
        updated.mark_synced(remote_status, current_column)

        if remote_status == task.status:
            # Moved to another column with the same meaning; only the baseline changes
            self._persist(updated)
            line.message = "in sync (column renamed)"
            return line

        if not self._dry_run:
            self.tasks.set_status(task.id, remote_status)
            logger.info("Pulled %s: %s -> %s", task.id, task.status.value, remote_status.value)
        self._persist(updated)

        line.outcome = SyncOutcome.UPDATED
        line.message = f"local status set to {remote_status.value}"
        return line

    def _sync_archived(
        self,
        task: TaskRecord,
        mapping: IssueMapping,
        mode: SyncMode,
        context: _RunContext,
        line: TaskSyncReport,
    ) -> TaskSyncReport:
        """Archived tasks are never mutated locally."""
        updated = mapping.model_copy(deep=True)
        changed = False
        if not updated.archived:
            updated.archived = True
            changed = True

        issue = context.issues_by_number.get(mapping.remote_issue_number)

        if line.state in (CompareState.REMOTE_NEWER, CompareState.CONFLICT) and mode.pulls:
            line.outcome = SyncOutcome.BLOCKED
            line.message = "archived locally but changed on the board; restore it first"
        elif issue is not None and issue.state == IssueState.CLOSED:
            logger.info(
                "%s is archived and issue #%d is closed: keeping the archived record "
                "and leaving the issue closed",
                task.id,
                issue.number,
            )
            line.message = "archived; issue closed"
        elif mode.pushes and issue is not None:
            self._call(
                lambda: self.service.update_issue_state(mapping.remote_issue_id, IssueState.CLOSED),
                None,
            )
            line.outcome = SyncOutcome.UPDATED
            line.message = "closed issue of archived task"
        else:
            line.message = "archived"

        if changed:
            self._persist(updated)
        return line

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _place_in_column(
        self,
        task: TaskRecord,
        item_id: str,
        context: _RunContext,
        warnings: list[str],
    ) -> str | None:
        """Set the board column for *task*. Returns the column name, None if unmatched."""
        option = match_option(task.status, context.status_field.options)
        if option is None:
            warning = f"no board column matches status {task.status.value}; column not set"
            warnings.append(warning)
            logger.warning("%s: %s", task.id, warning)
            return None

        field_id = context.status_field.field_id
        column_id = option.column_id
        self._call(
            lambda: self.service.set_item_status(self.board_id, item_id, field_id, column_id),
            None,
        )
        return option.column_name

    def _align_issue_state(self, issue_id: str, current: IssueState, status: TaskStatus) -> None:
        wanted = IssueState.CLOSED if status == TaskStatus.DONE else IssueState.OPEN
        if current != wanted:
            self._call(lambda: self.service.update_issue_state(issue_id, wanted), None)

    def _call(self, func: Callable[[], T], dry_run_result: T) -> T:
        """Invoke a mutating service call, or skip it in dry-run mode."""
        if self._dry_run:
            return dry_run_result
        return func()

    def _persist(self, mapping: IssueMapping) -> None:
        if self._dry_run:
            return
        self.mappings.set(mapping)
        self.mappings.save()
