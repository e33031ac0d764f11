"""
Task store protocol and Markdown-backed implementation.

The core consumes task records through the TaskStore protocol so that
lifecycle and sync logic never touch the file layout directly. The bundled
MarkdownTaskStore reads the default TaskGuard layout::

    tasks/<area>/<id>.md                      active tasks
    .taskguard/archive/<area>/<id>.md         archived tasks

Each file carries YAML front matter (id, title, status, dependencies, area)
followed by Markdown content.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import frontmatter
import yaml
from pydantic import ValidationError

from .models import TaskRecord, TaskStatus, TaskValidationError

logger = logging.getLogger(__name__)


class TaskStoreError(Exception):
    """Error raised by task store operations."""

    def __init__(self, message: str, task_id: str | None = None) -> None:
        super().__init__(message)
        self.task_id = task_id


@dataclass(frozen=True)
class TaskLoadError:
    """
    A task file that could not be turned into a TaskRecord.

    Whatever the front matter still yields is kept, so callers can tell
    which tasks the broken file would have depended on. ``dependencies`` is
    None when the front matter itself is unreadable.
    """

    path: Path
    message: str
    task_id: str | None = None
    dependencies: tuple[str, ...] | None = ()
    status: str | None = None
    archived: bool = False

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"

    @property
    def label(self) -> str:
        return self.task_id or self.path.name

    @property
    def may_be_active(self) -> bool:
        """False only when the file is archived or says it is done."""
        return not self.archived and self.status != TaskStatus.DONE.value


@runtime_checkable
class TaskStore(Protocol):
    """
    Protocol for task storage implementations.

    Stores are responsible for:
    - Loading the full record set (active and archived)
    - Reporting files they could not load in ``load_errors``
    - Writing status changes made by a pull sync
    - Moving tasks in and out of the archive atomically
    - Permanently deleting tasks approved by the lifecycle guard
    """

    load_errors: list[TaskLoadError]

    def load_tasks(self) -> list[TaskRecord]:
        """Load every task record, active and archived."""
        ...

    def set_status(self, task_id: str, status: TaskStatus) -> TaskRecord:
        """Persist a new status for a task and return the updated record."""
        ...

    def archive_task(self, task_id: str) -> Path:
        """Move a task into the archive. Returns the new location."""
        ...

    def restore_task(self, task_id: str) -> Path:
        """Move an archived task back to the active tree. Returns the new location."""
        ...

    def delete_task(self, task_id: str) -> None:
        """Permanently delete a task."""
        ...


class MarkdownTaskStore:
    """
    TaskStore backed by Markdown files with YAML front matter.

    Example:
        >>> store = MarkdownTaskStore(Path("."))
        >>> tasks = store.load_tasks()
        >>> store.archive_task("backend-001")
    """

    TASKS_DIR = "tasks"
    ARCHIVE_DIR = ".taskguard/archive"

    def __init__(
        self,
        project_dir: Path | None = None,
        tasks_dir: str = TASKS_DIR,
        archive_dir: str = ARCHIVE_DIR,
    ) -> None:
        self.project_dir = (project_dir or Path.cwd()).resolve()
        self.tasks_dir = self.project_dir / tasks_dir
        self.archive_dir = self.project_dir / archive_dir
        self._paths: dict[str, Path] = {}
        self.load_errors: list[TaskLoadError] = []

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_tasks(self) -> list[TaskRecord]:
        """
        Load all tasks from the active and archive trees.

        Files that fail to parse are skipped and recorded in ``load_errors``.
        Duplicate ids keep the first file found (active tree first).
        """
        self._paths = {}
        self.load_errors = []
        records: list[TaskRecord] = []

        for root, archived in ((self.tasks_dir, False), (self.archive_dir, True)):
            if not root.exists():
                continue
            for path in sorted(root.rglob("*.md")):
                try:
                    record = self._read_record(path, archived=archived)
                except (
                    ValueError,
                    ValidationError,
                    TaskValidationError,
                    OSError,
                    yaml.YAMLError,
                ) as e:
                    self.load_errors.append(_salvage(path, str(e), archived=archived))
                    logger.warning("Skipping unreadable task file %s: %s", path, e)
                    continue
                if record.id in self._paths:
                    message = f"duplicate task id {record.id} (also {self._paths[record.id]})"
                    self.load_errors.append(_salvage(path, message, archived=archived))
                    continue
                self._paths[record.id] = path
                records.append(record)

        return records

    def _read_record(self, path: Path, *, archived: bool) -> TaskRecord:
        post = frontmatter.load(path)
        meta: dict[str, Any] = dict(post.metadata)
        if "id" not in meta:
            raise ValueError("missing 'id' in front matter")

        area = meta.get("area")
        if not area and path.parent not in (self.tasks_dir, self.archive_dir):
            area = path.parent.name
        mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

        return TaskRecord(
            id=str(meta["id"]),
            title=str(meta.get("title") or ""),
            status=meta.get("status") or TaskStatus.TODO,
            dependencies=meta.get("dependencies") or [],
            area=str(area or ""),
            archived=archived,
            last_modified=mtime,
            body=post.content,
        )

    def path_for(self, task_id: str) -> Path:
        """Location of a task's file, loading the index on first use."""
        if not self._paths:
            self.load_tasks()
        try:
            return self._paths[task_id]
        except KeyError:
            raise TaskStoreError(f"Task {task_id} not found", task_id=task_id) from None

    def _is_archived_path(self, path: Path) -> bool:
        return self.archive_dir in path.parents

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_status(self, task_id: str, status: TaskStatus) -> TaskRecord:
        path = self.path_for(task_id)
        if self._is_archived_path(path):
            raise TaskStoreError(
                f"Task {task_id} is archived; restore it before changing its status",
                task_id=task_id,
            )

        post = frontmatter.load(path)
        post.metadata["status"] = status.value
        _write_atomic(path, frontmatter.dumps(post) + "\n")
        logger.debug("Set status of %s to %s", task_id, status.value)
        return self._read_record(path, archived=False)

    def archive_task(self, task_id: str) -> Path:
        path = self.path_for(task_id)
        if self._is_archived_path(path):
            raise TaskStoreError(f"Task {task_id} is already archived", task_id=task_id)

        target = self.archive_dir / path.relative_to(self.tasks_dir)
        self._move(task_id, path, target)
        return target

    def restore_task(self, task_id: str) -> Path:
        path = self.path_for(task_id)
        if not self._is_archived_path(path):
            raise TaskStoreError(f"Task {task_id} is not archived", task_id=task_id)

        target = self.tasks_dir / path.relative_to(self.archive_dir)
        self._move(task_id, path, target)
        return target

    def delete_task(self, task_id: str) -> None:
        path = self.path_for(task_id)
        try:
            path.unlink()
        except OSError as e:
            raise TaskStoreError(f"Failed to delete {task_id}: {e}", task_id=task_id) from e
        del self._paths[task_id]

        # Drop the area directory once it is empty
        parent = path.parent
        if parent not in (self.tasks_dir, self.archive_dir) and not any(parent.iterdir()):
            parent.rmdir()

    def _move(self, task_id: str, source: Path, target: Path) -> None:
        if target.exists():
            raise TaskStoreError(
                f"Cannot move {task_id}: {target} already exists",
                task_id=task_id,
            )
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            # Same filesystem rename, atomic per task
            os.replace(source, target)
        except OSError as e:
            raise TaskStoreError(f"Failed to move {task_id}: {e}", task_id=task_id) from e
        self._paths[task_id] = target
        logger.debug("Moved %s: %s -> %s", task_id, source, target)


def _salvage(path: Path, message: str, *, archived: bool) -> TaskLoadError:
    """Read what is still usable from the front matter of a rejected file."""
    try:
        meta = frontmatter.load(path).metadata
    except (ValueError, OSError, yaml.YAMLError):
        return TaskLoadError(path, message, dependencies=None, archived=archived)

    raw_deps = meta.get("dependencies") or []
    if isinstance(raw_deps, str):
        raw_deps = [raw_deps]
    dependencies = (
        tuple(str(dep).strip() for dep in raw_deps) if isinstance(raw_deps, list) else None
    )
    task_id = str(meta["id"]).strip() if meta.get("id") else None
    status = str(meta["status"]).strip().lower() if meta.get("status") else None
    return TaskLoadError(path, message, task_id, dependencies, status, archived)


def _write_atomic(path: Path, content: str) -> None:
    """Write *content* to *path* through a temp file and atomic rename."""
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".task_", suffix=".md.tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(temp_path, path)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
