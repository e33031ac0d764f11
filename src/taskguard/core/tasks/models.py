"""
Task data models for TaskGuard.

Defines the TaskRecord model consumed by the dependency graph, lifecycle
guard and sync engine, along with the task status enum and the validation
errors raised for malformed dependency data.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TASK_ID_PATTERN = re.compile(r"^[A-Za-z0-9_]+(?:-[A-Za-z0-9_]+)*-\d+$")


class TaskStatus(str, Enum):
    """Workflow status of a task."""

    TODO = "todo"
    DOING = "doing"
    REVIEW = "review"
    DONE = "done"
    BLOCKED = "blocked"

    @property
    def is_workable(self) -> bool:
        """Whether a task in this status can be picked up for work."""
        return self not in (TaskStatus.DONE, TaskStatus.BLOCKED)


class TaskValidationError(Exception):
    """Base class for dependency validation failures."""

    def __init__(self, message: str, task_id: str | None = None) -> None:
        super().__init__(message)
        self.task_id = task_id


class SelfDependencyError(TaskValidationError):
    """Raised when a task lists its own id as a dependency."""


class CycleError(TaskValidationError):
    """Raised when the dependency relation contains a cycle."""

    def __init__(self, cycles: list[list[str]]) -> None:
        paths = "; ".join(" -> ".join(cycle) for cycle in cycles)
        super().__init__(f"Circular dependencies detected: {paths}")
        self.cycles = cycles


class MissingDependencyError(TaskValidationError):
    """Raised when a task references ids that do not exist."""

    def __init__(self, missing: dict[str, tuple[str, ...]]) -> None:
        details = "; ".join(
            f"{task_id} -> {', '.join(unknown)}" for task_id, unknown in sorted(missing.items())
        )
        super().__init__(f"Unknown dependency ids: {details}")
        self.missing = missing


class TaskRecord(BaseModel):
    """
    A single work item as loaded from the task tree.

    Records are supplied by the task loading collaborator (see
    ``taskguard.core.tasks.store``); the core never parses task files itself.

    Example:
        >>> TaskRecord(id="backend-002", area="backend", dependencies=["backend-001"])
        TaskRecord(id='backend-002', ...)
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable task id in the form <area>-<NNN>")
    title: str = Field(default="", description="Short human-readable title")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Workflow status")
    dependencies: tuple[str, ...] = Field(
        default=(),
        description="Ids of tasks that must be done before this one can start",
    )
    area: str = Field(default="", description="Area (sub-directory) the task lives in")
    archived: bool = Field(default=False, description="Whether the task lives in the archive")
    last_modified: datetime | None = Field(
        default=None,
        description="Modification time of the backing file",
    )
    body: str = Field(default="", description="Markdown content below the front matter")

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not TASK_ID_PATTERN.match(value):
            raise ValueError(f"Task id '{value}' does not match <area>-<NNN>")
        return value

    @field_validator("dependencies", mode="before")
    @classmethod
    def _dedupe_dependencies(cls, value: object) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        seen: dict[str, None] = {}
        for dep in value:  # type: ignore[union-attr]
            dep_id = str(dep).strip()
            if dep_id:
                seen.setdefault(dep_id, None)
        return tuple(seen)

    @model_validator(mode="after")
    def _reject_self_dependency(self) -> TaskRecord:
        if self.id in self.dependencies:
            raise SelfDependencyError(
                f"Task {self.id} cannot depend on itself",
                task_id=self.id,
            )
        return self

    @property
    def is_done(self) -> bool:
        """Archived tasks count as done for dependency purposes."""
        return self.archived or self.status == TaskStatus.DONE

    @property
    def is_active(self) -> bool:
        """Active means neither archived nor done."""
        return not self.is_done

    def file_name(self) -> str:
        """File name of the backing Markdown file."""
        return f"{self.id}.md"
