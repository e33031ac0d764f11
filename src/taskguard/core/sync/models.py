"""
Data models for sync runs.

A run produces one TaskSyncReport per task plus run-level warnings. The CLI
renders them; tests assert on them directly.
"""

from __future__ import annotations

from collections import Counter
from enum import Enum

from pydantic import BaseModel, Field


class SyncMode(str, Enum):
    """Direction of a sync run."""

    PUSH = "push"
    PULL = "pull"
    BOTH = "both"

    @property
    def pushes(self) -> bool:
        return self in (SyncMode.PUSH, SyncMode.BOTH)

    @property
    def pulls(self) -> bool:
        return self in (SyncMode.PULL, SyncMode.BOTH)


class CompareState(str, Enum):
    """Which side of a mapped task drifted since the last sync."""

    IN_SYNC = "in_sync"
    LOCAL_NEWER = "local_newer"
    REMOTE_NEWER = "remote_newer"
    CONFLICT = "conflict"


class SyncOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    BLOCKED = "blocked"
    CONFLICT = "conflict"
    FAILED = "failed"


class TaskSyncReport(BaseModel):
    """Outcome line for one task."""

    task_id: str
    outcome: SyncOutcome
    message: str = ""
    issue_number: int | None = None
    state: CompareState | None = None
    warnings: list[str] = Field(default_factory=list)
    dry_run: bool = False


class SyncReport(BaseModel):
    """
    Result of a sync run.

    Example:
        >>> report = engine.run(SyncMode.PUSH)
        >>> report.counts[SyncOutcome.CREATED]
        3
        >>> report.has_failures
        False
    """

    mode: SyncMode
    dry_run: bool = False
    tasks: list[TaskSyncReport] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    untracked_issues: list[int] = Field(
        default_factory=list,
        description="Remote issue numbers with no local mapping",
    )

    @property
    def counts(self) -> Counter[SyncOutcome]:
        return Counter(line.outcome for line in self.tasks)

    @property
    def has_failures(self) -> bool:
        return any(line.outcome == SyncOutcome.FAILED for line in self.tasks)

    def get(self, task_id: str) -> TaskSyncReport | None:
        for line in self.tasks:
            if line.task_id == task_id:
                return line
        return None

    def summary(self) -> str:
        counts = self.counts
        parts = [f"{counts[o]} {o.value}" for o in SyncOutcome if counts[o]]
        text = ", ".join(parts) if parts else "nothing to do"
        return f"{text} (dry run)" if self.dry_run else text
