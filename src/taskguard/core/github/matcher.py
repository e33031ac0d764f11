"""
Translation between local task statuses and board status columns.

GitHub Projects boards are user-configured, so column names are arbitrary
("In progress", "WIP - in progress", "Backlog"...). Everything here is a
pure function of its arguments; the only side effect is a log line when the
reverse lookup falls back to todo.

Forward lookup (status → column) tries each status's exact variants in
priority order, case-insensitively, then falls back to the first column
containing one of the status's patterns. No match is reported explicitly,
never replaced by a guess.

Reverse lookup (column → status) uses independent containment rules.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from taskguard.core.github.models import StatusColumnOption
from taskguard.core.tasks.models import TaskStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusVariants:
    """Accepted column names for one status, highest priority first."""

    exact: tuple[str, ...]
    patterns: tuple[str, ...]


STATUS_VARIANTS: dict[TaskStatus, StatusVariants] = {
    TaskStatus.TODO: StatusVariants(
        exact=("Backlog", "Todo", "To Do", "Ready"),
        patterns=("todo", "to do", "backlog", "ready"),
    ),
    TaskStatus.DOING: StatusVariants(
        exact=("In progress", "Doing", "Working"),
        patterns=("progress", "doing", "working"),
    ),
    TaskStatus.REVIEW: StatusVariants(
        exact=("In review", "Review", "Reviewing"),
        patterns=("review",),
    ),
    TaskStatus.DONE: StatusVariants(
        exact=("Done", "Completed", "Complete"),
        patterns=("done", "complete", "closed"),
    ),
    TaskStatus.BLOCKED: StatusVariants(
        # Boards without a Blocked column park blocked work in the backlog
        exact=("Blocked", "Backlog"),
        patterns=("blocked",),
    ),
}

# Checked in order; first rule with a matching pattern wins
COLUMN_RULES: tuple[tuple[TaskStatus, tuple[str, ...]], ...] = (
    (TaskStatus.DONE, ("done", "complete", "closed")),
    (TaskStatus.REVIEW, ("review",)),
    (TaskStatus.DOING, ("progress", "doing", "working")),
    (TaskStatus.BLOCKED, ("blocked",)),
    (TaskStatus.TODO, ("todo", "to do", "backlog", "ready")),
)


@dataclass(frozen=True)
class ColumnMatch:
    """Result of a forward lookup: a column name, or an explicit no-match."""

    status: TaskStatus
    column_name: str | None
    exact: bool = False

    @property
    def matched(self) -> bool:
        return self.column_name is not None


@dataclass(frozen=True)
class StatusResolution:
    """Result of a reverse lookup. ``fallback`` is set when no rule matched."""

    status: TaskStatus
    fallback: bool = False


def match_column(status: TaskStatus, column_names: Sequence[str]) -> ColumnMatch:
    """
    Pick the board column for a local status.

    Args:
        status: Local task status
        column_names: Column names available on the board, in board order

    Returns:
        ColumnMatch with the chosen column name (original casing) or None

    Example:
        >>> match_column(TaskStatus.DOING, ["Backlog", "In progress", "Done"]).column_name
        'In progress'
        >>> match_column(TaskStatus.REVIEW, ["Backlog", "In progress", "Done"]).matched
        False
    """
    variants = STATUS_VARIANTS[status]

    by_lower: dict[str, str] = {}
    for name in column_names:
        by_lower.setdefault(name.strip().lower(), name)

    for candidate in variants.exact:
        found = by_lower.get(candidate.lower())
        if found is not None:
            return ColumnMatch(status=status, column_name=found, exact=True)

    for name in column_names:
        lowered = name.lower()
        if any(pattern in lowered for pattern in variants.patterns):
            return ColumnMatch(status=status, column_name=name)

    return ColumnMatch(status=status, column_name=None)


def match_option(
    status: TaskStatus, options: Sequence[StatusColumnOption]
) -> StatusColumnOption | None:
    """Resolve a status to one of the board's column options, or None."""
    result = match_column(status, [option.column_name for option in options])
    if not result.matched:
        return None
    for option in options:
        if option.column_name == result.column_name:
            return option
    return None


def column_to_status(column_name: str) -> StatusResolution:
    """
    Map a board column name back to a local status.

    Unknown columns resolve to todo with ``fallback=True`` and a warning.

    Example:
        >>> column_to_status("In Progress").status
        <TaskStatus.DOING: 'doing'>
        >>> column_to_status("Icebox")
        StatusResolution(status=<TaskStatus.TODO: 'todo'>, fallback=True)
    """
    lowered = column_name.lower()
    for status, patterns in COLUMN_RULES:
        if any(pattern in lowered for pattern in patterns):
            return StatusResolution(status=status)

    logger.warning("Unrecognized board column '%s'; treating it as todo", column_name)
    return StatusResolution(status=TaskStatus.TODO, fallback=True)
