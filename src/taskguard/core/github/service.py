"""
Issue service protocol and error taxonomy.

The sync engine and lifecycle guard only talk to the remote tracker through
the IssueService protocol. GitHubClient is the production implementation;
tests use in-memory fakes.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from taskguard.core.github.models import (
    BoardItem,
    IssueState,
    RemoteIssue,
    StatusField,
)


class ServiceError(Exception):
    """Error from an issue service call."""

    def __init__(self, message: str, *, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class TransientServiceError(ServiceError):
    """Network failure, timeout, rate limit or 5xx. Safe to retry."""


class PermanentServiceError(ServiceError):
    """Authentication, permission or not-found failure. Never retried."""


@runtime_checkable
class IssueService(Protocol):
    """
    Protocol for remote issue tracker implementations.

    All calls are blocking request/response. Implementations raise
    TransientServiceError or PermanentServiceError; anything else is a bug.
    """

    def create_issue(self, title: str, body: str) -> RemoteIssue:
        """Create an issue in the configured repository."""
        ...

    def update_issue_state(self, issue_id: str, state: IssueState) -> None:
        """Open or close an issue."""
        ...

    def add_to_board(self, board_id: str, issue_id: str) -> str:
        """Add an issue to a board. Returns the board item id."""
        ...

    def get_status_column_options(self, board_id: str) -> StatusField:
        """Discover the board's Status field and its column options."""
        ...

    def set_item_status(self, board_id: str, item_id: str, field_id: str, column_id: str) -> None:
        """Move a board item to a status column."""
        ...

    def list_issues(self, repo: str) -> list[RemoteIssue]:
        """List every issue (open and closed) of ``owner/repo``."""
        ...

    def get_board_item(self, item_id: str) -> BoardItem:
        """Fetch a board item with its current status column."""
        ...
