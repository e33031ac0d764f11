"""
GitHub data models for TaskGuard.

Defines Pydantic models for repository identity, issues, Projects v2 board
items and the status field of a board.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, computed_field

TASK_MARKER_PATTERN = re.compile(r"\*\*TaskGuard ID:\*\*\s*([A-Za-z0-9_-]+)")


class IssueState(str, Enum):
    """Open/closed state of an issue."""

    OPEN = "open"
    CLOSED = "closed"


class RepoInfo(BaseModel):
    """
    GitHub repository identity.

    Parsed from ``owner/repo`` or from a git remote URL (SSH or HTTPS format).

    Example:
        >>> RepoInfo.parse("octo/widgets")
        RepoInfo(owner='octo', repo='widgets')
        >>> RepoInfo.from_remote_url("git@github.com:octo/widgets.git")
        RepoInfo(owner='octo', repo='widgets')
    """

    owner: str = Field(..., description="Repository owner (user or organization)")
    repo: str = Field(..., description="Repository name")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def full_name(self) -> str:
        """Full repository name (owner/repo)."""
        return f"{self.owner}/{self.repo}"

    def issue_url(self, issue_number: int) -> str:
        return f"https://github.com/{self.full_name}/issues/{issue_number}"

    @classmethod
    def parse(cls, full_name: str) -> RepoInfo:
        """
        Parse ``owner/repo``.

        Raises:
            ValueError: If the string is not of the form owner/repo
        """
        owner, sep, repo = full_name.strip().partition("/")
        if not sep or not owner or not repo or "/" in repo:
            raise ValueError(f"Expected owner/repo, got '{full_name}'")
        return cls(owner=owner, repo=repo)

    @classmethod
    def from_remote_url(cls, remote_url: str) -> RepoInfo | None:
        """
        Parse repository info from a git remote URL.

        Handles formats:
        - git@github.com:user/repo.git
        - https://github.com/user/repo(.git)(/)

        Returns:
            RepoInfo or None if not a GitHub URL
        """
        if not remote_url:
            return None

        ssh_match = re.match(r"git@github\.com:([^/]+)/([^/]+?)(?:\.git)?$", remote_url)
        if ssh_match:
            return cls(owner=ssh_match.group(1), repo=ssh_match.group(2))

        https_match = re.match(r"https?://github\.com/([^/]+)/([^/]+?)(?:\.git)?/?$", remote_url)
        if https_match:
            return cls(owner=https_match.group(1), repo=https_match.group(2))

        return None


class RemoteIssue(BaseModel):
    """A GitHub issue as seen by the sync engine."""

    id: str = Field(..., description="GraphQL node id")
    number: int = Field(..., description="Issue number")
    title: str = Field(default="")
    body: str = Field(default="")
    state: IssueState = Field(default=IssueState.OPEN)
    url: str = Field(default="")

    @property
    def task_marker(self) -> str | None:
        """Task id embedded in the body by a previous push, if any."""
        match = TASK_MARKER_PATTERN.search(self.body)
        return match.group(1) if match else None

    @classmethod
    def from_graphql(cls, node: dict[str, Any]) -> RemoteIssue:
        """Create from a GraphQL ``Issue`` node (``state`` is OPEN/CLOSED)."""
        state = str(node.get("state") or "OPEN").lower()
        return cls(
            id=str(node["id"]),
            number=int(node["number"]),
            title=str(node.get("title") or ""),
            body=str(node.get("body") or ""),
            state=IssueState(state),
            url=str(node.get("url") or ""),
        )


class BoardItem(BaseModel):
    """An item on a Projects v2 board and its current status column."""

    item_id: str
    issue_id: str | None = None
    column_name: str | None = Field(
        default=None,
        description="Name of the status column, None if the item has no status",
    )


class StatusColumnOption(BaseModel):
    """One option (column) of a board's single-select Status field."""

    column_id: str
    column_name: str


class StatusField(BaseModel):
    """The Status field of a board with its column options."""

    field_id: str
    options: list[StatusColumnOption] = Field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        return [option.column_name for option in self.options]


def issue_title(task_id: str, title: str) -> str:
    """Title used for the issue that mirrors a task."""
    return f"[{task_id}] {title}".rstrip() if title else f"[{task_id}]"


def issue_body(task_id: str, content: str) -> str:
    """Body used for the issue that mirrors a task, carrying the task marker."""
    marker = f"**TaskGuard ID:** {task_id}"
    content = content.strip()
    return f"{marker}\n\n{content}" if content else marker
