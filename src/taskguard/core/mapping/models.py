"""
Data models for the issue mapping store.

Defines the Pydantic model persisted in `.taskguard/github-mapping.json`
for every task that has been pushed to GitHub.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from taskguard.core.tasks.models import TaskStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IssueMapping(BaseModel):
    """
    Correspondence between a local task and its GitHub issue / board item.

    ``last_synced_status`` and ``remote_column`` record both sides as they
    were after the last successful sync, so the next run can tell which side
    drifted.

    Example:
        >>> mapping = IssueMapping(
        ...     task_id="backend-001",
        ...     remote_issue_id="I_kwDOA",
        ...     remote_issue_number=42,
        ... )
        >>> mapping.model_dump_json(indent=2)
    """

    model_config = ConfigDict(populate_by_name=True)

    task_id: str = Field(description="Local task id (unique key)")

    remote_issue_id: str = Field(
        validation_alias=AliasChoices("remote_issue_id", "issue_id"),
        description="Opaque GraphQL node id of the issue",
    )

    remote_issue_number: int = Field(
        validation_alias=AliasChoices("remote_issue_number", "issue_number"),
        description="Human-facing issue number",
    )

    board_item_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("board_item_id", "project_item_id"),
        description="Projects v2 item id, absent until first board placement",
    )

    archived: bool = Field(
        default=False,
        validation_alias=AliasChoices("archived", "is_archived"),
        description="Mirrors the archived flag of the local task",
    )

    last_synced: datetime = Field(
        default_factory=utcnow,
        validation_alias=AliasChoices("last_synced", "synced_at"),
        description="Timestamp of the last successful sync of this task",
    )

    last_synced_status: TaskStatus | None = Field(
        default=None,
        description="Local status at the last successful sync",
    )

    remote_column: str | None = Field(
        default=None,
        description="Board status column at the last successful sync",
    )

    def mark_synced(self, status: TaskStatus, column: str | None) -> None:
        """Record a successful sync of both sides."""
        self.last_synced_status = status
        self.remote_column = column
        self.last_synced = utcnow()


class MappingFile(BaseModel):
    """On-disk layout of the mapping file."""

    version: int = Field(default=1)
    mappings: list[IssueMapping] = Field(default_factory=list)
