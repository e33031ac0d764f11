"""
GitHub integration for TaskGuard.

Provides the IssueService protocol, its GraphQL implementation, and the
status column matcher used to place tasks on a Projects v2 board.
"""

from taskguard.core.github.client import GitHubClient, get_gh_token
from taskguard.core.github.matcher import (
    ColumnMatch,
    StatusResolution,
    column_to_status,
    match_column,
    match_option,
)
from taskguard.core.github.models import (
    BoardItem,
    IssueState,
    RemoteIssue,
    RepoInfo,
    StatusColumnOption,
    StatusField,
)
from taskguard.core.github.retry import RetryConfig
from taskguard.core.github.service import (
    IssueService,
    PermanentServiceError,
    ServiceError,
    TransientServiceError,
)

__all__ = [
    "BoardItem",
    "ColumnMatch",
    "GitHubClient",
    "IssueService",
    "IssueState",
    "PermanentServiceError",
    "RemoteIssue",
    "RepoInfo",
    "RetryConfig",
    "ServiceError",
    "StatusColumnOption",
    "StatusField",
    "StatusResolution",
    "TransientServiceError",
    "column_to_status",
    "get_gh_token",
    "match_column",
    "match_option",
]
