"""
Persistent task ↔ GitHub issue mappings.

Example:
    >>> from taskguard.core.mapping import IssueMappingStore
    >>> store = IssueMappingStore.for_project(Path(".")).load()
    >>> store.find_by_remote_issue_number(42)
"""

from taskguard.core.mapping.models import IssueMapping
from taskguard.core.mapping.store import (
    IssueMappingStore,
    MappingCorruptionError,
    MappingError,
    MappingNotFoundError,
    exclude_from_git,
)

__all__ = [
    "IssueMapping",
    "IssueMappingStore",
    "MappingError",
    "MappingCorruptionError",
    "MappingNotFoundError",
    "exclude_from_git",
]
