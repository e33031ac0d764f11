"""
Status reconciliation between local tasks and a GitHub Projects board.

Example:
    >>> from taskguard.core.sync import SyncEngine, SyncMode
    >>> report = SyncEngine(store, mappings, client, board_id=board, repo=repo).run(SyncMode.PUSH)
"""

from taskguard.core.sync.engine import SyncAbortedError, SyncEngine
from taskguard.core.sync.models import (
    CompareState,
    SyncMode,
    SyncOutcome,
    SyncReport,
    TaskSyncReport,
)

__all__ = [
    "CompareState",
    "SyncAbortedError",
    "SyncEngine",
    "SyncMode",
    "SyncOutcome",
    "SyncReport",
    "TaskSyncReport",
]
