"""
Archive, clean and restore of completed tasks with dependency protection.
"""

from taskguard.core.lifecycle.guard import (
    ArchivePlan,
    LifecycleAction,
    LifecycleGuard,
    LifecycleOutcome,
    LifecycleReport,
    LifecycleViolation,
)

__all__ = [
    "ArchivePlan",
    "LifecycleAction",
    "LifecycleGuard",
    "LifecycleOutcome",
    "LifecycleReport",
    "LifecycleViolation",
]
