"""
Task models, dependency graph and task storage.

This module provides the TaskRecord model consumed by the rest of the core,
the DependencyGraph used for availability and archive protection, and the
TaskStore protocol with its Markdown-backed implementation.
"""

from .graph import Availability, AvailabilityKind, DependencyGraph, GraphValidation
from .models import (
    CycleError,
    MissingDependencyError,
    SelfDependencyError,
    TaskRecord,
    TaskStatus,
    TaskValidationError,
)
from .store import MarkdownTaskStore, TaskLoadError, TaskStore, TaskStoreError

__all__ = [
    # Models
    "TaskRecord",
    "TaskStatus",
    # Validation errors
    "TaskValidationError",
    "SelfDependencyError",
    "CycleError",
    "MissingDependencyError",
    # Graph
    "Availability",
    "AvailabilityKind",
    "DependencyGraph",
    "GraphValidation",
    # Storage
    "TaskStore",
    "TaskStoreError",
    "TaskLoadError",
    "MarkdownTaskStore",
]
