"""
TaskGuard - dependency-aware local task tracking with GitHub Projects sync.

Keeps work items as Markdown files, enforces dependency ordering between them,
and reconciles their status with issues on a GitHub Projects v2 board.
"""

__version__ = "0.4.0"

# Re-export core models for convenience
from taskguard.core.config.models import TaskGuardConfig
from taskguard.core.tasks.models import TaskRecord, TaskStatus

__all__ = ["TaskGuardConfig", "TaskRecord", "TaskStatus", "__version__"]
