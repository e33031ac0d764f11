"""
Exit codes and error rendering shared by the TaskGuard commands.

Every command reports a failure as: what went wrong, optionally why, and
optionally what to run next.
"""

from enum import IntEnum

from rich.console import Console

console = Console()


class ExitCode(IntEnum):
    SUCCESS = 0
    # Some task failed or was refused, validation found problems, or GitHub
    # rejected the run
    GENERAL_ERROR = 1
    # Bad configuration or arguments; fixable without touching any task
    USER_ERROR = 2
    # Ctrl+C during a sync; finished tasks are already saved
    SIGINT = 130


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
    doc_url: str | None = None,
) -> None:
    """
    Render an error with optional cause, remedy and documentation link.

    Example:
        >>> print_error(
        ...     "Issue mapping file is corrupted",
        ...     reason="invalid JSON",
        ...     solution="restore .taskguard/github-mapping.json from version control",
        ... )
    """
    lines = [f"[red]Error:[/red] {problem}"]
    if reason:
        lines.append(f"[dim]{reason}[/dim]")
    if solution:
        lines.append(f"[cyan]→ Try:[/cyan] {solution}")
    if doc_url:
        lines.append(f"[dim]See {doc_url}[/dim]")
    for line in lines:
        console.print(line)


def print_github_not_configured_error() -> None:
    print_error(
        "GitHub sync is not configured",
        reason="github.owner, github.repo and github.project_number are all required",
        solution='add a "github" section to .taskguard/config.json '
        "or set TASKGUARD_GITHUB_OWNER / TASKGUARD_GITHUB_REPO / TASKGUARD_PROJECT_NUMBER",
    )


def print_mapping_corrupted_error(reason: str) -> None:
    print_error(
        "Issue mapping file is corrupted",
        reason=reason,
        solution="restore .taskguard/github-mapping.json from version control",
    )


def print_task_not_found_error(task_id: str) -> None:
    print_error(
        f"Task not found: {task_id}",
        reason="no file under tasks/ or .taskguard/archive/ has this id",
        solution="taskguard validate --archived  # lists every known task",
    )
