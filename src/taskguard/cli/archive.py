"""
TaskGuard CLI - archive, clean and restore commands.

All three go through the LifecycleGuard, so a done task that an active task
still depends on is never moved or deleted.
"""

import typer
from rich.console import Console
from rich.markup import escape

from taskguard.cli.errors import ExitCode, print_task_not_found_error
from taskguard.cli.project import ProjectContext, get_project
from taskguard.core.github import GitHubClient, IssueService, ServiceError
from taskguard.core.lifecycle import LifecycleGuard, LifecycleOutcome, LifecycleReport

console = Console()


def _issue_service(project: ProjectContext) -> IssueService | None:
    """GitHub client when sync is configured, None otherwise.

    Lifecycle commands work offline: a missing gh login only costs the
    remote close/reopen, which the next sync catches up on.
    """
    github = project.config.github
    if not github.is_configured:
        return None
    try:
        return GitHubClient.from_gh_cli(
            github.repo_info(),
            retry=project.config.sync.retry_config(),
            timeout=project.config.sync.timeout,
        )
    except ServiceError as e:
        console.print(f"[yellow]⚠[/yellow]  GitHub unavailable, issues will not be updated: {e}")
        return None


def _guard(project: ProjectContext, *, remote: bool) -> LifecycleGuard:
    mappings = project.mapping_store()
    service = _issue_service(project) if remote else None
    return LifecycleGuard(project.task_store(), mappings, service)


def _print_outcome(outcome: LifecycleOutcome) -> None:
    prefix = "[dim](dry run)[/dim] " if outcome.dry_run else ""
    if outcome.ok:
        location = f" → {outcome.path}" if outcome.path else ""
        message = escape(outcome.message)
        console.print(f"{prefix}[green]✓[/green] {outcome.task_id}: {message}{location}")
    else:
        console.print(f"{prefix}[red]✗[/red] {outcome.task_id}: {escape(outcome.message)}")
    for warning in outcome.warnings:
        console.print(f"    [yellow]⚠[/yellow]  {escape(warning)}")


def _finish(report: LifecycleReport, verb: str) -> None:
    """Print the report. Refusals are expected; only store failures exit non-zero."""
    for error in report.load_errors:
        console.print(f"[yellow]⚠[/yellow]  Unparsed task file {escape(str(error))}")

    for outcome in report.outcomes:
        _print_outcome(outcome)

    if not report.outcomes:
        console.print(f"[blue]No completed tasks to {verb}[/blue]")
        return

    summary = f"\n{len(report.succeeded)} {verb}d, {len(report.refused)} refused"
    if report.failed:
        summary += f", {len(report.failed)} failed"
    console.print(summary + (" (dry run)" if report.dry_run else ""))
    if report.has_failures:
        raise typer.Exit(ExitCode.GENERAL_ERROR)


def archive(
    ctx: typer.Context,
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Show what would be archived without moving anything",
    ),
) -> None:
    """
    Archive completed tasks.

    Moves every done task that no active task depends on into
    .taskguard/archive/. Tasks that are still needed are listed with the
    dependents that hold them back. Mapped GitHub issues are closed.

    Examples:
        taskguard archive --dry-run
        taskguard archive
    """
    project = get_project(ctx)
    guard = _guard(project, remote=not dry_run)
    _finish(guard.archive(dry_run=dry_run), "archive")


def clean(
    ctx: typer.Context,
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Also delete tasks that are mapped to a GitHub issue",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Show what would be deleted without deleting anything",
    ),
) -> None:
    """
    Permanently delete completed tasks.

    Same protection as archive, and tasks mapped to a GitHub issue are kept
    unless --force is given. Prefer archive: it keeps the history.

    Examples:
        taskguard clean --dry-run
        taskguard clean --force
    """
    project = get_project(ctx)
    guard = _guard(project, remote=False)
    _finish(guard.clean(force=force, dry_run=dry_run), "delete")


def restore(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="ID of the archived task"),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Show what would be restored without moving anything",
    ),
) -> None:
    """
    Restore an archived task to the active tree.

    The task's GitHub issue is reopened when it has one.

    Examples:
        taskguard restore backend-001
    """
    project = get_project(ctx)
    guard = _guard(project, remote=not dry_run)
    outcome = guard.restore(task_id, dry_run=dry_run)
    _print_outcome(outcome)
    if not outcome.ok:
        if outcome.message == "task not found":
            print_task_not_found_error(task_id)
        raise typer.Exit(ExitCode.GENERAL_ERROR)
