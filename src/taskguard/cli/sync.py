"""
TaskGuard CLI - Sync command for GitHub Projects synchronization.

Provides CLI interface to the SyncEngine: pushes local task statuses to a
Projects v2 board, pulls board moves back into task files, or both.
"""

import typer
from rich.console import Console
from rich.markup import escape

from taskguard.cli.errors import ExitCode, print_error, print_github_not_configured_error
from taskguard.cli.project import ProjectContext, get_project
from taskguard.core.github import GitHubClient, ServiceError
from taskguard.core.mapping import exclude_from_git
from taskguard.core.sync import (
    SyncAbortedError,
    SyncEngine,
    SyncMode,
    SyncOutcome,
    SyncReport,
    TaskSyncReport,
)

console = Console()

OUTCOME_ICONS = {
    SyncOutcome.CREATED: "[green]+[/green]",
    SyncOutcome.UPDATED: "[green]✓[/green]",
    SyncOutcome.SKIPPED: "[dim]·[/dim]",
    SyncOutcome.BLOCKED: "[yellow]⚠[/yellow]",
    SyncOutcome.CONFLICT: "[magenta]≠[/magenta]",
    SyncOutcome.FAILED: "[red]✗[/red]",
}


def create_client(project: ProjectContext) -> GitHubClient:
    """
    GitHub client for the configured repository.

    Raises:
        ServiceError: If the gh CLI is missing or not authenticated
    """
    github = project.config.github
    return GitHubClient.from_gh_cli(
        github.repo_info(),
        retry=project.config.sync.retry_config(),
        timeout=project.config.sync.timeout,
    )


def resolve_mode(push: bool, pull: bool) -> SyncMode:
    if push and not pull:
        return SyncMode.PUSH
    if pull and not push:
        return SyncMode.PULL
    return SyncMode.BOTH


def print_task_line(line: TaskSyncReport, verbose: bool = False) -> None:
    if line.outcome == SyncOutcome.SKIPPED and not verbose and not line.warnings:
        return
    issue = f" [dim]#{line.issue_number}[/dim]" if line.issue_number else ""
    console.print(
        f"{OUTCOME_ICONS[line.outcome]} {line.task_id}{issue} "
        f"[bold]{line.outcome.value}[/bold] {escape(line.message)}"
    )
    for warning in line.warnings:
        console.print(f"    [yellow]⚠[/yellow]  {warning}")


def print_report(report: SyncReport, verbose: bool = False) -> None:
    for warning in report.warnings:
        console.print(f"[yellow]⚠[/yellow]  {warning}")

    for line in report.tasks:
        print_task_line(line, verbose)

    if report.untracked_issues:
        numbers = ", ".join(f"#{n}" for n in report.untracked_issues)
        console.print(f"[blue]Untracked issues (no local task):[/blue] {numbers}")

    prefix = "[dim](dry run)[/dim] " if report.dry_run else ""
    console.print(f"\n{prefix}Sync {report.mode.value}: {report.summary()}")


def sync(
    ctx: typer.Context,
    push: bool = typer.Option(
        False,
        "--push",
        help="Only push local statuses to GitHub",
    ),
    pull: bool = typer.Option(
        False,
        "--pull",
        help="Only pull board columns into local tasks",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Show what would change without writing anything locally or on GitHub",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Also list tasks that need no change",
    ),
) -> None:
    """
    Sync task statuses with a GitHub Projects v2 board.

    Without flags, runs in both directions and reports conflicts (both
    sides changed since the last sync) instead of resolving them.

    Examples:
        taskguard sync                # Bidirectional
        taskguard sync --push         # Local → GitHub only
        taskguard sync --pull -n      # Preview board → local changes
    """
    project = get_project(ctx)
    github = project.config.github
    if not github.is_configured:
        print_github_not_configured_error()
        raise typer.Exit(ExitCode.USER_ERROR)

    # Corrupted mappings abort here, before any remote call
    mappings = project.mapping_store()
    mode = resolve_mode(push, pull)
    if not dry_run:
        exclude_from_git(project.project_dir, project.config.paths.mapping_file)

    try:
        client = create_client(project)
    except ServiceError as e:
        print_error("Cannot connect to GitHub", reason=str(e), solution="gh auth login")
        raise typer.Exit(ExitCode.USER_ERROR) from e

    try:
        board_id = client.resolve_board_id(github.owner or "", github.project_number or 0)
        engine = SyncEngine(
            project.task_store(),
            mappings,
            client,
            board_id=board_id,
            repo=github.repo_info().full_name,
        )
        report = engine.run(mode, dry_run=dry_run)
    except ServiceError as e:
        print_error(
            f"Cannot find project #{github.project_number} of {github.owner}",
            reason=str(e),
            solution="check github.project_number and that gh has the 'project' scope",
        )
        raise typer.Exit(ExitCode.GENERAL_ERROR) from e
    except SyncAbortedError as e:
        print_error("Sync aborted, nothing was changed", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR) from e
    except KeyboardInterrupt:
        console.print(
            "\n[yellow]Sync interrupted.[/yellow] Tasks finished so far are saved "
            "in the mapping; run sync again to continue."
        )
        raise typer.Exit(ExitCode.SIGINT) from None
    finally:
        client.close()

    print_report(report, verbose)

    if report.has_failures:
        raise typer.Exit(ExitCode.GENERAL_ERROR)
