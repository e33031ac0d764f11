"""
TaskGuard CLI - mapping commands.

Inspect and edit the task ↔ GitHub issue mapping file. Removing a mapping is
the only way a mapping ever disappears.
"""

import typer
from rich.console import Console
from rich.table import Table

from taskguard.cli.errors import ExitCode, print_error
from taskguard.cli.project import get_project
from taskguard.core.mapping import MappingNotFoundError

console = Console()
app = typer.Typer(
    name="mapping",
    help="Inspect and edit task ↔ GitHub issue mappings",
    no_args_is_help=True,
)


@app.command("list")
def list_mappings(
    ctx: typer.Context,
    show_archived: bool = typer.Option(
        True,
        "--archived/--active",
        help="Include mappings of archived tasks",
    ),
) -> None:
    """
    List mappings.

    Examples:
        taskguard mapping list
        taskguard mapping list --active
    """
    project = get_project(ctx)
    store = project.mapping_store()
    mappings = store.all() if show_archived else store.active()

    if not mappings:
        console.print("[blue]No mappings yet. Run taskguard sync --push.[/blue]")
        return

    repo = None
    if project.config.github.owner and project.config.github.repo:
        repo = project.config.github.repo_info()

    table = Table(show_header=True, header_style="bold")
    table.add_column("Task", style="cyan")
    table.add_column("Issue")
    table.add_column("Status")
    table.add_column("Column")
    table.add_column("Last synced")

    for mapping in mappings:
        issue = f"#{mapping.remote_issue_number}"
        if repo is not None:
            issue = f"[link={repo.issue_url(mapping.remote_issue_number)}]{issue}[/link]"
        status = mapping.last_synced_status.value if mapping.last_synced_status else "-"
        if mapping.archived:
            status += " (archived)"
        table.add_row(
            mapping.task_id,
            issue,
            status,
            mapping.remote_column or "-",
            mapping.last_synced.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)

    duplicates = store.duplicate_issue_numbers()
    for number, task_ids in sorted(duplicates.items()):
        joined = ", ".join(task_ids)
        console.print(f"[yellow]⚠[/yellow]  Issue #{number} is mapped to several tasks: {joined}")


@app.command()
def unmap(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task whose mapping should be removed"),
) -> None:
    """
    Remove the mapping of a task.

    The GitHub issue is left untouched. The next push creates a new issue
    for the task unless the old issue still carries its TaskGuard ID.

    Examples:
        taskguard mapping unmap backend-001
    """
    project = get_project(ctx)
    store = project.mapping_store()
    try:
        removed = store.remove(task_id)
    except MappingNotFoundError as e:
        print_error(str(e), solution="taskguard mapping list")
        raise typer.Exit(ExitCode.USER_ERROR) from e
    store.save()
    console.print(
        f"[green]✓[/green] Unmapped {task_id} (issue #{removed.remote_issue_number} left as is)"
    )


@app.command()
def orphans(ctx: typer.Context) -> None:
    """
    List mappings whose task no longer exists.

    Examples:
        taskguard mapping orphans
    """
    project = get_project(ctx)
    store = project.mapping_store()
    task_ids = [task.id for task in project.task_store().load_tasks()]
    found = store.orphans(task_ids)

    if not found:
        console.print("[green]✓[/green] No orphaned mappings")
        return

    for mapping in found:
        console.print(
            f"[yellow]⚠[/yellow]  {mapping.task_id} → issue #{mapping.remote_issue_number}"
        )
    console.print(f"\n{len(found)} orphaned mapping(s). Remove with: taskguard mapping unmap <id>")
