"""
TaskGuard CLI - validate command.

Checks the dependency graph for cycles and unknown references and shows
which tasks can be started and how much work waits on each of them.
"""

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from taskguard.cli.errors import ExitCode
from taskguard.cli.project import get_project
from taskguard.core.tasks import AvailabilityKind, DependencyGraph

console = Console()

KIND_STYLES = {
    AvailabilityKind.AVAILABLE: "[green]available[/green]",
    AvailabilityKind.BLOCKED: "[yellow]blocked[/yellow]",
    AvailabilityKind.MISSING_DEPENDENCY: "[red]missing dependency[/red]",
    AvailabilityKind.NOT_WORKABLE: "[dim]-[/dim]",
}


def validate(
    ctx: typer.Context,
    show_archived: bool = typer.Option(
        False,
        "--archived",
        "-a",
        help="Include archived tasks in the table",
    ),
) -> None:
    """
    Validate task dependencies.

    Reports dependency cycles and references to unknown tasks, and lists
    every task with its availability. Exits with status 1 when the graph
    is invalid.

    Examples:
        taskguard validate
        taskguard validate --archived
    """
    project = get_project(ctx)
    store = project.task_store()
    graph = DependencyGraph(store.load_tasks())

    for error in store.load_errors:
        console.print(f"[yellow]⚠[/yellow]  {escape(str(error))}")

    if len(graph) == 0:
        console.print(f"[yellow]No tasks found under {store.tasks_dir}[/yellow]")
        return

    table = Table(title="Tasks", show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Status")
    table.add_column("Availability")
    table.add_column("Waiting on")
    table.add_column("Downstream", justify="right")

    for task_id in graph.task_ids:
        task = graph.get(task_id)
        if task is None or (task.archived and not show_archived):
            continue
        availability = graph.compute_status(task_id)
        waiting = ""
        if availability.kind != AvailabilityKind.NOT_WORKABLE:
            waiting = ", ".join(availability.unknown or availability.unmet)
        downstream = ""
        if task.is_active:
            downstream = str(len(graph.transitive_dependents(task_id)) or "")
        status = "archived" if task.archived else task.status.value
        table.add_row(task_id, status, KIND_STYLES[availability.kind], waiting, downstream)

    console.print(table)

    result = graph.validate()
    for cycle in result.cycles:
        console.print(f"[red]✗[/red] Dependency cycle: {' → '.join(cycle)}")
    for task_id, unknown in sorted(result.missing.items()):
        console.print(f"[red]✗[/red] {task_id} depends on unknown task(s): {', '.join(unknown)}")

    stats = graph.stats
    available = graph.available_tasks()
    console.print(
        f"\n{stats['node_count']} tasks ({stats['archived_count']} archived), "
        f"{stats['edge_count']} dependencies, {len(available)} available"
    )

    if not result.is_valid:
        raise typer.Exit(ExitCode.GENERAL_ERROR)
    console.print("[green]✓[/green] Dependencies are valid")
