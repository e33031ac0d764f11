"""
TaskGuard command line.

Defines the Typer app, its global options and the command groups.
"""

import logging
from pathlib import Path

import typer
from rich.console import Console

from taskguard import __version__
from taskguard.cli import archive, mapping, sync, validate
from taskguard.cli.project import build_project
from taskguard.core.config.env import load_layered_env

# Help panel names for command grouping
PANEL_TASKS = "Tasks"
PANEL_GITHUB = "GitHub"

app = typer.Typer(
    name="taskguard",
    help="Dependency-aware task tracking with GitHub Projects sync",
    no_args_is_help=True,
    add_completion=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)

console = Console()


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
    project_dir: Path | None = typer.Option(
        None,
        "--project-dir",
        "-C",
        help="Project root (defaults to the current directory)",
        file_okay=False,
    ),
) -> None:
    """
    TaskGuard - local tasks with dependency protection and GitHub sync.

    Tasks live as Markdown files under tasks/<area>/. TaskGuard refuses to
    archive or delete a finished task while an active task still depends on
    it, and mirrors task statuses to a GitHub Projects v2 board.

    Common Workflows:
        taskguard validate           # Check dependencies
        taskguard archive -n         # Preview archiving finished work
        taskguard sync --push        # Create/update issues on the board
        taskguard sync               # Bidirectional sync
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    root = (project_dir or Path.cwd()).resolve()
    # Shell variables win over project .env, which wins over the user .env
    load_layered_env(project_dir=root)

    ctx.obj = {"debug": debug, "project": build_project(root, debug=debug)}


# =============================================================================
# Tasks
# =============================================================================

app.command(name="validate", rich_help_panel=PANEL_TASKS)(validate.validate)
app.command(name="archive", rich_help_panel=PANEL_TASKS)(archive.archive)
app.command(name="clean", rich_help_panel=PANEL_TASKS)(archive.clean)
app.command(name="restore", rich_help_panel=PANEL_TASKS)(archive.restore)


# =============================================================================
# GitHub
# =============================================================================

app.command(name="sync", rich_help_panel=PANEL_GITHUB)(sync.sync)
app.add_typer(mapping.app, name="mapping", rich_help_panel=PANEL_GITHUB)


@app.command()
def version() -> None:
    """Show taskguard version and exit."""
    console.print(f"taskguard version {__version__}")
    raise typer.Exit(0)


def cli_main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "cli_main", "main"]
