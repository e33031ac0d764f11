"""
Per-invocation project context shared by CLI commands.

The main callback resolves the project directory and configuration once and
stores them on the Typer context; commands build their stores from it.
"""

from dataclasses import dataclass
from pathlib import Path

import typer
from pydantic import ValidationError

from taskguard.cli.errors import ExitCode, print_error, print_mapping_corrupted_error
from taskguard.core.config import TaskGuardConfig, load_config
from taskguard.core.mapping import IssueMappingStore, MappingCorruptionError
from taskguard.core.tasks import MarkdownTaskStore


@dataclass
class ProjectContext:
    project_dir: Path
    config: TaskGuardConfig
    debug: bool = False

    def task_store(self) -> MarkdownTaskStore:
        return MarkdownTaskStore(
            self.project_dir,
            tasks_dir=self.config.paths.tasks_dir,
            archive_dir=self.config.paths.archive_dir,
        )

    def mapping_store(self) -> IssueMappingStore:
        """Loaded mapping store. Exits the CLI if the file is corrupted."""
        store = IssueMappingStore(self.project_dir / self.config.paths.mapping_file)
        try:
            return store.load()
        except MappingCorruptionError as e:
            print_mapping_corrupted_error(e.reason)
            raise typer.Exit(ExitCode.GENERAL_ERROR) from e


def build_project(project_dir: Path | None, debug: bool = False) -> ProjectContext:
    project_dir = (project_dir or Path.cwd()).resolve()
    try:
        config = load_config(project_dir, use_cache=False)
    except ValidationError as e:
        print_error(
            "Invalid configuration",
            reason=str(e),
            solution="fix .taskguard/config.json or the TASKGUARD_* environment variables",
        )
        raise typer.Exit(ExitCode.USER_ERROR) from e
    return ProjectContext(project_dir=project_dir, config=config, debug=debug)


def get_project(ctx: typer.Context) -> ProjectContext:
    """Project context from the main callback, or one for the cwd."""
    obj = ctx.obj
    if isinstance(obj, dict) and isinstance(obj.get("project"), ProjectContext):
        return obj["project"]
    return build_project(None)
