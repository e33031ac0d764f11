"""
.env support for TASKGUARD_* overrides.

Files are read in increasing priority: the user file
(``$XDG_CONFIG_HOME/taskguard/.env``), then ``.env`` and ``.env.local`` in the
project root. A later file replaces values set by an earlier one, but no
file ever replaces a variable that was already exported by the shell.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator
from pathlib import Path

from dotenv import dotenv_values

from .loader import get_xdg_config_home

logger = logging.getLogger(__name__)

PROJECT_ENV_FILES = (".env", ".env.local")


def user_env_file() -> Path:
    return get_xdg_config_home() / "taskguard" / ".env"


def _pairs(path: Path) -> Iterator[tuple[str, str]]:
    """Key/value pairs of a dotenv file; keys without a value are skipped."""
    if not path.is_file():
        return
    for key, value in dotenv_values(path).items():
        if key and value is not None:
            yield key, value


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
) -> dict[str, str]:
    """
    Export variables from the user and project .env files into os.environ.

    Returns:
        Variables set by this call, mapped to their final values
    """
    root = project_dir or Path.cwd()
    layers = [
        *(user_env_paths if user_env_paths is not None else [user_env_file()]),
        *(
            project_env_paths
            if project_env_paths is not None
            else [root / name for name in PROJECT_ENV_FILES]
        ),
    ]

    # Names the shell exported before we touched anything
    shell = set(os.environ)
    applied: dict[str, str] = {}

    for layer in layers:
        for key, value in _pairs(Path(layer)):
            if key in shell:
                continue
            os.environ[key] = value
            applied[key] = value
        logger.debug("Read env layer %s", layer)

    return applied
