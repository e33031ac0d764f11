"""
Layered configuration for TaskGuard.

Layers, lowest priority first:

1. built-in defaults (``get_default_config``)
2. user file: ``$XDG_CONFIG_HOME/taskguard/config.json``
3. project file: ``<project>/.taskguard/config.json``
4. ``TASKGUARD_*`` environment variables

A broken or non-object JSON file is skipped with a warning; the merged
result is validated once, as a whole, by TaskGuardConfig.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from .models import TaskGuardConfig

logger = logging.getLogger(__name__)

_config_cache: TaskGuardConfig | None = None

# Variable name -> (section, key, converter)
ENV_OVERRIDES: dict[str, tuple[str, str, type]] = {
    "TASKGUARD_GITHUB_OWNER": ("github", "owner", str),
    "TASKGUARD_GITHUB_REPO": ("github", "repo", str),
    "TASKGUARD_PROJECT_NUMBER": ("github", "project_number", int),
    "TASKGUARD_MAX_RETRIES": ("sync", "max_retries", int),
    "TASKGUARD_BASE_DELAY": ("sync", "base_delay", float),
    "TASKGUARD_TIMEOUT": ("sync", "timeout", float),
}


def get_xdg_config_home() -> Path:
    configured = os.environ.get("XDG_CONFIG_HOME")
    return Path(configured) if configured else Path.home() / ".config"


def get_user_config_path() -> Path:
    return get_xdg_config_home() / "taskguard" / "config.json"


def get_project_config_path(project_dir: Path | None = None) -> Path:
    return (project_dir or Path.cwd()) / ".taskguard" / "config.json"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Return *base* updated with *override*, merging nested dicts key by key.

    Neither argument is modified.

    Example:
        >>> deep_merge({"sync": {"max_retries": 3, "timeout": 30}}, {"sync": {"timeout": 5}})
        {'sync': {'max_retries': 3, 'timeout': 5}}
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_json_file(path: Path) -> dict[str, Any] | None:
    """Parse one config layer. Missing, unreadable or non-object files yield None."""
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring config at %s: top level must be a JSON object", path)
        return None
    return data


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """Overlay TASKGUARD_* variables. Blank or unconvertible values are ignored."""
    overrides: dict[str, dict[str, Any]] = {}
    for env_name, (section, key, convert) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name, "").strip()
        if not raw:
            continue
        try:
            overrides.setdefault(section, {})[key] = convert(raw)
        except ValueError:
            logger.warning("Invalid %s value '%s', ignoring", env_name, raw)
    return deep_merge(config_dict, overrides)


def get_default_config() -> dict[str, Any]:
    return TaskGuardConfig().model_dump(exclude={"github"}) | {"github": {}}


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> TaskGuardConfig:
    """
    Build the effective configuration for *project_dir* (default: cwd).

    The result is cached for the process; pass ``use_cache=False`` or call
    ``clear_cache()`` to re-read the files.

    Raises:
        ValidationError: If the merged layers do not form a valid config
    """
    global _config_cache
    if use_cache and _config_cache is not None:
        return _config_cache

    layers = [
        load_json_file(get_user_config_path()),
        load_json_file(get_project_config_path(project_dir)),
    ]
    merged = get_default_config()
    for layer in layers:
        if layer:
            merged = deep_merge(merged, layer)

    _config_cache = TaskGuardConfig.model_validate(apply_env_overrides(merged))
    return _config_cache


def clear_cache() -> None:
    global _config_cache
    _config_cache = None
