"""
Configuration data models for TaskGuard.

These models define the structure of .taskguard/config.json and
~/.config/taskguard/config.json, with validation via Pydantic. No secrets
live here: GitHub authentication is delegated to the gh CLI.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from taskguard.core.github.models import RepoInfo
from taskguard.core.github.retry import RetryConfig


class GitHubConfig(BaseModel):
    """
    Target repository and Projects v2 board.

    All three values are required for sync; lifecycle commands work without them.
    """

    owner: str | None = Field(default=None, description="Repository owner (user or organization)")
    repo: str | None = Field(default=None, description="Repository name")
    project_number: int | None = Field(
        default=None,
        ge=1,
        description="Number of the Projects v2 board (as shown in its URL)",
    )

    @field_validator("owner", "repo")
    @classmethod
    def _strip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @property
    def is_configured(self) -> bool:
        return bool(self.owner and self.repo and self.project_number)

    def repo_info(self) -> RepoInfo:
        """
        Repository identity for the client.

        Raises:
            ValueError: If owner or repo is missing
        """
        if not self.owner or not self.repo:
            raise ValueError("github.owner and github.repo must be configured")
        return RepoInfo(owner=self.owner, repo=self.repo)


class SyncConfig(BaseModel):
    """Retry and timeout behaviour of GitHub calls."""

    max_retries: int = Field(default=3, ge=0, description="Retries for transient failures")
    base_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Delay in seconds before the first retry; doubles per attempt",
    )
    timeout: float = Field(default=30.0, gt=0.0, description="HTTP timeout in seconds")

    def retry_config(self) -> RetryConfig:
        return RetryConfig(max_retries=self.max_retries, base_delay=self.base_delay)


class PathsConfig(BaseModel):
    """Locations relative to the project directory."""

    tasks_dir: str = Field(default="tasks")
    archive_dir: str = Field(default=".taskguard/archive")
    mapping_file: str = Field(default=".taskguard/github-mapping.json")


class TaskGuardConfig(BaseModel):
    """
    Complete TaskGuard configuration.

    Example:
        >>> config = TaskGuardConfig(github={"owner": "octo", "repo": "app", "project_number": 3})
        >>> config.github.is_configured
        True
    """

    model_config = ConfigDict(extra="ignore")

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
