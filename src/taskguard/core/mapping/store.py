"""
Durable store of task ↔ issue mappings.

The store is an explicit object with a construct → load → mutate → save
lifecycle. It is passed by reference into the sync engine and lifecycle
guard; nothing reads the mapping file behind its back.

Mutations only touch memory. ``save()`` writes through a temporary file
and an atomic rename so a crash mid-write leaves the previous file intact.
Concurrent ``save()`` calls must be serialized by the caller.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections import defaultdict
from collections.abc import Iterable
from pathlib import Path

from pydantic import ValidationError

from taskguard.core.mapping.models import IssueMapping, MappingFile

logger = logging.getLogger(__name__)


class MappingError(Exception):
    """Base error for mapping store operations."""


class MappingCorruptionError(MappingError):
    """The mapping file exists but cannot be trusted.

    Any sync run must abort before talking to GitHub, otherwise tasks whose
    mappings were lost would get duplicate issues.
    """

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Mapping file {path} is corrupted: {reason}")
        self.path = path
        self.reason = reason


class MappingNotFoundError(MappingError, KeyError):
    """No mapping exists for the requested task."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"No mapping for task {task_id}")
        self.task_id = task_id

    def __str__(self) -> str:
        return str(self.args[0])


class IssueMappingStore:
    """
    Persistent mapping between local tasks and GitHub issues.

    Example:
        >>> store = IssueMappingStore.for_project(Path("."))
        >>> store.load()
        >>> mapping = store.get("backend-001")
        >>> store.mark_archived("backend-001")
        >>> store.save()
    """

    DEFAULT_FILE = ".taskguard/github-mapping.json"

    def __init__(self, path: Path) -> None:
        self.path = path
        self._mappings: dict[str, IssueMapping] = {}

    @classmethod
    def for_project(cls, project_dir: Path, file_name: str = DEFAULT_FILE) -> IssueMappingStore:
        return cls(project_dir / file_name)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> IssueMappingStore:
        """
        Load mappings from disk, replacing anything held in memory.

        A missing file is an empty store.

        Raises:
            MappingCorruptionError: If the file is unreadable, not valid JSON,
                fails validation or maps one task twice.
        """
        self._mappings = {}
        if not self.path.exists():
            return self

        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise MappingCorruptionError(self.path, f"unreadable: {e}") from e

        if not content.strip():
            return self

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise MappingCorruptionError(self.path, f"invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MappingCorruptionError(self.path, "expected a JSON object")

        try:
            parsed = MappingFile.model_validate(data)
        except ValidationError as e:
            raise MappingCorruptionError(self.path, str(e)) from e

        for mapping in parsed.mappings:
            if mapping.task_id in self._mappings:
                raise MappingCorruptionError(
                    self.path, f"task {mapping.task_id} is mapped more than once"
                )
            self._mappings[mapping.task_id] = mapping

        for number, task_ids in self.duplicate_issue_numbers().items():
            logger.warning(
                "Issue #%d is mapped to several tasks: %s", number, ", ".join(task_ids)
            )

        return self

    def save(self) -> None:
        """Save mappings atomically via a temporary file in the same directory."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        payload = MappingFile(mappings=[self._mappings[k] for k in sorted(self._mappings)])

        fd, temp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=".github-mapping_", suffix=".json.tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload.model_dump_json(indent=2))
                f.write("\n")

            # Atomic rename (replaces existing file)
            os.replace(temp_path, self.path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

        logger.debug("Saved %d mappings to %s", len(self._mappings), self.path)

    # ------------------------------------------------------------------
    # In-memory access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._mappings)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._mappings

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(self.all())

    def get(self, task_id: str) -> IssueMapping | None:
        return self._mappings.get(task_id)

    def set(self, mapping: IssueMapping) -> None:
        """Insert or replace the mapping for ``mapping.task_id``."""
        existing = self.find_by_remote_issue_number(mapping.remote_issue_number)
        if existing is not None and existing.task_id != mapping.task_id:
            logger.warning(
                "Issue #%d is already mapped to %s; also mapping it to %s",
                mapping.remote_issue_number,
                existing.task_id,
                mapping.task_id,
            )
        self._mappings[mapping.task_id] = mapping

    def remove(self, task_id: str) -> IssueMapping:
        """Remove a mapping. Only called for an explicit operator unmap."""
        try:
            return self._mappings.pop(task_id)
        except KeyError:
            raise MappingNotFoundError(task_id) from None

    def mark_archived(self, task_id: str) -> IssueMapping:
        return self._set_archived(task_id, True)

    def mark_unarchived(self, task_id: str) -> IssueMapping:
        return self._set_archived(task_id, False)

    def _set_archived(self, task_id: str, archived: bool) -> IssueMapping:
        mapping = self._mappings.get(task_id)
        if mapping is None:
            raise MappingNotFoundError(task_id)
        mapping.archived = archived
        return mapping

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def all(self) -> list[IssueMapping]:
        return [self._mappings[k] for k in sorted(self._mappings)]

    def active(self) -> list[IssueMapping]:
        return [m for m in self.all() if not m.archived]

    def archived(self) -> list[IssueMapping]:
        return [m for m in self.all() if m.archived]

    def find_by_remote_issue_number(self, number: int) -> IssueMapping | None:
        """First mapping (by task id) pointing at issue *number*."""
        for mapping in self.all():
            if mapping.remote_issue_number == number:
                return mapping
        return None

    def duplicate_issue_numbers(self) -> dict[int, list[str]]:
        """Issue numbers claimed by more than one task."""
        by_number: dict[int, list[str]] = defaultdict(list)
        for mapping in self.all():
            by_number[mapping.remote_issue_number].append(mapping.task_id)
        return {n: ids for n, ids in by_number.items() if len(ids) > 1}

    def orphans(self, known_task_ids: Iterable[str]) -> list[IssueMapping]:
        """Mappings whose task no longer exists locally."""
        known = set(known_task_ids)
        return [m for m in self.all() if m.task_id not in known]


GITIGNORE_HEADER = "# TaskGuard issue mapping (local sync state)"


def exclude_from_git(project_dir: Path, mapping_file: str) -> bool:
    """
    List the mapping file in the project's .gitignore.

    The mapping is per-checkout sync state, so it stays out of the tracked
    files by default. Appends only what is missing and never rewrites
    existing lines.

    Returns:
        True if .gitignore was created or changed
    """
    gitignore = project_dir / ".gitignore"
    existing = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
    pattern = "/" + Path(mapping_file).as_posix().lstrip("/")

    present = {line.strip() for line in existing.splitlines()}
    if pattern in present or pattern.lstrip("/") in present:
        return False

    with open(gitignore, "a", encoding="utf-8") as f:
        if existing and not existing.endswith("\n"):
            f.write("\n")
        if GITIGNORE_HEADER not in present:
            f.write(GITIGNORE_HEADER + "\n")
        f.write(pattern + "\n")
    logger.info("Added %s to %s", pattern, gitignore)
    return True
