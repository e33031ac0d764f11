"""
Pytest configuration and shared fixtures.

Provides fixtures for temp project trees, task file writers, an in-memory
issue service and config isolation used across the test suite.
"""

from pathlib import Path

import frontmatter
import pytest

from taskguard.core.config import clear_cache
from taskguard.core.github.models import (
    BoardItem,
    IssueState,
    RemoteIssue,
    StatusColumnOption,
    StatusField,
)
from taskguard.core.github.service import PermanentServiceError

# ==============================================================================
# Environment isolation
# ==============================================================================


@pytest.fixture(autouse=True)
def isolate_config(tmp_path, monkeypatch):
    """Keep user config, .env files and TASKGUARD_* vars out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for name in (
        "TASKGUARD_GITHUB_OWNER",
        "TASKGUARD_GITHUB_REPO",
        "TASKGUARD_PROJECT_NUMBER",
        "TASKGUARD_MAX_RETRIES",
        "TASKGUARD_BASE_DELAY",
        "TASKGUARD_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_cache()
    yield
    clear_cache()


# ==============================================================================
# Directory Fixtures
# ==============================================================================


@pytest.fixture
def project_dir(tmp_path):
    """
    Provide a temporary project directory with the default layout.

    Creates:
    - tasks/
    - .taskguard/
    """
    project = tmp_path / "project"
    (project / "tasks").mkdir(parents=True)
    (project / ".taskguard").mkdir()
    return project


@pytest.fixture
def write_task(project_dir):
    """Return a helper that writes a task file and returns its path."""

    def _write(
        task_id: str,
        status: str = "todo",
        dependencies: list[str] | None = None,
        *,
        title: str | None = None,
        body: str = "",
        archived: bool = False,
    ) -> Path:
        area = task_id.rsplit("-", 1)[0]
        root = project_dir / (".taskguard/archive" if archived else "tasks") / area
        root.mkdir(parents=True, exist_ok=True)
        post = frontmatter.Post(
            body,
            id=task_id,
            title=title or f"Task {task_id}",
            status=status,
            dependencies=dependencies or [],
            area=area,
        )
        path = root / f"{task_id}.md"
        path.write_text(frontmatter.dumps(post) + "\n", encoding="utf-8")
        return path

    return _write


# ==============================================================================
# Fake issue service
# ==============================================================================

MUTATING_CALLS = frozenset(
    {"create_issue", "update_issue_state", "add_to_board", "set_item_status"}
)


class FakeIssueService:
    """In-memory IssueService recording every call.

    ``fail_on`` maps a method name to the exception it should raise.
    """

    def __init__(self, columns: tuple[str, ...] = ("Backlog", "In progress", "In review", "Done")):
        self.status_field = StatusField(
            field_id="PVTSSF_status",
            options=[
                StatusColumnOption(column_id=f"opt-{i}", column_name=name)
                for i, name in enumerate(columns)
            ],
        )
        self.issues: dict[int, RemoteIssue] = {}
        self.items: dict[str, BoardItem] = {}
        self.calls: list[tuple] = []
        self.fail_on: dict[str, Exception] = {}
        self._next_number = 1

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise self.fail_on[name]

    # IssueService ------------------------------------------------------

    def create_issue(self, title: str, body: str) -> RemoteIssue:
        self._record("create_issue", title, body)
        return self.add_issue(title=title, body=body)

    def update_issue_state(self, issue_id: str, state: IssueState) -> None:
        self._record("update_issue_state", issue_id, state)
        for number, issue in self.issues.items():
            if issue.id == issue_id:
                self.issues[number] = issue.model_copy(update={"state": state})

    def add_to_board(self, board_id: str, issue_id: str) -> str:
        self._record("add_to_board", board_id, issue_id)
        item_id = f"PVTI_{issue_id}"
        self.items.setdefault(item_id, BoardItem(item_id=item_id, issue_id=issue_id))
        return item_id

    def get_status_column_options(self, board_id: str) -> StatusField:
        self._record("get_status_column_options", board_id)
        return self.status_field

    def set_item_status(self, board_id: str, item_id: str, field_id: str, column_id: str) -> None:
        self._record("set_item_status", board_id, item_id, field_id, column_id)
        name = next(o.column_name for o in self.status_field.options if o.column_id == column_id)
        self.move(item_id, name)

    def list_issues(self, repo: str) -> list[RemoteIssue]:
        self._record("list_issues", repo)
        return [self.issues[n] for n in sorted(self.issues)]

    def get_board_item(self, item_id: str) -> BoardItem:
        self._record("get_board_item", item_id)
        try:
            return self.items[item_id]
        except KeyError:
            raise PermanentServiceError(f"Board item {item_id} not found") from None

    # Test helpers -----------------------------------------------------

    def add_issue(self, title: str = "", body: str = "", state: IssueState = IssueState.OPEN):
        number = self._next_number
        self._next_number += 1
        issue = RemoteIssue(
            id=f"I_{number}",
            number=number,
            title=title,
            body=body,
            state=state,
            url=f"https://github.com/octo/app/issues/{number}",
        )
        self.issues[number] = issue
        return issue

    def move(self, item_id: str, column_name: str | None) -> None:
        """Move a board item without recording a call (someone used the web UI)."""
        item = self.items[item_id]
        self.items[item_id] = item.model_copy(update={"column_name": column_name})

    def mutations(self) -> list[tuple]:
        return [call for call in self.calls if call[0] in MUTATING_CALLS]


@pytest.fixture
def fake_service():
    return FakeIssueService()


@pytest.fixture
def service_factory():
    """The FakeIssueService class, for tests that need custom board columns."""
    return FakeIssueService
