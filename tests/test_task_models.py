"""Tests for TaskRecord validation."""

import pytest
from pydantic import ValidationError

from taskguard.core.tasks.models import (
    CycleError,
    MissingDependencyError,
    SelfDependencyError,
    TaskRecord,
    TaskStatus,
)


class TestTaskRecord:
    def test_defaults(self) -> None:
        task = TaskRecord(id="backend-001")
        assert task.status == TaskStatus.TODO
        assert task.dependencies == ()
        assert task.archived is False
        assert task.file_name() == "backend-001.md"

    def test_status_from_string(self) -> None:
        assert TaskRecord(id="backend-001", status="review").status == TaskStatus.REVIEW

    def test_invalid_status_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TaskRecord(id="backend-001", status="someday")

    @pytest.mark.parametrize("task_id", ["backend-001", "api-v2-12", "setup_env-3"])
    def test_valid_ids(self, task_id: str) -> None:
        assert TaskRecord(id=task_id).id == task_id

    @pytest.mark.parametrize("task_id", ["backend", "backend-", "-001", "back end-001"])
    def test_invalid_ids(self, task_id: str) -> None:
        with pytest.raises(ValidationError):
            TaskRecord(id=task_id)

    def test_dependencies_deduplicated_in_order(self) -> None:
        task = TaskRecord(
            id="api-003",
            dependencies=["api-002", "backend-001", "api-002", " backend-001 "],
        )
        assert task.dependencies == ("api-002", "backend-001")

    def test_single_dependency_string(self) -> None:
        assert TaskRecord(id="api-003", dependencies="api-002").dependencies == ("api-002",)

    def test_self_dependency_rejected(self) -> None:
        with pytest.raises(SelfDependencyError) as exc_info:
            TaskRecord(id="api-003", dependencies=["api-001", "api-003"])
        assert exc_info.value.task_id == "api-003"

    def test_records_are_frozen(self) -> None:
        task = TaskRecord(id="api-001")
        with pytest.raises(ValidationError):
            task.status = TaskStatus.DONE  # type: ignore[misc]


class TestDoneness:
    def test_done_is_done(self) -> None:
        task = TaskRecord(id="api-001", status=TaskStatus.DONE)
        assert task.is_done
        assert not task.is_active

    def test_archived_counts_as_done(self) -> None:
        task = TaskRecord(id="api-001", status=TaskStatus.DOING, archived=True)
        assert task.is_done

    @pytest.mark.parametrize(
        ("status", "workable"),
        [
            (TaskStatus.TODO, True),
            (TaskStatus.DOING, True),
            (TaskStatus.REVIEW, True),
            (TaskStatus.DONE, False),
            (TaskStatus.BLOCKED, False),
        ],
    )
    def test_workable_statuses(self, status: TaskStatus, workable: bool) -> None:
        assert status.is_workable is workable


class TestValidationErrors:
    def test_cycle_error_message(self) -> None:
        err = CycleError([["a-1", "b-1", "a-1"]])
        assert "a-1 -> b-1 -> a-1" in str(err)
        assert err.cycles == [["a-1", "b-1", "a-1"]]

    def test_missing_dependency_message(self) -> None:
        err = MissingDependencyError({"api-002": ("ghost-001",)})
        assert "api-002 -> ghost-001" in str(err)
        assert err.missing == {"api-002": ("ghost-001",)}
