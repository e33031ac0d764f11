"""Tests for MarkdownTaskStore."""

import frontmatter
import pytest

from taskguard.core.tasks.models import TaskStatus
from taskguard.core.tasks.store import MarkdownTaskStore, TaskStore, TaskStoreError


@pytest.fixture
def store(project_dir):
    return MarkdownTaskStore(project_dir)


class TestLoadTasks:
    def test_satisfies_protocol(self, store) -> None:
        assert isinstance(store, TaskStore)

    def test_empty_project(self, store) -> None:
        assert store.load_tasks() == []

    def test_missing_tasks_dir(self, tmp_path) -> None:
        assert MarkdownTaskStore(tmp_path / "nowhere").load_tasks() == []

    def test_loads_active_and_archived(self, store, write_task) -> None:
        write_task("backend-001", "done")
        write_task("backend-002", "doing", ["backend-001"], body="Implement it.")
        write_task("api-001", "done", archived=True)

        tasks = {t.id: t for t in store.load_tasks()}

        assert set(tasks) == {"backend-001", "backend-002", "api-001"}
        assert tasks["backend-002"].status == TaskStatus.DOING
        assert tasks["backend-002"].dependencies == ("backend-001",)
        assert tasks["backend-002"].area == "backend"
        assert tasks["backend-002"].body.strip() == "Implement it."
        assert tasks["backend-002"].last_modified is not None
        assert tasks["api-001"].archived is True
        assert tasks["backend-001"].archived is False

    def test_area_from_directory(self, store, project_dir) -> None:
        area_dir = project_dir / "tasks" / "infra"
        area_dir.mkdir()
        (area_dir / "infra-001.md").write_text("---\nid: infra-001\n---\nBody\n")

        (task,) = store.load_tasks()
        assert task.area == "infra"
        assert task.status == TaskStatus.TODO

    def test_bad_files_are_skipped(self, store, project_dir, write_task) -> None:
        write_task("backend-001")
        bad = project_dir / "tasks" / "backend"
        (bad / "notes.md").write_text("# just notes\n")
        (bad / "self-001.md").write_text("---\nid: self-001\ndependencies: [self-001]\n---\n")

        tasks = store.load_tasks()

        assert [t.id for t in tasks] == ["backend-001"]
        assert len(store.load_errors) == 2

    def test_duplicate_id_keeps_active_copy(self, store, write_task) -> None:
        write_task("backend-001", "doing")
        write_task("backend-001", "done", archived=True)

        (task,) = store.load_tasks()
        assert task.archived is False
        assert any("duplicate" in str(e) for e in store.load_errors)

    def test_load_error_keeps_readable_front_matter(self, store, project_dir) -> None:
        path = project_dir / "tasks" / "api" / "api-002.md"
        path.parent.mkdir()
        path.write_text("---\nid: api-002\nstatus: in-progress\ndependencies: [api-001]\n---\n")

        assert store.load_tasks() == []

        (error,) = store.load_errors
        assert error.path.name == "api-002.md"
        assert error.task_id == "api-002"
        assert error.dependencies == ("api-001",)
        assert error.status == "in-progress"
        assert error.may_be_active is True
        assert str(error).startswith(str(error.path))

    def test_load_error_with_broken_yaml(self, store, project_dir) -> None:
        path = project_dir / "tasks" / "api-009.md"
        path.write_text("---\nid: api-009\ndependencies: [api-001\n---\n")

        assert store.load_tasks() == []

        (error,) = store.load_errors
        assert error.dependencies is None
        assert error.label == "api-009.md"

    def test_done_or_archived_load_errors_are_not_active(self, store, project_dir) -> None:
        done = project_dir / "tasks" / "api-003.md"
        done.write_text("---\nid: api-003\nstatus: done\ndependencies: [api-003]\n---\n")
        archived = project_dir / ".taskguard" / "archive" / "api-004.md"
        archived.parent.mkdir(parents=True)
        archived.write_text("---\nid: api-004\nstatus: someday\n---\n")

        store.load_tasks()

        assert len(store.load_errors) == 2
        assert not any(error.may_be_active for error in store.load_errors)


class TestSetStatus:
    def test_rewrites_front_matter(self, store, write_task) -> None:
        path = write_task("backend-001", "todo", body="Keep me.")

        updated = store.set_status("backend-001", TaskStatus.REVIEW)

        assert updated.status == TaskStatus.REVIEW
        post = frontmatter.load(path)
        assert post["status"] == "review"
        assert post["title"] == "Task backend-001"
        assert post.content.strip() == "Keep me."

    def test_refuses_archived_task(self, store, write_task) -> None:
        write_task("backend-001", "done", archived=True)
        with pytest.raises(TaskStoreError, match="restore"):
            store.set_status("backend-001", TaskStatus.TODO)

    def test_unknown_task(self, store) -> None:
        with pytest.raises(TaskStoreError) as exc_info:
            store.set_status("ghost-001", TaskStatus.DONE)
        assert exc_info.value.task_id == "ghost-001"


class TestArchiveRestore:
    def test_archive_moves_file(self, store, project_dir, write_task) -> None:
        source = write_task("backend-001", "done")

        target = store.archive_task("backend-001")

        assert target == project_dir / ".taskguard" / "archive" / "backend" / "backend-001.md"
        assert target.exists()
        assert not source.exists()
        (task,) = store.load_tasks()
        assert task.archived is True

    def test_restore_moves_back(self, store, project_dir, write_task) -> None:
        write_task("backend-001", "done", archived=True)

        target = store.restore_task("backend-001")

        assert target == project_dir / "tasks" / "backend" / "backend-001.md"
        (task,) = store.load_tasks()
        assert task.archived is False

    def test_archive_twice_refused(self, store, write_task) -> None:
        write_task("backend-001", "done")
        store.archive_task("backend-001")
        with pytest.raises(TaskStoreError, match="already archived"):
            store.archive_task("backend-001")

    def test_restore_active_refused(self, store, write_task) -> None:
        write_task("backend-001", "done")
        with pytest.raises(TaskStoreError, match="not archived"):
            store.restore_task("backend-001")

    def test_existing_target_refused(self, store, project_dir, write_task) -> None:
        write_task("backend-001", "done")
        clash = project_dir / ".taskguard" / "archive" / "backend"
        clash.mkdir(parents=True)
        (clash / "backend-001.md").write_text("---\nid: other-001\n---\n")
        store.load_tasks()

        with pytest.raises(TaskStoreError, match="already exists"):
            store.archive_task("backend-001")


class TestDelete:
    def test_delete_removes_file_and_empty_area(self, store, project_dir, write_task) -> None:
        path = write_task("backend-001", "done")

        store.delete_task("backend-001")

        assert not path.exists()
        assert not (project_dir / "tasks" / "backend").exists()
        assert store.load_tasks() == []

    def test_delete_keeps_non_empty_area(self, store, project_dir, write_task) -> None:
        write_task("backend-001", "done")
        write_task("backend-002")

        store.delete_task("backend-001")

        assert (project_dir / "tasks" / "backend").exists()
        assert [t.id for t in store.load_tasks()] == ["backend-002"]
