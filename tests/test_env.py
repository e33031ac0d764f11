"""Tests for layered .env loading."""

import os
from unittest.mock import patch

import pytest

from taskguard.core.config.env import load_layered_env


@pytest.fixture(autouse=True)
def restore_environ():
    with patch.dict(os.environ):
        for name in ("TG_TEST_A", "TG_TEST_B", "TG_TEST_SHELL"):
            os.environ.pop(name, None)
        yield


class TestLoadLayeredEnv:
    def test_project_overrides_user(self, tmp_path, project_dir) -> None:
        user_env = tmp_path / "xdg" / "taskguard" / ".env"
        user_env.parent.mkdir(parents=True)
        user_env.write_text("TG_TEST_A=user\nTG_TEST_B=user\n")
        (project_dir / ".env").write_text("TG_TEST_A=project\n")

        applied = load_layered_env(project_dir=project_dir)

        assert applied == {"TG_TEST_A": "project", "TG_TEST_B": "user"}
        assert os.environ["TG_TEST_A"] == "project"

    def test_env_local_wins_over_env(self, project_dir) -> None:
        (project_dir / ".env").write_text("TG_TEST_A=shared\n")
        (project_dir / ".env.local").write_text("TG_TEST_A=mine\n")

        load_layered_env(project_dir=project_dir)

        assert os.environ["TG_TEST_A"] == "mine"

    def test_shell_environment_wins(self, project_dir) -> None:
        os.environ["TG_TEST_SHELL"] = "shell"
        (project_dir / ".env").write_text("TG_TEST_SHELL=file\n")

        applied = load_layered_env(project_dir=project_dir)

        assert applied == {}
        assert os.environ["TG_TEST_SHELL"] == "shell"

    def test_explicit_paths(self, tmp_path) -> None:
        env_file = tmp_path / "custom.env"
        env_file.write_text("TG_TEST_B=custom\n")

        applied = load_layered_env(
            project_dir=tmp_path, user_env_paths=[], project_env_paths=[env_file]
        )

        assert applied == {"TG_TEST_B": "custom"}

    def test_missing_files(self, project_dir) -> None:
        assert load_layered_env(project_dir=project_dir) == {}
