"""Pytest fixtures for History Weaver tests."""

from datetime import date

import pytest

from weaver.config import WeaverSettings
from weaver.models import WeaveConfig
from weaver.paths import WorkspacePaths


@pytest.fixture
def temp_workspace(tmp_path):
    """Create a temporary workspace root.

    Args:
        tmp_path: pytest's built-in temporary directory fixture

    Returns:
        Path to temporary workspace root
    """
    workspace_root = tmp_path / "test_workspace"
    workspace_root.mkdir()
    return workspace_root


@pytest.fixture
def workspace_paths(temp_workspace):
    """Create WorkspacePaths with directories and an empty ledger."""
    paths = WorkspacePaths.from_settings(WeaverSettings(workspace_path=temp_workspace))

    for directory in paths.get_all_directories():
        directory.mkdir(parents=True, exist_ok=True)

    paths.ledger_file.touch()
    return paths


@pytest.fixture
def weave_config():
    """A valid two-day configuration carrying a token."""
    return WeaveConfig(
        username="alice",
        target_repo="demo",
        github_token="ghp_secret_token",
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 2),
        tech_stack="Python & Data Science",
        strategy="github-flow",
        intensity=5,
        achievements=["pull_shark"],
    )
