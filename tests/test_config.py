"""Tests for settings and workspace paths."""

from pathlib import Path

from weaver.catalog import ACHIEVEMENTS, describe_achievements, default_config_values
from weaver.config import WeaverSettings
from weaver.paths import WorkspacePaths

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11


def _clear_env(monkeypatch):
    for name in [
        "WEAVER_WORKSPACE",
        "WEAVER_LLM_ENGINE",
        "WEAVER_LLM_MODEL",
        "WEAVER_PACING_MS",
        "WEAVER_MAX_RETRIES",
        "WEAVER_DRAFT_REVIEW_COMMENTS",
    ]:
        monkeypatch.delenv(name, raising=False)


def test_settings_defaults(tmp_path, monkeypatch):
    """Without env or config file, defaults apply under the repo root."""
    _clear_env(monkeypatch)
    (tmp_path / "pyproject.toml").write_text("")
    monkeypatch.chdir(tmp_path)

    settings = WeaverSettings.from_env()

    assert settings.workspace_path == (tmp_path / ".weaver").resolve()
    assert settings.llm_engine == "auto"
    assert settings.pacing_ms == 800
    assert settings.max_retries == 0
    assert settings.draft_review_comments is True


def test_settings_read_repo_config(tmp_path, monkeypatch):
    """Values from .weaver/config.toml are picked up."""
    _clear_env(monkeypatch)
    (tmp_path / "pyproject.toml").write_text("")
    (tmp_path / ".weaver").mkdir()
    (tmp_path / ".weaver" / "config.toml").write_text(
        '[settings]\nllm_engine = "fake"\npacing_ms = 0\ndraft_review_comments = false\n'
    )
    monkeypatch.chdir(tmp_path)

    settings = WeaverSettings.from_env()

    assert settings.llm_engine == "fake"
    assert settings.pacing_ms == 0
    assert settings.draft_review_comments is False


def test_env_overrides_config_file(tmp_path, monkeypatch):
    """WEAVER_* variables win over the config file; the CLI path wins over both."""
    _clear_env(monkeypatch)
    (tmp_path / "pyproject.toml").write_text("")
    (tmp_path / ".weaver").mkdir()
    (tmp_path / ".weaver" / "config.toml").write_text('[settings]\npacing_ms = 0\n')
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("WEAVER_PACING_MS", "250")
    monkeypatch.setenv("WEAVER_WORKSPACE", str(tmp_path / "env_ws"))

    settings = WeaverSettings.from_env()
    assert settings.pacing_ms == 250
    assert settings.workspace_path == (tmp_path / "env_ws").resolve()

    settings = WeaverSettings.from_env(cli_workspace_path=str(tmp_path / "cli_ws"))
    assert settings.workspace_path == (tmp_path / "cli_ws").resolve()


def test_settings_read_from_chosen_workspace(tmp_path, monkeypatch):
    """A workspace given on the CLI or in env supplies its own config.toml."""
    _clear_env(monkeypatch)
    (tmp_path / "pyproject.toml").write_text("")
    (tmp_path / ".weaver").mkdir()
    (tmp_path / ".weaver" / "config.toml").write_text("[settings]\npacing_ms = 0\n")
    workspace = tmp_path / "ws"
    workspace.mkdir()
    (workspace / "config.toml").write_text('[settings]\npacing_ms = 5\nllm_engine = "fake"\n')
    monkeypatch.chdir(tmp_path)

    settings = WeaverSettings.from_env(cli_workspace_path=str(workspace))
    assert settings.pacing_ms == 5
    assert settings.llm_engine == "fake"

    monkeypatch.setenv("WEAVER_WORKSPACE", str(workspace))
    assert WeaverSettings.from_env().pacing_ms == 5


def test_workspace_without_config_uses_repo_config(tmp_path, monkeypatch):
    """A workspace with no config.toml falls back to the repo-local file."""
    _clear_env(monkeypatch)
    (tmp_path / "pyproject.toml").write_text("")
    (tmp_path / ".weaver").mkdir()
    (tmp_path / ".weaver" / "config.toml").write_text("[settings]\npacing_ms = 0\n")
    monkeypatch.chdir(tmp_path)

    settings = WeaverSettings.from_env(cli_workspace_path=str(tmp_path / "empty_ws"))

    assert settings.pacing_ms == 0


def test_to_toml_str_round_trips():
    """The starter settings file parses back to the same values."""
    settings = WeaverSettings(llm_engine="fake", pacing_ms=100)

    data = tomllib.loads(settings.to_toml_str())["settings"]

    assert data["llm_engine"] == "fake"
    assert data["pacing_ms"] == 100
    assert data["github_api_url"] == "https://api.github.com"


def test_workspace_paths_layout(temp_workspace):
    """Workspace holds plans, traces, settings and the ledger."""
    paths = WorkspacePaths(temp_workspace)

    assert paths.ledger_file == temp_workspace / "ledger.jsonl"
    assert paths.config_file == temp_workspace / "config.toml"
    assert paths.traces_date_folder("2024-01-01") == temp_workspace / "traces" / "2024-01-01"
    assert paths.plan_file("20240101T000000Z") == temp_workspace / "plans" / "plan_20240101T000000Z.json"
    assert set(paths.get_all_directories()) == {temp_workspace, paths.plans, paths.traces}


def test_achievement_catalog():
    """The catalog has the five known achievements."""
    assert [a.id for a in ACHIEVEMENTS] == ["pull_shark", "galaxy_brain", "pair_extraordinaire", "yolo", "quickdraw"]


def test_describe_achievements_passes_unknown_ids():
    """Unknown ids are kept verbatim."""
    described = describe_achievements(["yolo", "speedrunner"])

    assert described[0].startswith("YOLO (yolo)")
    assert described[1] == "speedrunner"


def test_default_config_values_one_year_window():
    """Starter config covers the past year."""
    from datetime import date

    values = default_config_values(today=date(2024, 2, 29))

    assert values["start_date"] == date(2023, 2, 28)
    assert values["end_date"] == date(2024, 2, 29)
    assert values["intensity"] == 7
