"""Tests for configuration and event models."""

import json
from datetime import date, datetime, timezone

import pytest

from weaver.errors import ConfigError
from weaver.models.config import split_repo_url
from weaver.models import (
    EventKind,
    HistoryEvent,
    RunStats,
    EventOutcome,
    WeaveConfig,
    is_chronological,
    load_plan,
    save_plan,
    sort_plan,
    validate_config,
)


def _event(event_id, when, kind="commit", **extra):
    data = {"id": event_id, "date": when, "type": kind, "title": f"title {event_id}", "author": "alice"}
    data.update(extra)
    return HistoryEvent.model_validate(data)


def test_validate_config_accepts_valid(weave_config):
    """A well-formed configuration has no issue."""
    assert validate_config(weave_config) is None


def test_validate_config_rejects_empty_username(weave_config):
    """Empty username is reported."""
    issue = validate_config(weave_config.model_copy(update={"username": "  "}))
    assert issue is not None
    assert issue.field == "username"


def test_validate_config_rejects_empty_repo(weave_config):
    """Empty repository name is reported."""
    issue = validate_config(weave_config.model_copy(update={"target_repo": ""}))
    assert issue.field == "target_repo"


@pytest.mark.parametrize("intensity", [0, 11, -3])
def test_validate_config_rejects_out_of_range_intensity(weave_config, intensity):
    """Intensity must be within 1..10."""
    issue = validate_config(weave_config.model_copy(update={"intensity": intensity}))
    assert issue.field == "intensity"


def test_validate_config_rejects_inverted_window(weave_config):
    """Start date after end date is reported."""
    issue = validate_config(weave_config.model_copy(update={"start_date": date(2024, 2, 1)}))
    assert issue.field == "start_date"


def test_validate_config_single_day_window(weave_config):
    """start == end is a valid window."""
    config = weave_config.model_copy(update={"end_date": weave_config.start_date})
    assert validate_config(config) is None


def test_validate_config_unknown_achievement_is_not_an_issue(weave_config):
    """Unknown achievement ids are passed through as hints."""
    config = weave_config.model_copy(update={"achievements": ["made_up"]})
    assert validate_config(config) is None


def test_token_never_serialized_or_repr(weave_config):
    """The token is excluded from dumps and repr."""
    assert "github_token" not in weave_config.model_dump()
    assert "ghp_secret_token" not in weave_config.model_dump_json()
    assert "ghp_secret_token" not in repr(weave_config)
    assert weave_config.github_token == "ghp_secret_token"


def test_from_toml_reads_weave_table(tmp_path):
    """Config file with a [weave] table loads; token comes from the caller."""
    path = tmp_path / "weave.toml"
    path.write_text(
        """[weave]
username = "bob"
target_repo = "site"
start_date = 2024-03-01
end_date = 2024-03-31
strategy = "trunk"
intensity = 3
github_token = "from-file"
""",
        encoding="utf-8",
    )

    config = WeaveConfig.from_toml(path, token="from-cli")

    assert config.username == "bob"
    assert config.strategy == "trunk"
    assert config.start_date == date(2024, 3, 1)
    assert config.github_token == "from-cli"


def test_from_toml_invalid_config_raises(tmp_path):
    """Invariant violations surface as ConfigError."""
    path = tmp_path / "weave.toml"
    path.write_text(
        'username = "bob"\ntarget_repo = "site"\nstart_date = 2024-03-01\nend_date = 2024-03-31\nintensity = 42\n',
        encoding="utf-8",
    )

    with pytest.raises(ConfigError, match="intensity"):
        WeaveConfig.from_toml(path)


def test_from_toml_missing_file(tmp_path):
    """Missing file raises ConfigError."""
    with pytest.raises(ConfigError, match="not found"):
        WeaveConfig.from_toml(tmp_path / "nope.toml")


def test_from_toml_splits_pasted_repo_url(tmp_path):
    """A GitHub URL in target_repo sets both owner and repository."""
    path = tmp_path / "weave.toml"
    path.write_text(
        """[weave]
target_repo = "https://github.com/carol/dotfiles.git"
start_date = 2024-03-01
end_date = 2024-03-31
""",
        encoding="utf-8",
    )

    config = WeaveConfig.from_toml(path)

    assert config.username == "carol"
    assert config.target_repo == "dotfiles"


def test_repo_url_overrides_username(weave_config):
    """The URL owner wins over a separately given username."""
    data = weave_config.model_dump()
    data["target_repo"] = "github.com/bob/site/tree/main"

    config = WeaveConfig(**data)

    assert (config.username, config.target_repo) == ("bob", "site")


def test_split_repo_url():
    """Only github.com URLs with owner and repo segments split."""
    assert split_repo_url("https://github.com/alice/demo") == ("alice", "demo")
    assert split_repo_url("http://www.github.com/alice/demo/") == ("alice", "demo")
    assert split_repo_url("https://github.com/alice") is None
    assert split_repo_url("demo") is None
    assert split_repo_url("https://gitlab.com/alice/demo") is None


def test_history_event_accepts_generator_shape():
    """Generator JSON uses 'type' and 'filesChanged'; nulls get defaults."""
    event = HistoryEvent.model_validate(
        {
            "id": "evt_1",
            "date": "2024-01-01T10:00:00Z",
            "type": "pr",
            "title": "Add login",
            "branch": "feature/login",
            "filesChanged": None,
            "author": "alice",
            "tags": None,
        }
    )

    assert event.kind == EventKind.PR
    assert event.files_changed == 0
    assert event.tags == []
    assert event.date == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def test_history_event_date_only_string_is_utc_midnight():
    """Date-only strings parse to midnight UTC."""
    event = _event("evt_1", "2024-01-05")
    assert event.date == datetime(2024, 1, 5, tzinfo=timezone.utc)


def test_history_event_rejects_unknown_kind():
    """Unknown event kinds are rejected."""
    with pytest.raises(ValueError):
        _event("evt_1", "2024-01-01", kind="deploy")


def test_history_event_rejects_negative_files_changed():
    """filesChanged must be non-negative."""
    with pytest.raises(ValueError):
        _event("evt_1", "2024-01-01", filesChanged=-1)


def test_sort_plan_is_stable_and_chronological():
    """sort_plan orders by date, keeping ties in input order."""
    plan = [
        _event("b", "2024-01-02T00:00:00Z"),
        _event("a", "2024-01-01T00:00:00Z"),
        _event("c", "2024-01-02T00:00:00Z"),
    ]

    assert not is_chronological(plan)
    ordered = sort_plan(plan)
    assert [e.id for e in ordered] == ["a", "b", "c"]
    assert is_chronological(ordered)


def test_save_and_load_plan_preserves_events(tmp_path):
    """A saved plan uses generator field names and loads back unchanged."""
    plan = [_event("evt_1", "2024-01-01T09:30:00Z", filesChanged=3, tags=["feat"])]
    path = save_plan(plan, tmp_path / "plans" / "plan.json")

    data = json.loads(path.read_text())
    assert data[0]["type"] == "commit"
    assert data[0]["filesChanged"] == 3
    assert load_plan(path) == plan


def test_load_plan_rejects_non_array(tmp_path):
    """A plan file must hold a JSON array."""
    path = tmp_path / "plan.json"
    path.write_text('{"id": "evt_1"}')
    with pytest.raises(ValueError, match="JSON array"):
        load_plan(path)


def test_run_stats_from_plan():
    """Stats count kinds, sum files and tally outcomes."""
    plan = [
        _event("1", "2024-01-01", filesChanged=4),
        _event("2", "2024-01-01", kind="pr"),
        _event("3", "2024-01-01", kind="issue"),
        _event("4", "2024-01-01", filesChanged=2),
    ]
    outcomes = [
        EventOutcome(event_id="1", kind=EventKind.COMMIT, ok=True, message="ok"),
        EventOutcome(event_id="2", kind=EventKind.PR, ok=False, message="boom"),
    ]

    stats = RunStats.from_plan(plan, outcomes, ["yolo"])

    assert stats.total_commits == 2
    assert stats.total_prs == 1
    assert stats.total_issues == 1
    assert stats.files_changed == 6
    assert stats.events_succeeded == 1
    assert stats.events_failed == 1
    assert stats.achievements_requested == ["yolo"]
