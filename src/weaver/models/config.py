"""Pydantic models for the weaving run configuration."""

from datetime import date
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, model_validator

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11

from ..errors import ConfigError

BranchingStrategy = Literal["gitflow", "github-flow", "trunk"]

INTENSITY_MIN = 1
INTENSITY_MAX = 10


def split_repo_url(value: str) -> tuple[str, str] | None:
    """Split a pasted GitHub URL into (owner, repo).

    Returns None when the value is not a github.com URL with at least an
    owner and a repository path segment.
    """
    text = value.strip()
    if "github.com" not in text:
        return None
    if "://" not in text:
        text = f"https://{text}"
    parts = [part for part in urlparse(text).path.split("/") if part]
    if len(parts) < 2:
        return None
    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return owner, repo


class WeaveConfig(BaseModel):
    """Immutable input to a single plan/weave session.

    The access token is opaque: it is excluded from serialization and repr
    so it never ends up in plans, traces or the ledger.
    """

    username: str = Field(description="Repository owner / GitHub username")
    target_repo: str = Field(description="Target repository name")
    github_token: str = Field(
        default="",
        repr=False,
        exclude=True,
        description="Personal access token (never logged)",
    )
    start_date: date = Field(description="First day of the history window (inclusive)")
    end_date: date = Field(description="Last day of the history window (inclusive)")
    tech_stack: str = Field(default="React & TypeScript", description="Technology stack label")
    strategy: BranchingStrategy = Field(default="gitflow", description="Branching strategy tag")
    intensity: int = Field(default=7, description="Events-per-week weighting hint (1-10)")
    include_lfs: bool = Field(default=False, description="Include large-file-storage hint")
    achievements: list[str] = Field(
        default_factory=list,
        description="Requested achievement ids (hints for the generator)",
    )

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def _split_pasted_url(cls, data: Any) -> Any:
        # A pasted repository URL sets both owner and repository name
        if isinstance(data, dict) and isinstance(data.get("target_repo"), str):
            split = split_repo_url(data["target_repo"])
            if split:
                data = {**data, "username": split[0], "target_repo": split[1]}
        return data

    def with_token(self, token: str) -> "WeaveConfig":
        """Return a copy carrying the given access token."""
        return self.model_copy(update={"github_token": token})

    @classmethod
    def from_toml(cls, path: Path, token: str | None = None) -> "WeaveConfig":
        """Load a run configuration from a TOML file.

        The token is never read from the file; pass it explicitly.

        Raises:
            ConfigError: If the file is missing, malformed or fails validation
        """
        if not path.exists():
            raise ConfigError(f"Run config not found: {path}")

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Malformed run config {path}: {e}") from e

        # Allow either a flat file or a [weave] table
        if isinstance(data.get("weave"), dict):
            data = data["weave"]
        data.pop("github_token", None)

        try:
            config = cls(**data, github_token=token or "")
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "config"
            raise ConfigError(f"{field}: {first.get('msg', 'invalid value')}") from e

        issue = validate_config(config)
        if issue is not None:
            raise ConfigError(f"{issue.field}: {issue.reason}")
        return config


class ConfigIssue(BaseModel):
    """First invariant violated by a configuration."""

    field: str
    reason: str

    model_config = {"frozen": True}


def validate_config(config: WeaveConfig) -> ConfigIssue | None:
    """Check configuration invariants.

    Unknown achievement ids are deliberately not reported; they are passed
    to the generator as descriptive hints.

    Returns:
        None when the configuration is valid, else the first ConfigIssue
    """
    if not config.username.strip():
        return ConfigIssue(field="username", reason="must not be empty")
    if not config.target_repo.strip():
        return ConfigIssue(field="target_repo", reason="must not be empty")
    if isinstance(config.intensity, bool) or not isinstance(config.intensity, int):
        return ConfigIssue(field="intensity", reason="must be an integer")
    if not INTENSITY_MIN <= config.intensity <= INTENSITY_MAX:
        return ConfigIssue(
            field="intensity",
            reason=f"must be between {INTENSITY_MIN} and {INTENSITY_MAX}, got {config.intensity}",
        )
    if config.start_date > config.end_date:
        return ConfigIssue(
            field="start_date",
            reason=f"start date {config.start_date} is after end date {config.end_date}",
        )
    if config.strategy not in ("gitflow", "github-flow", "trunk"):
        return ConfigIssue(field="strategy", reason=f"unknown strategy '{config.strategy}'")
    return None
