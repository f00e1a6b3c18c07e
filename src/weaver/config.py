"""Application settings for History Weaver."""

import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11

LlmEngine = Literal["auto", "fake", "gemini", "openai"]


def _find_repo_root(start_dir: Path) -> Path:
    """Find repository root by walking upward looking for .git or pyproject.toml."""
    current_dir = start_dir

    while True:
        if (current_dir / ".git").exists() or (current_dir / "pyproject.toml").exists():
            return current_dir

        parent_dir = current_dir.parent

        # Stop at filesystem root
        if parent_dir == current_dir:
            return start_dir

        current_dir = parent_dir


def _load_config_data(config_file: Path) -> Optional[dict]:
    """Load settings data from a config.toml if it exists."""
    if not config_file.exists():
        return None

    try:
        with open(config_file, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        # Malformed settings file: fall back to defaults
        return None


def _settings_section(data: Optional[dict]) -> dict:
    if not data:
        return {}
    section = data.get("settings", data)
    return section if isinstance(section, dict) else {}


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


class WeaverSettings(BaseModel):
    """Settings shared by the plan and weave commands."""

    workspace_path: Path = Field(default_factory=lambda: Path("./.weaver"))
    llm_engine: LlmEngine = Field(default="auto")
    llm_model: Optional[str] = Field(default=None)
    llm_timeout_seconds: int = Field(default=60)
    pacing_ms: int = Field(default=800, ge=0)
    max_retries: int = Field(default=0, ge=0)
    retry_backoff_seconds: float = Field(default=2.0, ge=0.0)
    github_api_url: str = Field(default="https://api.github.com")
    request_timeout_seconds: int = Field(default=30)
    draft_review_comments: bool = Field(default=True)

    model_config = {"frozen": False}

    @classmethod
    def from_env(cls, cli_workspace_path: Optional[str] = None) -> "WeaverSettings":
        """Load settings.

        Precedence: WEAVER_* environment variables, then the workspace's
        config.toml, then defaults. The workspace is the CLI option, else
        WEAVER_WORKSPACE, else repo-local .weaver/. When the workspace has
        no config.toml, repo-local .weaver/config.toml is used.
        """
        repo_root = _find_repo_root(Path.cwd())
        section = _settings_section(_load_config_data(repo_root / ".weaver" / "config.toml"))

        defaults = cls()

        def pick(env_name: str, key: str, default):
            if env_name in os.environ:
                return os.environ[env_name]
            if key in section:
                return section[key]
            return default

        if cli_workspace_path:
            workspace_path = Path(cli_workspace_path)
        else:
            workspace_path = Path(pick("WEAVER_WORKSPACE", "workspace_path", repo_root / ".weaver"))

        workspace_data = _load_config_data(workspace_path / "config.toml")
        if workspace_data is not None:
            section = _settings_section(workspace_data)

        return cls(
            workspace_path=workspace_path.resolve(),
            llm_engine=pick("WEAVER_LLM_ENGINE", "llm_engine", defaults.llm_engine),
            llm_model=pick("WEAVER_LLM_MODEL", "llm_model", defaults.llm_model) or None,
            llm_timeout_seconds=int(pick("WEAVER_LLM_TIMEOUT_SECONDS", "llm_timeout_seconds", defaults.llm_timeout_seconds)),
            pacing_ms=int(pick("WEAVER_PACING_MS", "pacing_ms", defaults.pacing_ms)),
            max_retries=int(pick("WEAVER_MAX_RETRIES", "max_retries", defaults.max_retries)),
            retry_backoff_seconds=float(
                pick("WEAVER_RETRY_BACKOFF_SECONDS", "retry_backoff_seconds", defaults.retry_backoff_seconds)
            ),
            github_api_url=pick("WEAVER_GITHUB_API_URL", "github_api_url", defaults.github_api_url),
            request_timeout_seconds=int(
                pick("WEAVER_REQUEST_TIMEOUT_SECONDS", "request_timeout_seconds", defaults.request_timeout_seconds)
            ),
            draft_review_comments=_env_bool(
                "WEAVER_DRAFT_REVIEW_COMMENTS",
                bool(section.get("draft_review_comments", defaults.draft_review_comments)),
            ),
        )

    def to_toml_str(self) -> str:
        """Generate a starter .weaver/config.toml."""
        model_line = f'llm_model = "{self.llm_model}"' if self.llm_model else '# llm_model = "gemini-2.5-flash"'
        return f"""# History Weaver settings

[settings]
# auto | fake | gemini | openai
llm_engine = "{self.llm_engine}"
{model_line}
llm_timeout_seconds = {self.llm_timeout_seconds}

# Delay between replayed events (milliseconds)
pacing_ms = {self.pacing_ms}

# Extra attempts for rate-limited events (0 = attempt once)
max_retries = {self.max_retries}
retry_backoff_seconds = {self.retry_backoff_seconds}

github_api_url = "{self.github_api_url}"
request_timeout_seconds = {self.request_timeout_seconds}
draft_review_comments = {str(self.draft_review_comments).lower()}
"""
