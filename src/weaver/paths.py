"""Workspace layout for History Weaver."""

from pathlib import Path

from .config import WeaverSettings


class WorkspacePaths:
    """Manages paths within the weaver workspace directory."""

    def __init__(self, root: Path):
        """Initialize workspace paths from root directory.

        Args:
            root: Root directory of the workspace (usually ./.weaver)
        """
        self.root = root

        self.plans = root / "plans"
        self.traces = root / "traces"

        self.config_file = root / "config.toml"
        self.ledger_file = root / "ledger.jsonl"

    @classmethod
    def from_settings(cls, settings: WeaverSettings) -> "WorkspacePaths":
        """Create WorkspacePaths from WeaverSettings."""
        return cls(settings.workspace_path)

    def get_all_directories(self) -> list[Path]:
        """Get list of all directories that should exist in the workspace."""
        return [self.root, self.plans, self.traces]

    def traces_date_folder(self, date_str: str) -> Path:
        """Get path to the trace folder for a specific date (YYYY-MM-DD)."""
        return self.traces / date_str

    def plan_file(self, stamp: str) -> Path:
        """Get path for a compiled plan file."""
        return self.plans / f"plan_{stamp}.json"
