"""Pydantic models for History Weaver."""

from .config import BranchingStrategy, ConfigIssue, WeaveConfig, validate_config
from .event import (
    EventKind,
    HistoryEvent,
    Plan,
    is_chronological,
    load_plan,
    save_plan,
    sort_plan,
)
from .ledger import LedgerEvent
from .run import (
    EventOutcome,
    LogEntry,
    LogLevel,
    RunOutcome,
    RunSnapshot,
    RunState,
    RunStats,
)

__all__ = [
    # Configuration
    "BranchingStrategy",
    "ConfigIssue",
    "WeaveConfig",
    "validate_config",
    # Events and plans
    "EventKind",
    "HistoryEvent",
    "Plan",
    "is_chronological",
    "sort_plan",
    "save_plan",
    "load_plan",
    # Runs
    "LogLevel",
    "LogEntry",
    "RunState",
    "EventOutcome",
    "RunStats",
    "RunSnapshot",
    "RunOutcome",
    "LedgerEvent",
]
