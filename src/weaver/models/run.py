"""Pydantic models for weaving runs: log entries, progress and outcomes."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .event import EventKind, Plan


class LogLevel(str, Enum):
    """Severity of a run log entry."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class RunState(str, Enum):
    """Weaving executor states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    RUNNING = "running"
    DONE = "done"


class LogEntry(BaseModel):
    """One line of the run log.

    The timestamp is wall-clock time at recording, not the event date.
    """

    timestamp: datetime = Field(description="Recording time (UTC)")
    level: LogLevel = Field(description="Severity")
    message: str = Field(description="Human-readable message")

    model_config = {"frozen": True}


class EventOutcome(BaseModel):
    """Result of replaying one event against the remote."""

    event_id: str
    kind: EventKind
    ok: bool
    message: str
    attempts: int = 1

    model_config = {"frozen": True}


class RunStats(BaseModel):
    """Post-run summary counts."""

    total_commits: int = 0
    total_prs: int = 0
    total_issues: int = 0
    files_changed: int = 0
    events_succeeded: int = 0
    events_failed: int = 0
    achievements_requested: list[str] = Field(default_factory=list)

    @classmethod
    def from_plan(
        cls,
        plan: Plan,
        outcomes: list[EventOutcome] | None = None,
        achievements: list[str] | None = None,
    ) -> "RunStats":
        """Derive stats from the plan and any per-event outcomes."""
        outcomes = outcomes or []
        return cls(
            total_commits=sum(1 for e in plan if e.kind == EventKind.COMMIT),
            total_prs=sum(1 for e in plan if e.kind == EventKind.PR),
            total_issues=sum(1 for e in plan if e.kind == EventKind.ISSUE),
            files_changed=sum(e.files_changed for e in plan),
            events_succeeded=sum(1 for o in outcomes if o.ok),
            events_failed=sum(1 for o in outcomes if not o.ok),
            achievements_requested=list(achievements or []),
        )


class RunSnapshot(BaseModel):
    """Read-only view of a run's observable state."""

    run_id: str
    state: RunState
    progress: float = Field(ge=0.0, le=100.0)
    log: tuple[LogEntry, ...] = ()

    model_config = {"frozen": True}


class RunOutcome(BaseModel):
    """Final result of weave()."""

    run_id: str
    state: RunState
    connected: bool
    cancelled: bool = False
    fatal_error: str | None = None
    outcomes: list[EventOutcome] = Field(default_factory=list)
    stats: RunStats = Field(default_factory=RunStats)
    log: tuple[LogEntry, ...] = ()
    progress: float = 100.0
    started_at: datetime
    finished_at: datetime

    @property
    def succeeded(self) -> bool:
        """True when connected, not cancelled and every event succeeded."""
        return (
            self.connected
            and not self.cancelled
            and self.fatal_error is None
            and all(o.ok for o in self.outcomes)
        )
