"""Run-scoped log buffer and progress for a weaving run."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

from .ledger import LedgerWriter
from .models.run import LogEntry, LogLevel, RunSnapshot, RunState

logger = logging.getLogger(__name__)

LogListener = Callable[[LogEntry], None]
ProgressListener = Callable[[float], None]

_LOGGING_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.SUCCESS: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class RunContext:
    """Observable state of one weaving run.

    The log is append-only and progress never decreases while a run is
    active. reset() starts a fresh run: it clears the log, zeroes progress
    and assigns a new run id. Observers get immutable snapshots.
    """

    def __init__(self, ledger_writer: LedgerWriter | None = None):
        self.ledger_writer = ledger_writer
        self.run_id = str(uuid.uuid4())
        self.state = RunState.IDLE
        self._log: list[LogEntry] = []
        self._progress = 0.0
        self._progress_updates: list[float] = []
        self._log_listeners: list[LogListener] = []
        self._progress_listeners: list[ProgressListener] = []

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def progress_updates(self) -> tuple[float, ...]:
        """Every progress value published during the current run."""
        return tuple(self._progress_updates)

    def subscribe(
        self,
        on_log: LogListener | None = None,
        on_progress: ProgressListener | None = None,
    ) -> None:
        """Register listeners for new log entries and progress updates."""
        if on_log:
            self._log_listeners.append(on_log)
        if on_progress:
            self._progress_listeners.append(on_progress)

    def reset(self) -> str:
        """Start a new run: clear the log, zero progress, go idle."""
        self.run_id = str(uuid.uuid4())
        if self.ledger_writer:
            self.ledger_writer.start_run(self.run_id)
        self.state = RunState.IDLE
        self._log = []
        self._progress = 0.0
        self._progress_updates = []
        return self.run_id

    def transition(self, state: RunState) -> None:
        logger.debug(f"Run {self.run_id}: {self.state.value} -> {state.value}")
        self.state = state

    def record(self, level: LogLevel, message: str) -> LogEntry:
        """Append a log entry and mirror it to logging and the ledger."""
        entry = LogEntry(timestamp=datetime.now(timezone.utc), level=level, message=message)
        self._log.append(entry)

        logger.log(_LOGGING_LEVELS[level], message)
        if self.ledger_writer:
            self.ledger_writer.append_event(
                event_type="RUN_LOG",
                payload={"level": level.value, "message": message},
            )
        for listener in self._log_listeners:
            listener(entry)
        return entry

    def info(self, message: str) -> LogEntry:
        return self.record(LogLevel.INFO, message)

    def success(self, message: str) -> LogEntry:
        return self.record(LogLevel.SUCCESS, message)

    def warning(self, message: str) -> LogEntry:
        return self.record(LogLevel.WARNING, message)

    def error(self, message: str) -> LogEntry:
        return self.record(LogLevel.ERROR, message)

    def set_progress(self, value: float) -> float:
        """Publish a progress value, clamped to [0, 100].

        Values below the current progress are ignored.
        """
        value = max(0.0, min(100.0, float(value)))
        if value < self._progress:
            return self._progress
        self._progress = value
        self._progress_updates.append(value)
        for listener in self._progress_listeners:
            listener(value)
        return value

    def complete(self) -> None:
        """Terminal transition: progress fixed at 100, state done."""
        if self._progress < 100.0 or not self._progress_updates:
            self.set_progress(100.0)
        self.transition(RunState.DONE)

    def snapshot(self) -> RunSnapshot:
        """Immutable copy of the current run state."""
        return RunSnapshot(
            run_id=self.run_id,
            state=self.state,
            progress=self._progress,
            log=tuple(self._log),
        )
