"""Weaving executor: replays a plan against the remote, one event at a time.

States: idle -> connecting -> running -> done.

A failed connection is fatal for the run. A failed event is logged and the
run moves on to the next event. Events never overlap: event i+1 starts
only after event i's remote call and the pacing delay have both finished.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable

from .errors import RateLimitedError
from .models.config import WeaveConfig
from .models.event import HistoryEvent, Plan, is_chronological
from .models.run import EventOutcome, RunOutcome, RunState, RunStats
from .observer import RunContext
from .remote import RemoteRepository

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 0.8
MAX_RETRY_DELAY_SECONDS = 60.0

Sleeper = Callable[[float], object]


def _pause(seconds: float, cancel: threading.Event, sleep: Sleeper | None) -> bool:
    """Wait for `seconds`; return True if cancellation was requested."""
    if sleep is None:
        return cancel.wait(seconds) if seconds > 0 else cancel.is_set()
    if seconds > 0:
        sleep(seconds)
    return cancel.is_set()


def _reason(exc: Exception) -> str:
    return str(exc) or exc.__class__.__name__


def _execute_event(
    remote: RemoteRepository,
    event: HistoryEvent,
    config: WeaveConfig,
    max_retries: int,
    retry_backoff_seconds: float,
    cancel: threading.Event,
    sleep: Sleeper | None,
) -> EventOutcome:
    """Run one event, retrying only rate-limited failures."""
    attempts = 0
    while True:
        attempts += 1
        try:
            message = remote.execute_event(event, config)
        except RateLimitedError as e:
            if attempts > max_retries or cancel.is_set():
                return EventOutcome(event_id=event.id, kind=event.kind, ok=False, message=_reason(e), attempts=attempts)
            delay = e.retry_after if e.retry_after is not None else retry_backoff_seconds * 2 ** (attempts - 1)
            delay = min(delay, MAX_RETRY_DELAY_SECONDS)
            logger.warning(f"Event {event.id} rate limited; retry {attempts}/{max_retries} in {delay:.1f}s")
            if _pause(delay, cancel, sleep):
                return EventOutcome(event_id=event.id, kind=event.kind, ok=False, message=_reason(e), attempts=attempts)
        except Exception as e:
            return EventOutcome(event_id=event.id, kind=event.kind, ok=False, message=_reason(e), attempts=attempts)
        else:
            return EventOutcome(event_id=event.id, kind=event.kind, ok=True, message=str(message), attempts=attempts)


def weave(
    plan: Plan,
    config: WeaveConfig,
    remote: RemoteRepository,
    *,
    context: RunContext | None = None,
    delay_seconds: float = DEFAULT_DELAY_SECONDS,
    cancel: threading.Event | None = None,
    max_retries: int = 0,
    retry_backoff_seconds: float = 2.0,
    sleep: Sleeper | None = None,
) -> RunOutcome:
    """Replay a plan against the remote repository.

    Args:
        plan: Events to replay, in the order given
        config: Run configuration (carries the access token)
        remote: Remote-repository collaborator
        context: RunContext to report into; reset at the start of the run
        delay_seconds: Pacing delay after every event, failed ones included
        cancel: Optional event; when set the run stops at the next
            suspension point (before an event or during pacing)
        max_retries: Extra attempts for rate-limited events (0 = none)
        retry_backoff_seconds: Base for exponential retry backoff
        sleep: Optional sleep function, used instead of cancel.wait()

    Returns:
        RunOutcome with per-event outcomes, stats and the final log
    """
    context = context or RunContext()
    cancel = cancel or threading.Event()
    run_id = context.reset()
    started_at = datetime.now(timezone.utc)
    total = len(plan)
    owner, repo = config.username, config.target_repo

    outcomes: list[EventOutcome] = []
    connected = False
    cancelled = False
    fatal_error: str | None = None

    ledger = context.ledger_writer
    if ledger:
        ledger.append_event(
            event_type="RUN_STARTED",
            payload={"owner": owner, "repo": repo, "event_count": total},
        )

    # connecting
    context.transition(RunState.CONNECTING)
    logger.info(f"Initializing GitHub connection for {owner}/{repo}...")
    try:
        remote.verify_access(config.github_token, repo, owner)
    except Exception as e:
        fatal_error = _reason(e)
        context.error(f"Critical Error: {fatal_error}")
    else:
        connected = True
        context.success(f"Connected securely. Starting sequence of {total} events.")

    # running
    if connected:
        context.transition(RunState.RUNNING)
        if not is_chronological(plan):
            logger.warning("Plan is not in chronological order; replaying as given")
        try:
            for index, event in enumerate(plan):
                if cancel.is_set():
                    cancelled = True
                    break

                context.info(f"Processing [{event.kind.value.upper()}] {event.title}...")
                outcome = _execute_event(
                    remote, event, config, max_retries, retry_backoff_seconds, cancel, sleep
                )
                outcomes.append(outcome)
                if outcome.ok:
                    context.success(outcome.message)
                else:
                    context.error(f"Failed: {outcome.message}")

                context.set_progress((index + 1) / total * 100)

                if _pause(delay_seconds, cancel, sleep) and index < total - 1:
                    cancelled = True
                    break
        except Exception as e:
            logger.exception("Unexpected fault during weaving")
            fatal_error = _reason(e)
            context.error(f"Critical Error: {fatal_error}")

    # done
    failed = sum(1 for o in outcomes if not o.ok)
    if cancelled:
        context.warning(f"Run cancelled by operator after {len(outcomes)} of {total} events.")
    elif connected and fatal_error is None and outcomes:
        if failed == 0:
            context.success("All events processed successfully.")
        else:
            context.info(f"Run finished: {len(outcomes) - failed} succeeded, {failed} failed.")
    context.complete()

    stats = RunStats.from_plan(plan, outcomes, config.achievements)
    snapshot = context.snapshot()
    finished_at = datetime.now(timezone.utc)

    if ledger:
        ledger.append_event(
            event_type="RUN_FINISHED",
            payload={
                "connected": connected,
                "cancelled": cancelled,
                "fatal_error": fatal_error,
                "events_attempted": len(outcomes),
                "events_succeeded": stats.events_succeeded,
                "events_failed": stats.events_failed,
                "duration_ms": int((finished_at - started_at).total_seconds() * 1000),
            },
        )

    return RunOutcome(
        run_id=run_id,
        state=snapshot.state,
        connected=connected,
        cancelled=cancelled,
        fatal_error=fatal_error,
        outcomes=outcomes,
        stats=stats,
        log=snapshot.log,
        progress=snapshot.progress,
        started_at=started_at,
        finished_at=finished_at,
    )
