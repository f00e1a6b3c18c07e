"""Trace writer for weaving runs."""

import json
from pathlib import Path

from .models.config import WeaveConfig
from .models.run import RunOutcome
from .paths import WorkspacePaths


def write_run_trace(
    outcome: RunOutcome,
    config: WeaveConfig,
    workspace_paths: WorkspacePaths,
    plan_path: Path | None = None,
) -> Path:
    """Write trace JSON for a weaving run.

    Follows naming convention: weave_<run_id>.json
    Written to: <workspace>/traces/YYYY-MM-DD/

    The access token is never part of the trace (it is excluded from the
    configuration's serialization).

    Args:
        outcome: Result of weave()
        config: Run configuration
        workspace_paths: WorkspacePaths instance
        plan_path: Plan file the run was fed from, if any

    Returns:
        Path to written trace file
    """
    date_str = outcome.started_at.strftime("%Y-%m-%d")
    trace_dir = workspace_paths.traces_date_folder(date_str)
    trace_dir.mkdir(parents=True, exist_ok=True)

    duration_ms = int((outcome.finished_at - outcome.started_at).total_seconds() * 1000)

    trace_data = {
        "run_id": outcome.run_id,
        "date": date_str,
        "timestamp": outcome.finished_at.isoformat(),
        "repository": f"{config.username}/{config.target_repo}",
        "config": config.model_dump(mode="json"),
        "plan_path": str(plan_path) if plan_path else None,
        "result": {
            "state": outcome.state.value,
            "connected": outcome.connected,
            "cancelled": outcome.cancelled,
            "fatal_error": outcome.fatal_error,
            "progress": outcome.progress,
        },
        "stats": outcome.stats.model_dump(mode="json"),
        "events": [o.model_dump(mode="json") for o in outcome.outcomes],
        "log": [entry.model_dump(mode="json") for entry in outcome.log],
        "duration_ms": duration_ms,
    }

    trace_path = trace_dir / f"weave_{outcome.run_id}.json"
    trace_path.write_text(json.dumps(trace_data, indent=2), encoding="utf-8")

    return trace_path
