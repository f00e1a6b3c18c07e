"""Tests for ledger functionality."""

import json
from datetime import datetime

from weaver.ledger import LedgerWriter, read_ledger_tail


def test_ledger_append_creates_file(temp_workspace):
    """Test that appending to ledger creates the file if it doesn't exist."""
    ledger_path = temp_workspace / "nested" / "ledger.jsonl"

    assert not ledger_path.exists()

    writer = LedgerWriter(ledger_path)
    event = writer.append_event(
        event_type="PLAN_COMPILED",
        payload={"event_count": 24},
        plan_event_id="evt_1",
    )

    assert ledger_path.exists()
    assert event.event_id
    assert event.run_id
    assert event.ts
    assert event.event_type == "PLAN_COMPILED"
    assert event.plan_event_id == "evt_1"
    assert event.payload == {"event_count": 24}


def test_ledger_append_multiple_events(workspace_paths):
    """Events from one writer share a run id but not an event id."""
    writer = LedgerWriter(workspace_paths.ledger_file)

    events = [writer.append_event(event_type="RUN_LOG", payload={"index": i}) for i in range(3)]

    assert len({e.run_id for e in events}) == 1
    assert len({e.event_id for e in events}) == 3

    lines = workspace_paths.ledger_file.read_text().strip().split("\n")
    assert len(lines) == 3
    for line in lines:
        data = json.loads(line)
        assert "event_id" in data
        assert "run_id" in data
        assert "ts" in data


def test_start_run_switches_run_id(workspace_paths):
    """start_run() changes the run id for later events."""
    writer = LedgerWriter(workspace_paths.ledger_file)
    first = writer.append_event(event_type="RUN_STARTED", payload={})

    writer.start_run("run-2")
    second = writer.append_event(event_type="RUN_STARTED", payload={})

    assert first.run_id != "run-2"
    assert second.run_id == "run-2"


def test_ledger_tail_reads_last_n(workspace_paths):
    """Test reading last N events from ledger."""
    writer = LedgerWriter(workspace_paths.ledger_file)
    for i in range(10):
        writer.append_event(event_type="RUN_LOG", payload={"index": i})

    events = read_ledger_tail(workspace_paths.ledger_file, n=5)

    assert len(events) == 5
    for i, event in enumerate(events):
        assert event.payload["index"] == i + 5


def test_ledger_tail_handles_malformed(workspace_paths):
    """Malformed lines are skipped."""
    writer = LedgerWriter(workspace_paths.ledger_file)
    writer.append_event(event_type="RUN_LOG", payload={"index": 1})
    writer.append_event(event_type="RUN_LOG", payload={"index": 2})

    with open(workspace_paths.ledger_file, "a") as f:
        f.write("this is not json\n")
        f.write("{\"incomplete\": \n")

    writer.append_event(event_type="RUN_LOG", payload={"index": 3})

    events = read_ledger_tail(workspace_paths.ledger_file, n=10)

    assert [e.payload["index"] for e in events] == [1, 2, 3]


def test_ledger_tail_empty_and_missing(workspace_paths, temp_workspace):
    """Empty or missing ledgers read as no events."""
    assert read_ledger_tail(workspace_paths.ledger_file, n=10) == []
    assert read_ledger_tail(temp_workspace / "nonexistent.jsonl", n=10) == []


def test_ledger_timestamp_is_utc(workspace_paths):
    """Timestamps are stored as ISO8601 with a Z suffix."""
    writer = LedgerWriter(workspace_paths.ledger_file)
    writer.append_event(event_type="RUN_FINISHED", payload={"connected": True})

    data = json.loads(workspace_paths.ledger_file.read_text().strip())

    assert data["event_type"] == "RUN_FINISHED"
    assert data["ts"].endswith("Z"), f"Timestamp should end with Z: {data['ts']}"
    parsed = datetime.fromisoformat(data["ts"].replace("Z", "+00:00"))
    assert parsed.tzinfo is not None
