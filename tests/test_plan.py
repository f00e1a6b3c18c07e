"""Tests for plan compilation."""

import json
from datetime import date, datetime, timezone
from unittest.mock import Mock

from weaver.ledger import read_ledger_tail, LedgerWriter
from weaver.llm import FakePlanGenerator
from weaver.models import EventKind, is_chronological
from weaver.plan import (
    MAX_EVENTS,
    MIN_EVENTS,
    PLAN_SCHEMA,
    REVIEW_EMPTY_COMMENT,
    REVIEW_FALLBACK_COMMENT,
    build_plan_prompt,
    compile_plan,
    draft_review_comment,
    fallback_plan,
    parse_plan_response,
    strip_code_fences,
)


def _generator_returning(text):
    generator = Mock()
    generator.generate_json.return_value = text
    generator.engine_name = "mock"
    generator.provider_model = None
    return generator


def _raw_event(event_id, when, kind="commit"):
    return {
        "id": event_id,
        "date": when,
        "type": kind,
        "title": f"chore: {event_id}",
        "branch": "main",
        "author": "alice",
    }


def test_prompt_embeds_config_but_not_token(weave_config):
    """Every field except the token reaches the prompt."""
    prompt = build_plan_prompt(weave_config)

    assert "- User: alice" in prompt
    assert "- Repo: demo" in prompt
    assert "- Date Range: 2024-01-01 to 2024-01-02" in prompt
    assert "- Intensity (1-10): 5" in prompt
    assert "- Branching Strategy: github-flow" in prompt
    assert "Pull Shark" in prompt
    assert "ghp_secret_token" not in prompt


def test_strip_code_fences():
    """Markdown fences around JSON are removed."""
    assert strip_code_fences('```json\n[{"a": 1}]\n```') == '[{"a": 1}]'
    assert strip_code_fences("```\n[]\n```") == "[]"
    assert strip_code_fences("[]") == "[]"


def test_parse_response_accepts_fenced_json(weave_config):
    """Fenced output parses to the same events as bare JSON."""
    body = json.dumps([_raw_event("evt_1", "2024-01-01T10:00:00Z")])

    fenced = parse_plan_response(f"```json\n{body}\n```", weave_config)
    bare = parse_plan_response(body, weave_config)

    assert fenced == bare
    assert fenced[0].id == "evt_1"


def test_parse_response_drops_out_of_window_and_duplicates(weave_config):
    """Events outside the window, duplicates and malformed entries are dropped."""
    body = json.dumps(
        [
            _raw_event("evt_1", "2024-01-01T10:00:00Z"),
            _raw_event("evt_2", "2023-12-31T23:59:00Z"),
            _raw_event("evt_1", "2024-01-02T10:00:00Z"),
            _raw_event("evt_3", "2024-01-03T00:00:00Z"),
            {"id": "evt_4", "type": "commit"},
            "not an object",
            _raw_event("evt_5", "2024-01-02T23:59:59Z", kind="tag"),
        ]
    )

    plan = parse_plan_response(body, weave_config)

    assert [e.id for e in plan] == ["evt_1", "evt_5"]
    assert plan[1].kind == EventKind.TAG


def test_compile_plan_uses_fallback_on_generator_error(weave_config, workspace_paths):
    """A raising generator yields the two-event fallback and a ledger record."""
    generator = Mock()
    generator.generate_json.side_effect = RuntimeError("service unavailable")
    generator.engine_name = "mock"
    generator.provider_model = None
    writer = LedgerWriter(workspace_paths.ledger_file)

    plan = compile_plan(weave_config, generator, ledger_writer=writer)

    assert plan == fallback_plan(weave_config)
    events = read_ledger_tail(workspace_paths.ledger_file)
    assert events[-1].event_type == "PLAN_FALLBACK"
    assert "service unavailable" in events[-1].payload["reason"]


def test_compile_plan_fallback_on_empty_or_invalid_output(weave_config):
    """Empty text, non-JSON, non-array and all-dropped output fall back."""
    for text in ["", "   ", "not json", '{"id": "x"}', "[]", json.dumps([_raw_event("e", "2020-01-01")])]:
        plan = compile_plan(weave_config, _generator_returning(text))
        assert [e.id for e in plan] == ["evt_1", "evt_2"], text


def test_compile_plan_survives_ledger_write_failure(weave_config):
    """An unwritable ledger is logged and the plan is still returned."""
    writer = Mock()
    writer.append_event.side_effect = OSError("disk full")

    fallback = compile_plan(weave_config, _generator_returning(""), ledger_writer=writer)
    compiled = compile_plan(
        weave_config,
        _generator_returning(json.dumps([_raw_event("evt_1", "2024-01-01T10:00:00Z")])),
        ledger_writer=writer,
    )

    assert [e.id for e in fallback] == ["evt_1", "evt_2"]
    assert [e.id for e in compiled] == ["evt_1"]
    assert writer.append_event.call_count == 2


def test_fallback_plan_shape(weave_config):
    """Fallback: scaffold commit then auth branch, a day apart."""
    plan = fallback_plan(weave_config)

    assert len(plan) == 2
    first, second = plan
    assert first.kind == EventKind.COMMIT
    assert first.title == "feat: Initial project scaffold"
    assert first.branch == "main"
    assert first.files_changed == 12
    assert first.author == "alice"
    assert first.date == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert second.kind == EventKind.BRANCH
    assert second.branch == "feature/auth-system"
    assert second.files_changed == 0
    assert second.date == datetime(2024, 1, 2, tzinfo=timezone.utc)


def test_fallback_plan_is_deterministic(weave_config):
    """Same config, same fallback."""
    assert fallback_plan(weave_config) == fallback_plan(weave_config)


def test_compile_plan_keeps_generator_order(weave_config, workspace_paths):
    """Events are not reordered; the ledger records the compiled plan."""
    body = json.dumps(
        [
            _raw_event("evt_2", "2024-01-02T10:00:00Z"),
            _raw_event("evt_1", "2024-01-01T10:00:00Z"),
        ]
    )
    writer = LedgerWriter(workspace_paths.ledger_file)

    plan = compile_plan(weave_config, _generator_returning(body), ledger_writer=writer)

    assert [e.id for e in plan] == ["evt_2", "evt_1"]
    record = read_ledger_tail(workspace_paths.ledger_file)[-1]
    assert record.event_type == "PLAN_COMPILED"
    assert record.payload["event_count"] == 2
    assert record.payload["chronological"] is False


def test_compile_plan_passes_schema_and_instruction(weave_config):
    """The generator receives the response schema."""
    generator = _generator_returning(json.dumps([_raw_event("evt_1", "2024-01-01")]))

    compile_plan(weave_config, generator)

    prompt, schema, instruction = generator.generate_json.call_args[0]
    assert schema is PLAN_SCHEMA
    assert "JSON" in instruction
    assert "alice" in prompt


def test_fake_generator_plan_within_window(weave_config):
    """The offline generator yields 20-30 chronological in-window events."""
    plan = compile_plan(weave_config, FakePlanGenerator())

    assert MIN_EVENTS <= len(plan) <= MAX_EVENTS
    assert is_chronological(plan)
    assert len({e.id for e in plan}) == len(plan)
    for event in plan:
        assert date(2024, 1, 1) <= event.date.date() <= date(2024, 1, 2)
        assert event.author == "alice"


def test_fake_generator_is_deterministic(weave_config):
    """Same prompt, same plan."""
    assert compile_plan(weave_config, FakePlanGenerator()) == compile_plan(weave_config, FakePlanGenerator())


def test_fake_generator_trunk_has_no_feature_branches(weave_config):
    """Trunk-based plans stay on main."""
    config = weave_config.model_copy(update={"strategy": "trunk"})

    plan = compile_plan(config, FakePlanGenerator())

    assert all(e.kind != EventKind.BRANCH for e in plan)
    assert all(e.kind != EventKind.PR for e in plan)


def test_draft_review_comment_uses_generator():
    """Generator text is returned trimmed."""
    generator = Mock()
    generator.complete.return_value = "  Consider a unit test.  "

    assert draft_review_comment(generator, "Add login") == "Consider a unit test."
    assert "Add login" in generator.complete.call_args[0][0]


def test_draft_review_comment_fallbacks():
    """Failures and empty output get fixed comments."""
    failing = Mock()
    failing.complete.side_effect = RuntimeError("quota")
    empty = Mock()
    empty.complete.return_value = "  "

    assert draft_review_comment(failing, "Add login") == REVIEW_FALLBACK_COMMENT
    assert draft_review_comment(empty, "Add login") == REVIEW_EMPTY_COMMENT
