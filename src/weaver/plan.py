"""Plan compilation: configuration -> ordered history events.

compile_plan() never raises. Any generator fault, empty or unparseable
response, or a response with no usable events results in the fixed
two-event fallback plan.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, time, timedelta, timezone

from pydantic import ValidationError

from .catalog import describe_achievements
from .errors import PlanGenerationError
from .ledger import LedgerWriter
from .llm.client import PlanGenerator
from .models.config import WeaveConfig
from .models.event import EventKind, HistoryEvent, Plan, is_chronological

logger = logging.getLogger(__name__)

PLAN_PROMPT_VERSION = "v1"
MIN_EVENTS = 20
MAX_EVENTS = 30
REVIEW_MAX_OUTPUT_TOKENS = 100

REVIEW_FALLBACK_COMMENT = "Reviewed. Looks good to merge."
REVIEW_EMPTY_COMMENT = "LGTM! Code structure looks solid."

SYSTEM_INSTRUCTION = (
    "You are a Git simulation engine. You output strictly structured JSON data "
    "representing a repository history."
)

PLAN_SCHEMA: dict = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "id": {"type": "string"},
            "date": {"type": "string", "description": "ISO 8601 Date string"},
            "type": {"type": "string", "enum": [kind.value for kind in EventKind]},
            "title": {"type": "string"},
            "description": {"type": "string"},
            "branch": {"type": "string"},
            "filesChanged": {"type": "integer"},
            "author": {"type": "string"},
            "tags": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["id", "date", "type", "title", "branch", "author"],
    },
}


def build_plan_prompt(config: WeaveConfig) -> str:
    """Render the generator instruction for a configuration.

    Every configuration field except the access token is embedded.
    """
    achievements = describe_achievements(config.achievements)
    achievements_line = "; ".join(achievements) if achievements else "none"

    extra_rules = []
    if "pair_extraordinaire" in config.achievements:
        extra_rules.append('Ensure "Pair Extraordinaire" commits carry Co-authored-by trailers.')
    if "pull_shark" in config.achievements:
        extra_rules.append('Ensure "Pull Shark" merges of pull requests are present.')
    if "quickdraw" in config.achievements:
        extra_rules.append('Ensure "Quickdraw" issues are opened and closed quickly (tag them "closed").')
    if "yolo" in config.achievements:
        extra_rules.append('Ensure "YOLO" commits land directly on main.')
    rules_block = "\n".join(f"    {rule}" for rule in extra_rules)

    return f"""Act as a "GitHub History Architect". Generate a realistic JSON history of Git events for a repository.

Configuration:
- User: {config.username}
- Repo: {config.target_repo}
- Tech Stack: {config.tech_stack}
- Branching Strategy: {config.strategy}
- Date Range: {config.start_date.isoformat()} to {config.end_date.isoformat()}
- Intensity (1-10): {config.intensity}
- Target Achievements: {achievements_line}
- Include LFS: {str(config.include_lfs).lower()}

Generate a strictly chronological list of approximately {MIN_EVENTS}-{MAX_EVENTS} representative events that tells a story of development.
Include a mix of:
1. Initial commit
2. Feature branches creation
3. Commits (feat, fix, chore, docs) with realistic messages.
4. Issues created and closed.
5. Pull Requests created, reviewed, and merged.
6. Tag releases (e.g., v1.0.0).
{rules_block}

Every date must fall between {config.start_date.isoformat()} and {config.end_date.isoformat()} inclusive.
The dates must be distributed realistically (more on weekdays, less on weekends).
"""


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence markers around generator output."""
    return re.sub(r"```(?:json|JSON)?", "", text or "").strip()


def _window_bounds(config: WeaveConfig) -> tuple[datetime, datetime]:
    start = datetime.combine(config.start_date, time.min, tzinfo=timezone.utc)
    end = datetime.combine(config.end_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return start, end


def parse_plan_response(text: str, config: WeaveConfig) -> Plan:
    """Parse and validate generator output at the trust boundary.

    Malformed entries, duplicate ids and events dated outside the
    configuration window are dropped. Order is preserved.

    Raises:
        PlanGenerationError: If the response is empty, not a JSON array, or
            contains no usable events
    """
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise PlanGenerationError("No data returned from generator")

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise PlanGenerationError(f"Generator output is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise PlanGenerationError(f"Generator output is not a JSON array (got {type(data).__name__})")

    window_start, window_end = _window_bounds(config)
    plan: Plan = []
    seen_ids: set[str] = set()
    dropped = 0

    for index, item in enumerate(data):
        if not isinstance(item, dict):
            logger.warning(f"Dropping plan entry {index}: not an object")
            dropped += 1
            continue
        try:
            event = HistoryEvent.model_validate(item)
        except ValidationError as e:
            logger.warning(f"Dropping plan entry {index}: {e.error_count()} validation error(s)")
            dropped += 1
            continue
        if event.id in seen_ids:
            logger.warning(f"Dropping plan entry {index}: duplicate id {event.id}")
            dropped += 1
            continue
        if not window_start <= event.date < window_end:
            logger.warning(f"Dropping plan entry {index}: {event.date.isoformat()} outside window")
            dropped += 1
            continue
        seen_ids.add(event.id)
        plan.append(event)

    if not plan:
        raise PlanGenerationError(f"Generator returned no usable events ({dropped} dropped)")

    if dropped:
        logger.info(f"Kept {len(plan)} plan events, dropped {dropped}")
    return plan


def fallback_plan(config: WeaveConfig) -> Plan:
    """Deterministic two-event plan anchored at the start date."""
    start = datetime.combine(config.start_date, time.min, tzinfo=timezone.utc)
    return [
        HistoryEvent(
            id="evt_1",
            date=start,
            kind=EventKind.COMMIT,
            title="feat: Initial project scaffold",
            description="Initialize project structure with standard boilerplate",
            branch="main",
            files_changed=12,
            author=config.username,
            tags=["init"],
        ),
        HistoryEvent(
            id="evt_2",
            date=start + timedelta(days=1),
            kind=EventKind.BRANCH,
            title="Create branch feature/auth-system",
            description="Branching for authentication system",
            branch="feature/auth-system",
            files_changed=0,
            author=config.username,
            tags=["flow"],
        ),
    ]


def _record(ledger_writer: LedgerWriter | None, event_type: str, payload: dict) -> None:
    """Append a plan record; ledger I/O errors are logged, not raised."""
    if ledger_writer is None:
        return
    try:
        ledger_writer.append_event(event_type=event_type, payload=payload)
    except OSError as e:
        logger.warning(f"Could not write {event_type} to ledger: {e}")


def compile_plan(
    config: WeaveConfig,
    generator: PlanGenerator,
    ledger_writer: LedgerWriter | None = None,
) -> Plan:
    """Turn a configuration into an ordered plan.

    Never raises: on any failure the fallback plan is returned.

    Args:
        config: Run configuration
        generator: Generator collaborator
        ledger_writer: Optional ledger for PLAN_COMPILED / PLAN_FALLBACK records

    Returns:
        Non-empty list of HistoryEvent
    """
    prompt = build_plan_prompt(config)

    try:
        raw = generator.generate_json(prompt, PLAN_SCHEMA, SYSTEM_INSTRUCTION)
        plan = parse_plan_response(raw, config)
    except Exception as e:
        logger.warning(f"Plan generation failed, using fallback plan: {e}")
        plan = fallback_plan(config)
        _record(
            ledger_writer,
            "PLAN_FALLBACK",
            {
                "engine": generator.engine_name,
                "provider_model": generator.provider_model,
                "prompt_version": PLAN_PROMPT_VERSION,
                "reason": str(e)[:500],
                "event_count": len(plan),
            },
        )
        return plan

    if not is_chronological(plan):
        logger.warning("Generated plan is not in chronological order; replay will follow it as given")

    _record(
        ledger_writer,
        "PLAN_COMPILED",
        {
            "engine": generator.engine_name,
            "provider_model": generator.provider_model,
            "prompt_version": PLAN_PROMPT_VERSION,
            "event_count": len(plan),
            "chronological": is_chronological(plan),
        },
    )
    return plan


def draft_review_comment(generator: PlanGenerator, pr_title: str, code_snippet: str = "") -> str:
    """Ask the generator for a short review comment on a pull request.

    Returns a fixed generic comment when the generator fails.
    """
    prompt = f'Generate a constructive, technical code review comment for a Pull Request titled "{pr_title}".'
    if code_snippet.strip():
        prompt += f"\n\nRelevant code:\n{code_snippet[:2000]}"

    try:
        text = generator.complete(prompt, max_output_tokens=REVIEW_MAX_OUTPUT_TOKENS)
    except Exception as e:
        logger.warning(f"Review comment generation failed: {e}")
        return REVIEW_FALLBACK_COMMENT

    return text.strip() if text and text.strip() else REVIEW_EMPTY_COMMENT
