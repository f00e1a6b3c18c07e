"""Pydantic models for history events and plans."""

import json
from datetime import date, datetime, time, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator


class EventKind(str, Enum):
    """Kinds of repository activity a plan can replay."""

    COMMIT = "commit"
    BRANCH = "branch"
    MERGE = "merge"
    ISSUE = "issue"
    PR = "pr"
    TAG = "tag"


def parse_event_datetime(value: Any) -> datetime:
    """Parse an event timestamp into an aware UTC datetime.

    Accepts datetimes, dates, and ISO 8601 strings (date-only and
    'Z'-suffixed forms included). Naive values are assumed to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty date")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            parsed = datetime.combine(date.fromisoformat(text[:10]), time.min)
    else:
        raise ValueError(f"unsupported date value: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class HistoryEvent(BaseModel):
    """A single history event in a plan.

    Field aliases follow the generator's JSON shape (`type`, `filesChanged`)
    while Python code uses snake_case names.
    """

    id: str = Field(description="Identifier, unique within a plan")
    date: datetime = Field(description="When the event happens in the woven history")
    kind: EventKind = Field(alias="type", description="Event kind")
    title: str = Field(description="Short title / commit subject")
    description: str = Field(default="", description="Longer narrative text")
    branch: str | None = Field(default=None, description="Branch the event applies to")
    files_changed: int = Field(default=0, ge=0, alias="filesChanged")
    author: str = Field(description="Author login or display name")
    tags: list[str] = Field(default_factory=list, description="Classification tags (feat, fix, ...)")

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> datetime:
        return parse_event_datetime(value)

    @field_validator("files_changed", mode="before")
    @classmethod
    def _default_files_changed(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _default_tags(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_json_dict(self) -> dict:
        """Serialize using the generator-facing aliases."""
        return self.model_dump(mode="json", by_alias=True)


Plan = list[HistoryEvent]


def is_chronological(plan: Plan) -> bool:
    """Return True if event dates are non-decreasing."""
    return all(earlier.date <= later.date for earlier, later in zip(plan, plan[1:]))


def sort_plan(plan: Plan) -> Plan:
    """Return a copy of the plan stably sorted by event date."""
    return sorted(plan, key=lambda event: event.date)


def save_plan(plan: Plan, path: Path) -> Path:
    """Write a plan as a JSON array (generator-facing field names)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = [event.to_json_dict() for event in plan]
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return path


def load_plan(path: Path) -> Plan:
    """Load a plan previously written by save_plan().

    Raises:
        FileNotFoundError: If the plan file does not exist
        ValueError: If the file is not a JSON array of valid events
    """
    if not path.exists():
        raise FileNotFoundError(f"Plan file not found: {path}")

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"Plan file must contain a JSON array: {path}")
    return [HistoryEvent.model_validate(item) for item in data]
