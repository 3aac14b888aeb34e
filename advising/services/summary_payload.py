"""Summary payload - the reduced projection of a student sent to the summarizer.

The payload is built either from an assembled Student or from the loose
JSON a client posts. Both paths go through the same normalization so equal
content always hashes to the same cache signature.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from advising.schemas.summary import (
    SummaryCommunicationItem,
    SummaryNoteItem,
    SummaryPayload,
    SummaryReminderItem,
    SummaryTimelineItem,
)
from advising.services.record_normalizer import parse_timestamp, pick_field, to_iso

MAX_TIMELINE_EVENTS = 6
MAX_COMMUNICATIONS = 4
MAX_NOTES = 4
MAX_REMINDERS = 4

_WHITESPACE = re.compile(r"\s+")


def clean_text(value: Any) -> str:
    """Collapse runs of whitespace; ``None`` becomes an empty string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return _WHITESPACE.sub(" ", value).strip()
    return str(getattr(value, "value", value))


def clean_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else 0
    if isinstance(value, str):
        match = re.match(r"\s*[+-]?(\d+(\.\d*)?|\.\d+)", value)
        return float(match.group(0)) if match else 0
    return 0


def clean_date(value: Any) -> str:
    """ISO string for a parseable date, otherwise an empty string."""
    if not value:
        return ""
    parsed = parse_timestamp(value)
    return to_iso(parsed) if parsed else ""


def clean_string_list(values: Any) -> list[str]:
    if not isinstance(values, (list, tuple)):
        return []
    return [text for text in (clean_text(item) for item in values) if text]


def _items(values: Any) -> list[Mapping[str, Any]]:
    if not isinstance(values, (list, tuple)):
        return []
    return [item for item in values if isinstance(item, Mapping)]


def _newest_first(items: list[BaseModel], attr: str, limit: int) -> list[Any]:
    ordered = sorted(items, key=lambda item: parse_timestamp(getattr(item, attr)), reverse=True)
    return ordered[:limit]


def _soonest_first(items: list[BaseModel], attr: str, limit: int) -> list[Any]:
    ordered = sorted(items, key=lambda item: parse_timestamp(getattr(item, attr)))
    return ordered[:limit]


def _timeline(values: Any) -> list[SummaryTimelineItem]:
    items = [
        SummaryTimelineItem(
            id=clean_text(item.get("id")),
            date=clean_date(item.get("date")),
            type=clean_text(item.get("type")) or "activity",
            label=clean_text(item.get("label")),
            details=clean_text(item.get("details")),
        )
        for item in _items(values)
    ]
    items = [item for item in items if item.id and item.date]
    return _newest_first(items, "date", MAX_TIMELINE_EVENTS)


def _communications(values: Any) -> list[SummaryCommunicationItem]:
    items = [
        SummaryCommunicationItem(
            id=clean_text(item.get("id")),
            channel=clean_text(item.get("channel")) or "Email",
            subject=clean_text(item.get("subject")),
            date=clean_date(item.get("date")),
            owner=clean_text(item.get("owner")),
            notes=clean_text(item.get("notes")),
        )
        for item in _items(values)
    ]
    items = [item for item in items if item.id and item.date]
    return _newest_first(items, "date", MAX_COMMUNICATIONS)


def _notes(values: Any) -> list[SummaryNoteItem]:
    items = []
    for item in _items(values):
        updated_at = pick_field(item, "updatedAt", "updated_at")
        items.append(
            SummaryNoteItem(
                id=clean_text(item.get("id")),
                author=clean_text(item.get("author")),
                date=clean_date(item.get("date")),
                content=clean_text(item.get("content")),
                updated_at=clean_date(updated_at) if updated_at else None,
            )
        )
    items = [item for item in items if item.id and item.date]
    return _newest_first(items, "date", MAX_NOTES)


def _reminders(values: Any) -> list[SummaryReminderItem]:
    items = [
        SummaryReminderItem(
            id=clean_text(item.get("id")),
            due_date=clean_date(pick_field(item, "dueDate", "due_date")),
            description=clean_text(item.get("description")),
            owner=clean_text(item.get("owner")),
            completed=bool(item.get("completed")),
        )
        for item in _items(values)
    ]
    items = [item for item in items if item.id and item.due_date]
    return _soonest_first(items, "due_date", MAX_REMINDERS)


def normalize_summary_payload(source: BaseModel | Mapping[str, Any]) -> SummaryPayload:
    """Project a Student (or a posted payload) onto the summary payload."""
    if isinstance(source, BaseModel):
        data: Mapping[str, Any] = source.model_dump(mode="json", by_alias=True)
    elif isinstance(source, Mapping):
        data = source
    else:
        data = {}

    return SummaryPayload(
        id=clean_text(data.get("id")),
        name=clean_text(data.get("name")),
        status=clean_text(data.get("status")) or "Exploring",
        engagement_score=clean_number(pick_field(data, "engagementScore", "engagement_score")),
        high_intent=bool(pick_field(data, "highIntent", "high_intent")),
        needs_essay_help=bool(pick_field(data, "needsEssayHelp", "needs_essay_help")),
        last_active=clean_date(pick_field(data, "lastActive", "last_active")),
        last_contacted=clean_date(pick_field(data, "lastContacted", "last_contacted")),
        tags=clean_string_list(data.get("tags")),
        program_interests=clean_string_list(
            pick_field(data, "programInterests", "program_interests")
        ),
        timeline=_timeline(data.get("timeline")),
        communications=_communications(data.get("communications")),
        notes=_notes(data.get("notes")),
        reminders=_reminders(data.get("reminders")),
    )
