"""Record normalizer - coerce loosely-typed document data into canonical records.

Firestore does not enforce a schema, so every field read back from a
document (or submitted by a caller) is treated as untrusted. Nothing here
raises: unknown enum values fall back to a fixed default, unparseable
dates fall back to the current time, and missing identifiers are
synthesized.
"""

from __future__ import annotations

import itertools
import math
import re
import secrets
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel

from advising.schemas.student import (
    ApplicationStatus,
    CommunicationChannel,
    CommunicationEntry,
    Note,
    Reminder,
    Student,
    TimelineEvent,
    TimelineType,
)

E = TypeVar("E", bound=Enum)
R = TypeVar("R", bound=BaseModel)

DEFAULT_OWNER = "Advising Team"
DEFAULT_NOTE_AUTHOR = "Admissions Team"

# Numeric epochs at or above this are milliseconds (1e11 seconds is year 5138)
EPOCH_MILLIS_THRESHOLD = 100_000_000_000

_EPOCH_PATTERN = re.compile(r"[+-]?\d{9,13}")
_LEADING_INT_PATTERN = re.compile(r"\s*([+-]?\d+)")

_id_sequence = itertools.count()


def new_record_id() -> str:
    """Return a new record id: random prefix, then microsecond clock, then a sequence."""
    return (
        f"{secrets.token_hex(4)}"
        f"{time.time_ns() // 1000:x}"
        f"{next(_id_sequence):x}"
    )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime as a UTC ISO-8601 string with a ``Z`` suffix."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Scalar coercion
# =============================================================================


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a native timestamp, ISO-like string or numeric epoch into aware UTC."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        try:
            return value.astimezone(timezone.utc)
        except (OverflowError, ValueError):
            # Offset pushes the instant outside datetime's range
            return None

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    # Protobuf / Firestore timestamp wrappers
    converter = getattr(value, "to_datetime", None) or getattr(value, "ToDatetime", None)
    if callable(converter):
        try:
            return parse_timestamp(converter())
        except (TypeError, ValueError, OverflowError):
            return None

    if isinstance(value, (int, float)):
        return _from_epoch(value)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if _EPOCH_PATTERN.fullmatch(text):
            return _from_epoch(int(text))
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parse_timestamp(parsed)

    return None


def _from_epoch(value: int | float) -> datetime | None:
    if not math.isfinite(value):
        return None
    seconds = value / 1000 if abs(value) >= EPOCH_MILLIS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def coerce_timestamp(value: Any) -> datetime:
    """Parse a date-like value, degrading to the current time."""
    return parse_timestamp(value) or utcnow()


def coerce_optional_timestamp(value: Any) -> datetime | None:
    """Like ``coerce_timestamp`` but keeps absent values absent."""
    if value is None or value == "":
        return None
    return coerce_timestamp(value)


def coerce_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, Enum):
        return str(value.value)
    return value if isinstance(value, str) else str(value)


def coerce_bool(value: Any) -> bool:
    return bool(value)


def coerce_int(value: Any, minimum: int = 0, maximum: int | None = None) -> int:
    """Coerce numbers and numeric strings (leading digits) into a clamped int."""
    result = 0
    if isinstance(value, bool):
        result = int(value)
    elif isinstance(value, int):
        result = value
    elif isinstance(value, float) and math.isfinite(value):
        result = int(value)
    elif isinstance(value, str):
        match = _LEADING_INT_PATTERN.match(value)
        result = int(match.group(1)) if match else 0

    result = max(minimum, result)
    if maximum is not None:
        result = min(maximum, result)
    return result


def coerce_enum(value: Any, enum_cls: type[E], default: E) -> E:
    """Return the matching enum member, or ``default`` for anything unrecognized."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        return default


def coerce_string_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [coerce_text(item) for item in value if item is not None]


def coerce_record_id(value: Any) -> str:
    """Use a provided non-empty id, otherwise synthesize one."""
    if isinstance(value, str) and value.strip():
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return new_record_id()


# =============================================================================
# Record normalizers
# =============================================================================


def _as_mapping(value: Any) -> Mapping[str, Any] | None:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, Mapping):
        return value
    return None


def pick_field(data: Mapping[str, Any], *keys: str) -> Any:
    """First present value among camelCase / snake_case spellings of a field."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def normalize_timeline_event(value: Any, record_id: str | None = None) -> TimelineEvent:
    data = _as_mapping(value) or {}
    return TimelineEvent(
        id=record_id or coerce_record_id(data.get("id")),
        date=coerce_timestamp(data.get("date")),
        type=coerce_enum(data.get("type"), TimelineType, TimelineType.ACTIVITY),
        label=coerce_text(data.get("label")),
        details=coerce_text(data.get("details")),
    )


def normalize_communication(value: Any, record_id: str | None = None) -> CommunicationEntry:
    data = _as_mapping(value) or {}
    return CommunicationEntry(
        id=record_id or coerce_record_id(data.get("id")),
        channel=coerce_enum(
            data.get("channel"), CommunicationChannel, CommunicationChannel.EMAIL
        ),
        subject=coerce_text(data.get("subject")),
        date=coerce_timestamp(data.get("date")),
        owner=coerce_text(data.get("owner"), DEFAULT_OWNER),
        notes=coerce_text(data.get("notes")),
    )


def normalize_note(value: Any, record_id: str | None = None) -> Note:
    data = _as_mapping(value) or {}
    updated_at = pick_field(data, "updatedAt", "updated_at")
    return Note(
        id=record_id or coerce_record_id(data.get("id")),
        author=coerce_text(data.get("author"), DEFAULT_NOTE_AUTHOR),
        date=coerce_timestamp(data.get("date")),
        content=coerce_text(data.get("content")),
        updated_at=coerce_optional_timestamp(updated_at) if updated_at else None,
    )


def normalize_reminder(value: Any, record_id: str | None = None) -> Reminder:
    data = _as_mapping(value) or {}
    return Reminder(
        id=record_id or coerce_record_id(data.get("id")),
        due_date=coerce_timestamp(pick_field(data, "dueDate", "due_date")),
        description=coerce_text(data.get("description")),
        owner=coerce_text(data.get("owner"), DEFAULT_OWNER),
        completed=coerce_bool(data.get("completed")),
    )


def normalize_records(value: Any, normalizer: Callable[[Any], R]) -> list[R]:
    """Normalize an inline array; entries that are not objects are dropped."""
    if not isinstance(value, (list, tuple)):
        return []
    return [
        normalizer(item)
        for item in value
        if isinstance(item, (Mapping, BaseModel))
    ]


def normalize_student(
    student_id: str,
    value: Any,
    *,
    timeline: Iterable[TimelineEvent] = (),
    communications: Iterable[CommunicationEntry] = (),
    notes: Iterable[Note] = (),
    reminders: Iterable[Reminder] = (),
) -> Student:
    """Build a Student from parent document fields plus already-assembled collections."""
    data = _as_mapping(value) or {}
    return Student(
        id=student_id,
        name=coerce_text(data.get("name")),
        email=coerce_text(data.get("email")),
        phone=coerce_text(data.get("phone")),
        country=coerce_text(data.get("country")),
        grade=coerce_text(data.get("grade")),
        status=coerce_enum(data.get("status"), ApplicationStatus, ApplicationStatus.EXPLORING),
        last_active=coerce_timestamp(pick_field(data, "lastActive", "last_active")),
        last_contacted=coerce_timestamp(pick_field(data, "lastContacted", "last_contacted")),
        high_intent=coerce_bool(pick_field(data, "highIntent", "high_intent")),
        needs_essay_help=coerce_bool(pick_field(data, "needsEssayHelp", "needs_essay_help")),
        program_interests=coerce_string_list(pick_field(data, "programInterests", "program_interests")),
        tags=coerce_string_list(data.get("tags")),
        engagement_score=coerce_int(
            pick_field(data, "engagementScore", "engagement_score"), maximum=100
        ),
        essay_drafts=coerce_int(pick_field(data, "essayDrafts", "essay_drafts")),
        documents_uploaded=coerce_int(pick_field(data, "documentsUploaded", "documents_uploaded")),
        open_applications=coerce_int(pick_field(data, "openApplications", "open_applications")),
        timeline=list(timeline),
        communications=list(communications),
        notes=list(notes),
        reminders=list(reminders),
        ai_summary=coerce_text(pick_field(data, "aiSummary", "ai_summary")),
    )


# =============================================================================
# Document serialization
# =============================================================================


def serialize_record(record: BaseModel) -> dict[str, Any]:
    """Inline-array form of a record (camelCase, ISO dates, id included)."""
    return record.model_dump(mode="json", by_alias=True, exclude_none=True)


def subrecord_document(record: BaseModel) -> dict[str, Any]:
    """Subcollection document body; the id lives in the document path."""
    payload = serialize_record(record)
    payload.pop("id", None)
    return payload
