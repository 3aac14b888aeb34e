"""Bundled demo roster.

Dates in ``students.json`` are written relative to a fixed anchor. On load
every timestamp is shifted by the distance between that anchor and now, so
the roster always reads as recent activity ("3 days ago", "due in 2 days").
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from advising.schemas.student import Student
from advising.services.reconciler import COLLECTIONS
from advising.services.record_normalizer import (
    normalize_records,
    normalize_student,
    parse_timestamp,
    to_iso,
    utcnow,
)

SEED_PATH = Path(__file__).resolve().parent / "students.json"

_PROFILE_DATES = ("lastActive", "lastContacted")
_RECORD_DATES = ("date", "dueDate", "updatedAt")


def load_seed_document(path: Path = SEED_PATH) -> dict[str, Any]:
    with path.open(encoding="utf-8") as handle:
        return json.load(handle)


def _shift(value: Any, offset: timedelta) -> Any:
    parsed = parse_timestamp(value)
    return to_iso(parsed + offset) if parsed else value


def shift_student_dates(raw: dict[str, Any], offset: timedelta) -> dict[str, Any]:
    """Return a copy of a raw student document with every date moved by ``offset``."""
    shifted = dict(raw)
    for key in _PROFILE_DATES:
        if key in shifted:
            shifted[key] = _shift(shifted[key], offset)
    for spec in COLLECTIONS:
        records = shifted.get(spec.field)
        if not isinstance(records, list):
            continue
        shifted[spec.field] = [
            {
                key: _shift(value, offset) if key in _RECORD_DATES else value
                for key, value in record.items()
            }
            for record in records
            if isinstance(record, dict)
        ]
    return shifted


def load_seed_documents(now: datetime | None = None) -> list[dict[str, Any]]:
    """Raw (camelCase) student documents, dates re-anchored to ``now``."""
    document = load_seed_document()
    anchor = parse_timestamp(document.get("anchor"))
    offset = (now or utcnow()) - anchor if anchor else timedelta(0)
    return [shift_student_dates(raw, offset) for raw in document.get("students", [])]


def load_seed_students(now: datetime | None = None) -> list[Student]:
    students = []
    for raw in load_seed_documents(now):
        collections = {
            spec.field: normalize_records(raw.get(spec.field), spec.normalize)
            for spec in COLLECTIONS
        }
        students.append(normalize_student(raw["id"], raw, **collections))
    return students
