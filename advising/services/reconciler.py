"""Collection reconciler - merge inline arrays with subcollection documents.

Each owned collection of a student is persisted twice: as an inline array
on the parent document (legacy storage and a denormalized snapshot) and as
one subcollection document per record. Both are views of the same logical
collection. The subcollection is the target of direct mutation, so it wins
when both hold a record with the same id.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from advising.services.record_normalizer import (
    normalize_communication,
    normalize_note,
    normalize_records,
    normalize_reminder,
    normalize_timeline_event,
)


@dataclass(frozen=True)
class CollectionSpec:
    """How one owned collection is stored, normalized and ordered."""

    field: str
    normalize: Callable[..., Any]
    sort_key: Callable[[Any], datetime]
    descending: bool = True

    @property
    def subcollection(self) -> str:
        # Subcollections share the inline field name
        return self.field


TIMELINE = CollectionSpec("timeline", normalize_timeline_event, lambda r: r.date)
COMMUNICATIONS = CollectionSpec("communications", normalize_communication, lambda r: r.date)
NOTES = CollectionSpec("notes", normalize_note, lambda r: r.date)
REMINDERS = CollectionSpec(
    "reminders", normalize_reminder, lambda r: r.due_date, descending=False
)

COLLECTIONS: tuple[CollectionSpec, ...] = (TIMELINE, COMMUNICATIONS, NOTES, REMINDERS)


def sort_records(records: Iterable[BaseModel], spec: CollectionSpec) -> list[BaseModel]:
    """Order records by the collection's date, breaking ties on id."""
    return sorted(
        records,
        key=lambda record: (spec.sort_key(record), record.id),
        reverse=spec.descending,
    )


def reconcile(
    inline: Any,
    subcollection: Iterable[BaseModel],
    spec: CollectionSpec,
    *,
    exclude: Iterable[str] = (),
) -> list[BaseModel]:
    """Merge an inline array with subcollection records, deduplicated by id.

    ``inline`` is the raw array field of the parent document (anything that
    is not a list is treated as empty). ``subcollection`` holds records
    already normalized from their documents. Ids in ``exclude`` are dropped
    from the result.
    """
    merged: dict[str, BaseModel] = {}
    for record in normalize_records(inline, spec.normalize):
        merged[record.id] = record
    for record in subcollection:
        merged[record.id] = record

    for record_id in exclude:
        merged.pop(record_id, None)

    return sort_records(merged.values(), spec)
