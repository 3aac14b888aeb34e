"""Firestore student store - parent documents plus per-record subcollections.

Layout::

    students/{student_id}                  profile fields + inline arrays
    students/{student_id}/notes/{note_id}  one document per record
    (same for timeline, communications, reminders)

Reads always merge the inline array with the subcollection (subcollection
wins on a shared id). Every mutation follows the same protocol:

1. write the targeted subcollection document;
2. re-read the parent's inline array and enumerate the subcollection;
3. reconcile and sort;
4. write the reconciled array back onto the parent (with ``updatedAt`` and
   any scalar fields such as ``lastContacted``);
5. re-fetch and return the assembled student.

Steps 1 and 4 are separate writes, not a transaction. Two concurrent
mutations of the same collection can leave the inline snapshot behind the
subcollection until the next mutation reconciles it again; the
subcollection itself stays correct.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Mapping
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from advising.core.structured_logging import build_log_context
from advising.schemas.student import CommunicationChannel, Student
from advising.services.reconciler import (
    COLLECTIONS,
    COMMUNICATIONS,
    NOTES,
    REMINDERS,
    TIMELINE,
    CollectionSpec,
    reconcile,
)
from advising.services.record_normalizer import (
    normalize_student,
    serialize_record,
    subrecord_document,
    to_iso,
    utcnow,
)
from advising.services.student_store import (
    NoteNotFoundError,
    ReminderNotFoundError,
    StudentNotFoundError,
    StudentStore,
    StudentStoreError,
    build_communication,
    build_follow_up,
    build_note,
    build_reminder,
    sort_students,
)

logger = logging.getLogger(__name__)

STUDENTS_COLLECTION = "students"


class FirestoreStudentStore(StudentStore):
    """Student store over a ``google.cloud.firestore.AsyncClient``."""

    backend_name = "firestore"

    def __init__(self, client: Any, collection: str = STUDENTS_COLLECTION):
        super().__init__()
        self._client = client
        self._collection = collection

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_student(self, student_id: str) -> Student:
        async with self._operation("get_student", student_id):
            snapshot = await self._read(student_id)
            return await self._assemble(snapshot)

    async def list_students(self) -> list[Student]:
        async with self._operation("list_students"):
            snapshots = [
                snapshot
                async for snapshot in self._client.collection(self._collection).stream()
            ]
            students = await asyncio.gather(*(self._assemble(s) for s in snapshots))
        return sort_students(students)

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    async def create_note(self, student_id: str, author: str, content: str) -> Student:
        async with self._operation("create_note", student_id):
            snapshot = await self._read(student_id)
            note = build_note(author, content, utcnow())
            await self._put(snapshot.reference, NOTES, note)
            student = await self._write_back(snapshot.reference, student_id, (NOTES,))
        await self._publish()
        return student

    async def update_note(self, student_id: str, note_id: str, content: str) -> Student:
        async with self._operation("update_note", student_id, note_id):
            snapshot = await self._read(student_id)
            note = await self._find(snapshot, NOTES, note_id)
            if note is None:
                raise NoteNotFoundError(student_id, note_id)
            # Full document with merge so inline-only notes are migrated
            updated = note.model_copy(update={"content": content, "updated_at": utcnow()})
            await self._put(snapshot.reference, NOTES, updated, merge=True)
            student = await self._write_back(snapshot.reference, student_id, (NOTES,))
        await self._publish()
        return student

    async def delete_note(self, student_id: str, note_id: str) -> Student:
        async with self._operation("delete_note", student_id, note_id):
            snapshot = await self._read(student_id)
            note = await self._find(snapshot, NOTES, note_id)
            if note is None:
                raise NoteNotFoundError(student_id, note_id)
            await (
                snapshot.reference.collection(NOTES.subcollection)
                .document(note_id)
                .delete()
            )
            student = await self._write_back(
                snapshot.reference,
                student_id,
                (NOTES,),
                exclude={NOTES.field: {note_id}},
            )
        await self._publish()
        return student

    # -------------------------------------------------------------------------
    # Outreach
    # -------------------------------------------------------------------------

    async def log_communication(
        self,
        student_id: str,
        channel: CommunicationChannel,
        subject: str,
        notes: str = "",
        owner: str = "",
    ) -> Student:
        async with self._operation("log_communication", student_id):
            snapshot = await self._read(student_id)
            now = utcnow()
            entry, event = build_communication(channel, subject, notes, owner, now)
            await asyncio.gather(
                self._put(snapshot.reference, COMMUNICATIONS, entry),
                self._put(snapshot.reference, TIMELINE, event),
            )
            student = await self._write_back(
                snapshot.reference,
                student_id,
                (COMMUNICATIONS, TIMELINE),
                fields={"lastContacted": to_iso(now)},
            )
        await self._publish()
        return student

    async def trigger_follow_up(self, student_id: str) -> Student:
        async with self._operation("trigger_follow_up", student_id):
            snapshot = await self._read(student_id)
            now = utcnow()
            entry, event = build_follow_up(now)
            await asyncio.gather(
                self._put(snapshot.reference, COMMUNICATIONS, entry),
                self._put(snapshot.reference, TIMELINE, event),
            )
            student = await self._write_back(
                snapshot.reference,
                student_id,
                (COMMUNICATIONS, TIMELINE),
                fields={"lastContacted": to_iso(now)},
            )
        await self._publish()
        return student

    # -------------------------------------------------------------------------
    # Reminders
    # -------------------------------------------------------------------------

    async def create_reminder(
        self,
        student_id: str,
        due_date: datetime | str,
        description: str,
        owner: str = "",
    ) -> Student:
        async with self._operation("create_reminder", student_id):
            snapshot = await self._read(student_id)
            reminder = build_reminder(due_date, description, owner)
            await self._put(snapshot.reference, REMINDERS, reminder)
            student = await self._write_back(snapshot.reference, student_id, (REMINDERS,))
        await self._publish()
        return student

    async def toggle_reminder(
        self, student_id: str, reminder_id: str, completed: bool
    ) -> Student:
        async with self._operation("toggle_reminder", student_id, reminder_id):
            snapshot = await self._read(student_id)
            reminder = await self._find(snapshot, REMINDERS, reminder_id)
            if reminder is None:
                raise ReminderNotFoundError(student_id, reminder_id)
            updated = reminder.model_copy(update={"completed": completed})
            await self._put(snapshot.reference, REMINDERS, updated, merge=True)
            student = await self._write_back(snapshot.reference, student_id, (REMINDERS,))
        await self._publish()
        return student

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @asynccontextmanager
    async def _operation(
        self,
        operation: str,
        student_id: str | None = None,
        record_id: str | None = None,
    ) -> AsyncIterator[None]:
        """Log backend failures with context and re-raise them as StudentStoreError."""
        try:
            yield
        except StudentStoreError:
            raise
        except Exception as exc:
            logger.exception(
                f"Firestore {operation} failed",
                extra=build_log_context(
                    operation=operation,
                    student_id=student_id,
                    record_id=record_id,
                    backend=self.backend_name,
                ),
            )
            target = f" for student {student_id}" if student_id else ""
            raise StudentStoreError(
                f"Failed to {operation.replace('_', ' ')}{target}"
            ) from exc

    def _student_ref(self, student_id: str) -> Any:
        return self._client.collection(self._collection).document(student_id)

    async def _read(self, student_id: str) -> Any:
        snapshot = await self._student_ref(student_id).get()
        if not snapshot.exists:
            raise StudentNotFoundError(student_id)
        return snapshot

    async def _load_subcollection(self, ref: Any, spec: CollectionSpec) -> list[BaseModel]:
        return [
            spec.normalize(doc.to_dict() or {}, record_id=doc.id)
            async for doc in ref.collection(spec.subcollection).stream()
        ]

    async def _reconciled(
        self,
        data: Mapping[str, Any],
        ref: Any,
        specs: Iterable[CollectionSpec],
        exclude: Mapping[str, Iterable[str]] | None = None,
    ) -> dict[str, list[BaseModel]]:
        """Reconcile several collections, enumerating their subcollections concurrently."""
        specs = tuple(specs)
        exclude = exclude or {}
        loaded = await asyncio.gather(*(self._load_subcollection(ref, spec) for spec in specs))
        return {
            spec.field: reconcile(
                data.get(spec.field), records, spec, exclude=exclude.get(spec.field, ())
            )
            for spec, records in zip(specs, loaded)
        }

    async def _assemble(self, snapshot: Any) -> Student:
        data = snapshot.to_dict() or {}
        collections = await self._reconciled(data, snapshot.reference, COLLECTIONS)
        return normalize_student(snapshot.id, data, **collections)

    async def _find(self, snapshot: Any, spec: CollectionSpec, record_id: str) -> Any:
        data = snapshot.to_dict() or {}
        collections = await self._reconciled(data, snapshot.reference, (spec,))
        return next((r for r in collections[spec.field] if r.id == record_id), None)

    async def _put(
        self, ref: Any, spec: CollectionSpec, record: BaseModel, merge: bool = False
    ) -> None:
        await (
            ref.collection(spec.subcollection)
            .document(record.id)
            .set(subrecord_document(record), merge=merge)
        )

    async def _write_back(
        self,
        ref: Any,
        student_id: str,
        specs: Iterable[CollectionSpec],
        *,
        exclude: Mapping[str, Iterable[str]] | None = None,
        fields: Mapping[str, Any] | None = None,
    ) -> Student:
        """Persist reconciled arrays onto the parent document and return the fresh student."""
        snapshot = await ref.get()
        if not snapshot.exists:
            raise StudentNotFoundError(student_id)

        collections = await self._reconciled(snapshot.to_dict() or {}, ref, specs, exclude)
        update: dict[str, Any] = {
            field: [serialize_record(record) for record in records]
            for field, records in collections.items()
        }
        update.update(fields or {})
        update["updatedAt"] = to_iso(utcnow())
        await ref.update(update)

        logger.info(
            f"Wrote back {', '.join(collections)}",
            extra=build_log_context(student_id=student_id, backend=self.backend_name),
        )
        return await self._assemble(await self._read(student_id))
