"""In-memory student store - the fallback backend when Firestore is not configured.

Holds one mapping of student id to Student. Mutations contain no await
points, so each call applies atomically on the event loop and subscribers
are notified synchronously, in subscription order, before it returns.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from advising.core.structured_logging import build_log_context
from advising.schemas.student import CommunicationChannel, Student
from advising.services.reconciler import COLLECTIONS, sort_records
from advising.services.record_normalizer import utcnow
from advising.services.student_store import (
    NoteNotFoundError,
    ReminderNotFoundError,
    StudentNotFoundError,
    StudentStore,
    build_communication,
    build_follow_up,
    build_note,
    build_reminder,
    sort_students,
)

logger = logging.getLogger(__name__)


def sort_collections(student: Student) -> Student:
    """Apply each owned collection's ordering in place."""
    for spec in COLLECTIONS:
        setattr(student, spec.field, sort_records(getattr(student, spec.field), spec))
    return student


class InMemoryStudentStore(StudentStore):
    """Process-local store seeded from the bundled demo roster."""

    backend_name = "memory"

    def __init__(self, students: Iterable[Student] = ()):
        super().__init__()
        self._students: dict[str, Student] = {}
        for student in students:
            self._students[student.id] = sort_collections(student.model_copy(deep=True))

    @classmethod
    def from_seed(cls) -> "InMemoryStudentStore":
        from advising.data import load_seed_students

        return cls(load_seed_students())

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_student(self, student_id: str) -> Student:
        return self._require(student_id).model_copy(deep=True)

    async def list_students(self) -> list[Student]:
        return self._snapshot()

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    async def create_note(self, student_id: str, author: str, content: str) -> Student:
        student = self._require(student_id)
        student.notes.append(build_note(author, content, utcnow()))
        return self._commit(student, "create_note")

    async def update_note(self, student_id: str, note_id: str, content: str) -> Student:
        student = self._require(student_id)
        note = next((n for n in student.notes if n.id == note_id), None)
        if note is None:
            raise NoteNotFoundError(student_id, note_id)
        note.content = content
        note.updated_at = utcnow()
        return self._commit(student, "update_note", note_id)

    async def delete_note(self, student_id: str, note_id: str) -> Student:
        student = self._require(student_id)
        remaining = [n for n in student.notes if n.id != note_id]
        if len(remaining) == len(student.notes):
            raise NoteNotFoundError(student_id, note_id)
        student.notes = remaining
        return self._commit(student, "delete_note", note_id)

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
        student = self._require(student_id)
        now = utcnow()
        entry, event = build_communication(channel, subject, notes, owner, now)
        student.communications.append(entry)
        student.timeline.append(event)
        student.last_contacted = now
        return self._commit(student, "log_communication", entry.id)

    async def trigger_follow_up(self, student_id: str) -> Student:
        student = self._require(student_id)
        now = utcnow()
        entry, event = build_follow_up(now)
        student.communications.append(entry)
        student.timeline.append(event)
        student.last_contacted = now
        return self._commit(student, "trigger_follow_up", entry.id)

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
        student = self._require(student_id)
        reminder = build_reminder(due_date, description, owner)
        student.reminders.append(reminder)
        return self._commit(student, "create_reminder", reminder.id)

    async def toggle_reminder(
        self, student_id: str, reminder_id: str, completed: bool
    ) -> Student:
        student = self._require(student_id)
        reminder = next((r for r in student.reminders if r.id == reminder_id), None)
        if reminder is None:
            raise ReminderNotFoundError(student_id, reminder_id)
        reminder.completed = completed
        return self._commit(student, "toggle_reminder", reminder_id)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _require(self, student_id: str) -> Student:
        student = self._students.get(student_id)
        if student is None:
            raise StudentNotFoundError(student_id)
        return student

    def _snapshot(self) -> list[Student]:
        return sort_students(s.model_copy(deep=True) for s in self._students.values())

    def _commit(self, student: Student, operation: str, record_id: str | None = None) -> Student:
        sort_collections(student)
        logger.debug(
            f"Applied {operation}",
            extra=build_log_context(
                operation=operation,
                student_id=student.id,
                record_id=record_id,
                backend=self.backend_name,
            ),
        )
        if self._subscriptions:
            self._notify(self._snapshot())
        return student.model_copy(deep=True)
