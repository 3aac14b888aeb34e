"""Student store - the aggregate read/write interface shared by both backends.

A store owns the full record of each student: the profile plus the four
owned collections (timeline, communications, notes, reminders). Every
mutation returns the freshly assembled student and then pushes a full
roster snapshot to live subscribers.

Backends:
- ``InMemoryStudentStore``: a process-wide dict, used when Firestore is
  not configured.
- ``FirestoreStudentStore``: parent documents with per-record
  subcollections, reconciled against legacy inline arrays.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from advising.core.structured_logging import build_log_context
from advising.schemas.student import (
    CommunicationChannel,
    CommunicationEntry,
    Note,
    Reminder,
    Student,
    TimelineEvent,
    TimelineType,
)
from advising.services.record_normalizer import (
    DEFAULT_OWNER,
    coerce_enum,
    coerce_timestamp,
    new_record_id,
)

logger = logging.getLogger(__name__)

StudentsListener = Callable[[list[Student]], None]
ErrorListener = Callable[[Exception], None]
Unsubscribe = Callable[[], None]

FOLLOW_UP_SUBJECT = "Automated follow-up email scheduled"
FOLLOW_UP_OWNER = "Workflow Automation"
FOLLOW_UP_NOTES = "Mock action recorded for visibility. No email is sent in this demo."
FOLLOW_UP_TIMELINE_LABEL = "Follow-up email triggered"
FOLLOW_UP_TIMELINE_DETAILS = "Automation will send reminder within 24 hours."


# =============================================================================
# Exceptions
# =============================================================================


class StudentStoreError(Exception):
    """Base exception for store failures (backend errors included)."""

    pass


class RecordNotFoundError(StudentStoreError):
    """A student or one of its records does not exist."""

    pass


class StudentNotFoundError(RecordNotFoundError):
    """Student does not exist."""

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(f"Student {student_id} not found")


class NoteNotFoundError(RecordNotFoundError):
    """Note does not exist on the student."""

    def __init__(self, student_id: str, note_id: str):
        self.student_id = student_id
        self.note_id = note_id
        super().__init__(f"Note {note_id} not found for student {student_id}")


class ReminderNotFoundError(RecordNotFoundError):
    """Reminder does not exist on the student."""

    def __init__(self, student_id: str, reminder_id: str):
        self.student_id = student_id
        self.reminder_id = reminder_id
        super().__init__(f"Reminder {reminder_id} not found for student {student_id}")


# =============================================================================
# Record builders
# =============================================================================


def build_note(author: str, content: str, now: datetime) -> Note:
    return Note(id=new_record_id(), author=author, content=content, date=now)


def build_communication(
    channel: CommunicationChannel | str,
    subject: str,
    notes: str,
    owner: str,
    now: datetime,
) -> tuple[CommunicationEntry, TimelineEvent]:
    """A logged outreach plus the timeline event that records it.

    Unrecognized channels are recorded as Email.
    """
    channel = coerce_enum(channel, CommunicationChannel, CommunicationChannel.EMAIL)
    entry = CommunicationEntry(
        id=new_record_id(),
        channel=channel,
        subject=subject,
        date=now,
        owner=owner or DEFAULT_OWNER,
        notes=notes,
    )
    event = TimelineEvent(
        id=new_record_id(),
        date=now,
        type=TimelineType.MESSAGE,
        label=f"Logged {channel.value.lower()} outreach",
        details=subject,
    )
    return entry, event


def build_follow_up(now: datetime) -> tuple[CommunicationEntry, TimelineEvent]:
    """The fixed records of a simulated follow-up (nothing is sent)."""
    entry = CommunicationEntry(
        id=new_record_id(),
        channel=CommunicationChannel.EMAIL,
        subject=FOLLOW_UP_SUBJECT,
        date=now,
        owner=FOLLOW_UP_OWNER,
        notes=FOLLOW_UP_NOTES,
    )
    event = TimelineEvent(
        id=new_record_id(),
        date=now,
        type=TimelineType.MESSAGE,
        label=FOLLOW_UP_TIMELINE_LABEL,
        details=FOLLOW_UP_TIMELINE_DETAILS,
    )
    return entry, event


def build_reminder(due_date: datetime | str, description: str, owner: str) -> Reminder:
    return Reminder(
        id=new_record_id(),
        due_date=coerce_timestamp(due_date),
        description=description,
        owner=owner or DEFAULT_OWNER,
        completed=False,
    )


def sort_students(students: Iterable[Student]) -> list[Student]:
    """Roster order: by name, then id."""
    return sorted(students, key=lambda student: (student.name, student.id))


# =============================================================================
# Store interface
# =============================================================================


@dataclass(eq=False)
class _Subscription:
    listener: StudentsListener
    on_error: ErrorListener | None = None
    # Set once any snapshot or error has reached this listener
    delivered: bool = False


class StudentStore(ABC):
    """Interface for student aggregate backends.

    Lookups raise ``StudentNotFoundError``; note and reminder mutations
    raise ``NoteNotFoundError`` / ``ReminderNotFoundError`` when the record
    id is absent. Any other persistence failure is a ``StudentStoreError``.
    """

    backend_name: str = "unknown"

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    @abstractmethod
    async def get_student(self, student_id: str) -> Student:
        pass

    @abstractmethod
    async def list_students(self) -> list[Student]:
        pass

    @abstractmethod
    async def create_note(self, student_id: str, author: str, content: str) -> Student:
        pass

    @abstractmethod
    async def update_note(self, student_id: str, note_id: str, content: str) -> Student:
        pass

    @abstractmethod
    async def delete_note(self, student_id: str, note_id: str) -> Student:
        pass

    @abstractmethod
    async def log_communication(
        self,
        student_id: str,
        channel: CommunicationChannel,
        subject: str,
        notes: str = "",
        owner: str = "",
    ) -> Student:
        pass

    @abstractmethod
    async def trigger_follow_up(self, student_id: str) -> Student:
        pass

    @abstractmethod
    async def create_reminder(
        self,
        student_id: str,
        due_date: datetime | str,
        description: str,
        owner: str = "",
    ) -> Student:
        pass

    @abstractmethod
    async def toggle_reminder(
        self, student_id: str, reminder_id: str, completed: bool
    ) -> Student:
        pass

    # -------------------------------------------------------------------------
    # Live updates
    # -------------------------------------------------------------------------

    async def subscribe(
        self,
        listener: StudentsListener,
        on_error: ErrorListener | None = None,
    ) -> Unsubscribe:
        """Register a roster listener; it receives a snapshot immediately.

        Returns an idempotent ``unsubscribe`` callable.
        """
        subscription = _Subscription(listener=listener, on_error=on_error)
        self._subscriptions.append(subscription)

        try:
            snapshot = await self.list_students()
        except StudentStoreError as exc:
            if not subscription.delivered:
                self._report_error(subscription, exc)
        else:
            # A publish that landed while the snapshot was loading is newer
            if not subscription.delivered:
                self._deliver(subscription, snapshot)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _notify(self, students: list[Student]) -> None:
        """Push a roster snapshot to every subscriber, in subscription order."""
        for subscription in list(self._subscriptions):
            self._deliver(subscription, [s.model_copy(deep=True) for s in students])

    def _notify_error(self, error: Exception) -> None:
        for subscription in list(self._subscriptions):
            self._report_error(subscription, error)

    async def _publish(self) -> None:
        """Rebuild the roster and notify subscribers after a mutation."""
        if not self._subscriptions:
            return
        try:
            students = await self.list_students()
        except StudentStoreError as exc:
            self._notify_error(exc)
            return
        self._notify(students)

    def _deliver(self, subscription: _Subscription, students: list[Student]) -> None:
        subscription.delivered = True
        try:
            subscription.listener(students)
        except Exception:
            logger.exception(
                "Student subscriber failed",
                extra=build_log_context(operation="notify", backend=self.backend_name),
            )

    def _report_error(self, subscription: _Subscription, error: Exception) -> None:
        subscription.delivered = True
        if subscription.on_error is None:
            logger.warning(
                f"Student snapshot failed with no error listener: {type(error).__name__}",
                extra=build_log_context(operation="notify", backend=self.backend_name),
            )
            return
        try:
            subscription.on_error(error)
        except Exception:
            logger.exception(
                "Student error listener failed",
                extra=build_log_context(operation="notify", backend=self.backend_name),
            )


