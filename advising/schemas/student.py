"""Pydantic schemas for students and their owned records.

Field names are snake_case in Python and camelCase on the wire and in
Firestore documents (``dueDate``, ``lastContacted``, ...).
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApplicationStatus(str, Enum):
    EXPLORING = "Exploring"
    SHORTLISTING = "Shortlisting"
    APPLYING = "Applying"
    SUBMITTED = "Submitted"


class TimelineType(str, Enum):
    ACTIVITY = "activity"
    DOCUMENT = "document"
    MILESTONE = "milestone"
    MESSAGE = "message"


class CommunicationChannel(str, Enum):
    EMAIL = "Email"
    SMS = "SMS"
    CALL = "Call"
    WHATSAPP = "WhatsApp"


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Owned records
# =============================================================================


class TimelineEvent(CamelModel):
    id: str
    date: datetime
    type: TimelineType = TimelineType.ACTIVITY
    label: str = ""
    details: str = ""


class CommunicationEntry(CamelModel):
    id: str
    channel: CommunicationChannel = CommunicationChannel.EMAIL
    subject: str = ""
    date: datetime
    owner: str = ""
    notes: str = ""


class Note(CamelModel):
    id: str
    author: str = ""
    date: datetime
    content: str = ""
    updated_at: datetime | None = None


class Reminder(CamelModel):
    id: str
    due_date: datetime
    description: str = ""
    owner: str = ""
    completed: bool = False


# =============================================================================
# Aggregate root
# =============================================================================


class Student(CamelModel):
    """A student with every owned collection assembled."""

    id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    country: str = ""
    grade: str = ""
    status: ApplicationStatus = ApplicationStatus.EXPLORING
    last_active: datetime
    last_contacted: datetime
    high_intent: bool = False
    needs_essay_help: bool = False
    program_interests: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    engagement_score: int = Field(0, ge=0, le=100)
    essay_drafts: int = Field(0, ge=0)
    documents_uploaded: int = Field(0, ge=0)
    open_applications: int = Field(0, ge=0)
    timeline: list[TimelineEvent] = Field(default_factory=list)
    communications: list[CommunicationEntry] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)
    reminders: list[Reminder] = Field(default_factory=list)
    ai_summary: str = ""


# =============================================================================
# Requests / responses
# =============================================================================


class StudentRequest(CamelModel):
    """Request body base: strips surrounding whitespace from strings."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True
    )


class NoteCreate(StudentRequest):
    """Request to add a note."""

    author: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=4000)


class NoteUpdate(StudentRequest):
    """Request to edit a note's content."""

    content: str = Field(..., min_length=1, max_length=4000)


class CommunicationCreate(StudentRequest):
    """Request to log an outreach."""

    channel: CommunicationChannel
    subject: str = Field(..., min_length=1, max_length=300)
    notes: str = Field("", max_length=4000)
    owner: str = Field("", max_length=200)


class ReminderCreate(StudentRequest):
    """Request to schedule a reminder."""

    due_date: datetime
    description: str = Field(..., min_length=1, max_length=1000)
    owner: str = Field("", max_length=200)


class ReminderToggle(StudentRequest):
    completed: bool


class StudentEnvelope(BaseModel):
    data: Student


class StudentListEnvelope(BaseModel):
    data: list[Student]
