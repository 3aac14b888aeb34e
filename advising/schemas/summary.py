"""Pydantic schemas for AI student summaries.

The summary payload is a reduced projection of a student. Dates are kept
as ISO strings (empty when unparseable) so the payload hashes stably.
"""

from typing import Any

from pydantic import BaseModel, Field

from advising.schemas.student import CamelModel


class SummaryTimelineItem(CamelModel):
    id: str
    date: str
    type: str
    label: str = ""
    details: str = ""


class SummaryCommunicationItem(CamelModel):
    id: str
    channel: str
    subject: str = ""
    date: str
    owner: str = ""
    notes: str = ""


class SummaryNoteItem(CamelModel):
    id: str
    author: str = ""
    date: str
    content: str = ""
    updated_at: str | None = None


class SummaryReminderItem(CamelModel):
    id: str
    due_date: str
    description: str = ""
    owner: str = ""
    completed: bool = False


class SummaryPayload(CamelModel):
    id: str = ""
    name: str = ""
    status: str = "Exploring"
    engagement_score: float = 0
    high_intent: bool = False
    needs_essay_help: bool = False
    last_active: str = ""
    last_contacted: str = ""
    tags: list[str] = Field(default_factory=list)
    program_interests: list[str] = Field(default_factory=list)
    timeline: list[SummaryTimelineItem] = Field(default_factory=list)
    communications: list[SummaryCommunicationItem] = Field(default_factory=list)
    notes: list[SummaryNoteItem] = Field(default_factory=list)
    reminders: list[SummaryReminderItem] = Field(default_factory=list)


class SummaryRequest(BaseModel):
    """Body of a summary request; the student payload is normalized server-side."""

    student: dict[str, Any]


class SummaryResponse(BaseModel):
    summary: str
    cached: bool = False
