"""Students router - API endpoints for student records, outreach and summaries.

Handlers validate input and delegate to the active ``StudentStore``; store
errors are mapped onto HTTP status codes here.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from advising.core.deps import (
    get_current_session,
    get_student_store,
    get_summarizer,
    get_summary_cache,
    require_csrf_header,
)
from advising.core.rate_limit import SUMMARY_RATE_LIMIT, limiter
from advising.core.structured_logging import build_log_context
from advising.schemas.student import (
    CommunicationCreate,
    NoteCreate,
    NoteUpdate,
    ReminderCreate,
    ReminderToggle,
    StudentEnvelope,
    StudentListEnvelope,
)
from advising.schemas.summary import SummaryRequest, SummaryResponse
from advising.services.student_store import (
    RecordNotFoundError,
    StudentStore,
    StudentStoreError,
)
from advising.services.summarizer import (
    Summarizer,
    SummarizerError,
    summarize_student,
)
from advising.services.summary_cache import SummaryCache
from advising.services.summary_payload import normalize_summary_payload

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/students",
    tags=["students"],
    dependencies=[Depends(get_current_session)],
)


def _raise_for_store_error(exc: StudentStoreError, action: str) -> None:
    """Translate a store error into an HTTPException (always raises)."""
    if isinstance(exc, RecordNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    raise HTTPException(status_code=500, detail=f"Unable to {action}: {exc}") from exc


# =============================================================================
# Reads
# =============================================================================


@router.get("", response_model=StudentListEnvelope)
async def list_students(store: StudentStore = Depends(get_student_store)):
    """List every student, sorted by name."""
    try:
        students = await store.list_students()
    except StudentStoreError as e:
        _raise_for_store_error(e, "load students")
    return StudentListEnvelope(data=students)


@router.get("/{student_id}", response_model=StudentEnvelope)
async def get_student(student_id: str, store: StudentStore = Depends(get_student_store)):
    try:
        student = await store.get_student(student_id)
    except StudentStoreError as e:
        _raise_for_store_error(e, "load student")
    return StudentEnvelope(data=student)


# =============================================================================
# Notes
# =============================================================================


@router.post(
    "/{student_id}/notes",
    response_model=StudentEnvelope,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
async def create_note(
    student_id: str,
    data: NoteCreate,
    store: StudentStore = Depends(get_student_store),
):
    try:
        student = await store.create_note(student_id, data.author, data.content)
    except StudentStoreError as e:
        _raise_for_store_error(e, "create note")
    return StudentEnvelope(data=student)


@router.patch(
    "/{student_id}/notes/{note_id}",
    response_model=StudentEnvelope,
    dependencies=[Depends(require_csrf_header)],
)
async def update_note(
    student_id: str,
    note_id: str,
    data: NoteUpdate,
    store: StudentStore = Depends(get_student_store),
):
    try:
        student = await store.update_note(student_id, note_id, data.content)
    except StudentStoreError as e:
        _raise_for_store_error(e, "update note")
    return StudentEnvelope(data=student)


@router.delete(
    "/{student_id}/notes/{note_id}",
    response_model=StudentEnvelope,
    dependencies=[Depends(require_csrf_header)],
)
async def delete_note(
    student_id: str,
    note_id: str,
    store: StudentStore = Depends(get_student_store),
):
    """Delete a note and return the refreshed student."""
    try:
        student = await store.delete_note(student_id, note_id)
    except StudentStoreError as e:
        _raise_for_store_error(e, "delete note")
    return StudentEnvelope(data=student)


# =============================================================================
# Outreach
# =============================================================================


@router.post(
    "/{student_id}/communications",
    response_model=StudentEnvelope,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
async def log_communication(
    student_id: str,
    data: CommunicationCreate,
    store: StudentStore = Depends(get_student_store),
):
    """Log an outreach; also adds a timeline event and updates lastContacted."""
    try:
        student = await store.log_communication(
            student_id, data.channel, data.subject, data.notes, data.owner
        )
    except StudentStoreError as e:
        _raise_for_store_error(e, "log communication")
    return StudentEnvelope(data=student)


@router.post(
    "/{student_id}/follow-up",
    response_model=StudentEnvelope,
    dependencies=[Depends(require_csrf_header)],
)
async def trigger_follow_up(
    student_id: str,
    store: StudentStore = Depends(get_student_store),
):
    """
    Record an automated follow-up email.

    No email is sent; the communication and timeline entries only record intent.
    """
    try:
        student = await store.trigger_follow_up(student_id)
    except StudentStoreError as e:
        _raise_for_store_error(e, "trigger follow-up")
    return StudentEnvelope(data=student)


# =============================================================================
# Reminders
# =============================================================================


@router.post(
    "/{student_id}/reminders",
    response_model=StudentEnvelope,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
async def create_reminder(
    student_id: str,
    data: ReminderCreate,
    store: StudentStore = Depends(get_student_store),
):
    try:
        student = await store.create_reminder(
            student_id, data.due_date, data.description, data.owner
        )
    except StudentStoreError as e:
        _raise_for_store_error(e, "create reminder")
    return StudentEnvelope(data=student)


@router.patch(
    "/{student_id}/reminders/{reminder_id}",
    response_model=StudentEnvelope,
    dependencies=[Depends(require_csrf_header)],
)
async def toggle_reminder(
    student_id: str,
    reminder_id: str,
    data: ReminderToggle,
    store: StudentStore = Depends(get_student_store),
):
    try:
        student = await store.toggle_reminder(student_id, reminder_id, data.completed)
    except StudentStoreError as e:
        _raise_for_store_error(e, "update reminder")
    return StudentEnvelope(data=student)


# =============================================================================
# AI summary
# =============================================================================


@router.post(
    "/{student_id}/summary",
    response_model=SummaryResponse,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(SUMMARY_RATE_LIMIT)
async def summarize(
    request: Request,
    student_id: str,
    body: SummaryRequest,
    cache: SummaryCache = Depends(get_summary_cache),
    summarizer: Summarizer = Depends(get_summarizer),
):
    """Generate (or serve a cached) narrative summary for the posted student payload."""
    payload = normalize_summary_payload(body.student)
    if not payload.id:
        raise HTTPException(status_code=400, detail="Student payload must include an id.")
    if payload.id != student_id:
        raise HTTPException(
            status_code=400, detail="Student id in path and payload do not match."
        )

    try:
        result = await summarize_student(payload, cache=cache, summarizer=summarizer)
    except SummarizerError as e:
        logger.warning(
            f"AI summary failed: {e.message}",
            extra=build_log_context(operation="summary", student_id=student_id),
        )
        raise HTTPException(status_code=e.status_code, detail=e.message) from e

    return SummaryResponse(summary=result.summary, cached=result.cached)
