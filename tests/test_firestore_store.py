import pytest

from advising.schemas.student import CommunicationChannel
from advising.services.firestore_store import FirestoreStudentStore
from advising.services.student_store import (
    NoteNotFoundError,
    ReminderNotFoundError,
    StudentNotFoundError,
    StudentStoreError,
)

PROFILE = {
    "name": "Aanya Patel",
    "email": "aanya.patel@example.com",
    "country": "India",
    "grade": "12",
    "status": "Shortlisting",
    "lastActive": "2025-09-12T15:45:00Z",
    "lastContacted": "2025-09-10T10:00:00Z",
    "engagementScore": 82,
}


def _legacy_note(note_id: str, date: str, content: str) -> dict:
    return {"id": note_id, "author": "Meera Kapoor", "date": date, "content": content}


@pytest.fixture
def store(fake_firestore) -> FirestoreStudentStore:
    return FirestoreStudentStore(fake_firestore)


# =============================================================================
# Reads
# =============================================================================


@pytest.mark.asyncio
async def test_get_student_merges_inline_and_subcollection(store, fake_firestore):
    fake_firestore.add_student(
        "s-1",
        {
            **PROFILE,
            "notes": [
                _legacy_note("n-1", "2025-09-01T10:00:00Z", "inline only"),
                _legacy_note("n-2", "2025-09-02T10:00:00Z", "stale inline copy"),
            ],
        },
        collections={
            "notes": {
                "n-2": {"author": "Meera Kapoor", "date": "2025-09-02T10:00:00Z", "content": "fresh"},
                "n-3": {"author": "Leo", "date": "2025-09-03T10:00:00Z", "content": "doc only"},
            }
        },
    )

    student = await store.get_student("s-1")

    assert [n.id for n in student.notes] == ["n-3", "n-2", "n-1"]
    assert {n.id: n.content for n in student.notes}["n-2"] == "fresh"
    assert student.name == "Aanya Patel"
    assert student.engagement_score == 82


@pytest.mark.asyncio
async def test_get_student_reads_subcollections_even_when_inline_is_present(store, fake_firestore):
    fake_firestore.add_student(
        "s-1",
        {**PROFILE, "reminders": []},
        collections={"reminders": {"r-1": {"dueDate": "2025-09-16T11:00:00Z"}}},
    )

    student = await store.get_student("s-1")

    assert [r.id for r in student.reminders] == ["r-1"]


@pytest.mark.asyncio
async def test_list_students_sorted_by_name(store, fake_firestore):
    fake_firestore.add_student("s-b", {**PROFILE, "name": "Zoe"})
    fake_firestore.add_student("s-a", {**PROFILE, "name": "Ari"})

    students = await store.list_students()

    assert [s.name for s in students] == ["Ari", "Zoe"]


@pytest.mark.asyncio
async def test_get_missing_student_raises_not_found(store):
    with pytest.raises(StudentNotFoundError):
        await store.get_student("missing-student")


# =============================================================================
# Mutation protocol
# =============================================================================


@pytest.mark.asyncio
async def test_create_note_writes_subdocument_before_parent(store, fake_firestore):
    fake_firestore.add_student("s-1", dict(PROFILE))

    student = await store.create_note("s-1", "Jane Doe", "Called today")

    note = student.notes[0]
    assert note.author == "Jane Doe"
    assert fake_firestore.writes() == [
        ("set", f"students/s-1/notes/{note.id}"),
        ("update", "students/s-1"),
    ]
    parent = fake_firestore.get_doc("students", "s-1")
    assert [n["id"] for n in parent["notes"]] == [note.id]
    assert parent["updatedAt"].endswith("Z")
    document = fake_firestore.get_doc("students", "s-1", "notes", note.id)
    assert document["content"] == "Called today"
    assert "id" not in document


@pytest.mark.asyncio
async def test_update_migrates_inline_only_note(store, fake_firestore):
    fake_firestore.add_student(
        "s-1",
        {**PROFILE, "notes": [_legacy_note("n-legacy", "2025-09-01T10:00:00Z", "old text")]},
    )

    student = await store.update_note("s-1", "n-legacy", "new text")

    document = fake_firestore.get_doc("students", "s-1", "notes", "n-legacy")
    assert document["content"] == "new text"
    assert document["author"] == "Meera Kapoor"
    assert document["updatedAt"]
    assert student.notes[0].content == "new text"
    assert student.notes[0].updated_at is not None
    parent = fake_firestore.get_doc("students", "s-1")
    assert parent["notes"][0]["content"] == "new text"


@pytest.mark.asyncio
async def test_delete_removes_inline_only_note(store, fake_firestore):
    fake_firestore.add_student(
        "s-1",
        {
            **PROFILE,
            "notes": [
                _legacy_note("n-legacy", "2025-09-01T10:00:00Z", "remove me"),
                _legacy_note("n-keep", "2025-09-02T10:00:00Z", "keep me"),
            ],
        },
    )

    student = await store.delete_note("s-1", "n-legacy")

    assert [n.id for n in student.notes] == ["n-keep"]
    parent = fake_firestore.get_doc("students", "s-1")
    assert [n["id"] for n in parent["notes"]] == ["n-keep"]
    fetched = await store.get_student("s-1")
    assert [n.id for n in fetched.notes] == ["n-keep"]


@pytest.mark.asyncio
async def test_delete_removes_subcollection_note(store, fake_firestore):
    fake_firestore.add_student(
        "s-1",
        dict(PROFILE),
        collections={"notes": {"n-1": {"date": "2025-09-01T10:00:00Z", "content": "x"}}},
    )

    student = await store.delete_note("s-1", "n-1")

    assert student.notes == []
    assert fake_firestore.get_doc("students", "s-1", "notes", "n-1") is None


@pytest.mark.asyncio
async def test_log_communication_writes_both_records_and_last_contacted(store, fake_firestore):
    fake_firestore.add_student("s-1", dict(PROFILE))

    student = await store.log_communication(
        "s-1", CommunicationChannel.CALL, "Intro call", "", "Jane Doe"
    )

    entry = student.communications[0]
    event = student.timeline[0]
    assert event.label == "Logged call outreach"
    assert student.last_contacted == entry.date
    parent = fake_firestore.get_doc("students", "s-1")
    assert parent["lastContacted"].endswith("Z")
    assert [c["id"] for c in parent["communications"]] == [entry.id]
    assert [t["id"] for t in parent["timeline"]] == [event.id]
    writes = fake_firestore.writes()
    assert writes[-1] == ("update", "students/s-1")
    assert set(writes[:-1]) == {
        ("set", f"students/s-1/communications/{entry.id}"),
        ("set", f"students/s-1/timeline/{event.id}"),
    }


@pytest.mark.asyncio
async def test_trigger_follow_up_uses_workflow_owner(store, fake_firestore):
    fake_firestore.add_student("s-1", dict(PROFILE))

    student = await store.trigger_follow_up("s-1")

    assert student.communications[0].owner == "Workflow Automation"
    assert student.timeline[0].label == "Follow-up email triggered"


@pytest.mark.asyncio
async def test_toggle_migrates_inline_only_reminder(store, fake_firestore):
    fake_firestore.add_student(
        "s-1",
        {
            **PROFILE,
            "reminders": [
                {
                    "id": "r-legacy",
                    "dueDate": "2025-09-16T11:00:00Z",
                    "description": "Review essay",
                    "owner": "Meera Kapoor",
                    "completed": False,
                }
            ],
        },
    )

    student = await store.toggle_reminder("s-1", "r-legacy", True)

    assert student.reminders[0].completed is True
    document = fake_firestore.get_doc("students", "s-1", "reminders", "r-legacy")
    assert document["completed"] is True
    assert document["description"] == "Review essay"


@pytest.mark.asyncio
async def test_create_reminder_keeps_reminders_sorted(store, fake_firestore):
    fake_firestore.add_student(
        "s-1",
        {**PROFILE, "reminders": [{"id": "r-late", "dueDate": "2025-09-30T10:00:00Z"}]},
    )

    student = await store.create_reminder("s-1", "2025-09-20T10:00:00Z", "Check in", "")

    assert [r.description for r in student.reminders][0] == "Check in"
    assert student.reminders[0].owner == "Advising Team"
    assert [r.id for r in student.reminders][1] == "r-late"


@pytest.mark.asyncio
async def test_missing_records_raise_not_found_without_writes(store, fake_firestore):
    fake_firestore.add_student("s-1", dict(PROFILE))

    with pytest.raises(NoteNotFoundError):
        await store.update_note("s-1", "missing-note", "x")
    with pytest.raises(NoteNotFoundError):
        await store.delete_note("s-1", "missing-note")
    with pytest.raises(ReminderNotFoundError):
        await store.toggle_reminder("s-1", "missing-reminder", True)
    with pytest.raises(StudentNotFoundError):
        await store.create_note("missing-student", "Jane Doe", "x")

    assert fake_firestore.writes() == []


# =============================================================================
# Failures and subscriptions
# =============================================================================


@pytest.mark.asyncio
async def test_backend_errors_are_wrapped(store, fake_firestore, monkeypatch):
    def broken(name):
        raise RuntimeError("firestore unavailable")

    monkeypatch.setattr(fake_firestore, "collection", broken)

    with pytest.raises(StudentStoreError) as exc_info:
        await store.get_student("s-1")

    assert "get student" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_subscribers_receive_snapshot_after_mutation(store, fake_firestore):
    fake_firestore.add_student("s-1", dict(PROFILE))
    snapshots = []
    await store.subscribe(snapshots.append)

    await store.create_note("s-1", "Jane Doe", "Called today")

    assert len(snapshots) == 2
    assert len(snapshots[-1][0].notes) == 1


@pytest.mark.asyncio
async def test_snapshot_failure_goes_to_error_listener(store, fake_firestore, monkeypatch):
    fake_firestore.add_student("s-1", dict(PROFILE))
    snapshots, errors = [], []
    await store.subscribe(snapshots.append, errors.append)

    async def failing_list():
        raise StudentStoreError("Failed to list students")

    monkeypatch.setattr(store, "list_students", failing_list)
    student = await store.create_note("s-1", "Jane Doe", "Called today")

    assert len(student.notes) == 1
    assert len(snapshots) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], StudentStoreError)


@pytest.mark.asyncio
async def test_unknown_channel_is_logged_as_email(store, fake_firestore):
    fake_firestore.add_student("s-1", dict(PROFILE))

    student = await store.log_communication("s-1", "Fax", "Sent forms")

    assert student.communications[0].channel == CommunicationChannel.EMAIL
    assert student.timeline[0].label == "Logged email outreach"
    entry_id = student.communications[0].id
    document = fake_firestore.get_doc("students", "s-1", "communications", entry_id)
    assert document["channel"] == "Email"


@pytest.mark.asyncio
async def test_out_of_range_stored_date_does_not_break_roster(store, fake_firestore):
    fake_firestore.add_student(
        "s-1",
        {**PROFILE, "lastActive": "9999-12-31T23:00:00-05:00"},
        collections={"notes": {"n-1": {"date": "0001-01-01T00:00:00+05:00"}}},
    )

    students = await store.list_students()

    assert [s.id for s in students] == ["s-1"]
    assert [n.id for n in students[0].notes] == ["n-1"]
