"""
Test configuration and fixtures.

Provides:
- In-memory student store seeded with the demo roster
- An in-process fake of the Firestore async client surface
- JWT token minting for authenticated tests
- HTTPX AsyncClient with service dependencies overridden
"""
import copy
import os
from typing import Any, AsyncGenerator

import pytest
from google.api_core.exceptions import NotFound
from httpx import ASGITransport, AsyncClient

# Rate limits off, Firestore and Hugging Face unconfigured
os.environ["TESTING"] = "1"
for _key in (
    "FIREBASE_PROJECT_ID",
    "FIREBASE_CLIENT_EMAIL",
    "FIREBASE_PRIVATE_KEY",
    "FIRESTORE_EMULATOR_HOST",
    "HUGGINGFACE_API_KEY",
    "SENTRY_DSN",
):
    os.environ.pop(_key, None)

from advising.core.deps import (  # noqa: E402
    COOKIE_NAME,
    get_student_store,
    get_summarizer,
    get_summary_cache,
)
from advising.core.security import create_session_token  # noqa: E402
from advising.main import app  # noqa: E402
from advising.schemas.summary import SummaryPayload  # noqa: E402
from advising.services.memory_store import InMemoryStudentStore  # noqa: E402
from advising.services.summarizer import Summarizer  # noqa: E402
from advising.services.summary_cache import SummaryCache  # noqa: E402


# =============================================================================
# Fake Firestore
# =============================================================================

class FakeDocumentSnapshot:
    def __init__(self, reference: "FakeDocumentReference", data: dict | None):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> dict | None:
        return copy.deepcopy(self._data)


class FakeDocumentReference:
    def __init__(self, client: "FakeFirestoreClient", path: tuple[str, ...]):
        self._client = client
        self._path = path

    @property
    def id(self) -> str:
        return self._path[-1]

    @property
    def path(self) -> str:
        return "/".join(self._path)

    def collection(self, name: str) -> "FakeCollectionReference":
        return FakeCollectionReference(self._client, self._path + (name,))

    async def get(self) -> FakeDocumentSnapshot:
        self._client.record("get", self.path)
        return FakeDocumentSnapshot(self, copy.deepcopy(self._client.docs.get(self._path)))

    async def set(self, data: dict, merge: bool = False) -> None:
        self._client.record("set", self.path, data, merge=merge)
        existing = self._client.docs.get(self._path)
        if merge and existing is not None:
            existing.update(copy.deepcopy(data))
        else:
            self._client.docs[self._path] = copy.deepcopy(data)

    async def update(self, data: dict) -> None:
        self._client.record("update", self.path, data)
        if self._path not in self._client.docs:
            raise NotFound(f"No document to update: {self.path}")
        self._client.docs[self._path].update(copy.deepcopy(data))

    async def delete(self) -> None:
        self._client.record("delete", self.path)
        self._client.docs.pop(self._path, None)


class FakeCollectionReference:
    def __init__(self, client: "FakeFirestoreClient", path: tuple[str, ...]):
        self._client = client
        self._path = path

    def document(self, document_id: str) -> FakeDocumentReference:
        return FakeDocumentReference(self._client, self._path + (document_id,))

    async def stream(self):
        self._client.record("stream", "/".join(self._path))
        matches = [
            (path, data)
            for path, data in sorted(self._client.docs.items())
            if len(path) == len(self._path) + 1 and path[:-1] == self._path
        ]
        for path, data in matches:
            yield FakeDocumentSnapshot(
                FakeDocumentReference(self._client, path), copy.deepcopy(data)
            )


class FakeFirestoreClient:
    """Dict-backed stand-in for ``google.cloud.firestore.AsyncClient``."""

    def __init__(self):
        self.docs: dict[tuple[str, ...], dict] = {}
        self.calls: list[tuple[str, str, Any]] = []

    def collection(self, name: str) -> FakeCollectionReference:
        return FakeCollectionReference(self, (name,))

    def record(self, op: str, path: str, data: Any = None, **kwargs: Any) -> None:
        self.calls.append((op, path, copy.deepcopy(data)))

    def writes(self) -> list[tuple[str, str]]:
        return [(op, path) for op, path, _ in self.calls if op in ("set", "update", "delete")]

    def add_student(
        self,
        student_id: str,
        data: dict,
        collections: dict[str, dict[str, dict]] | None = None,
    ) -> None:
        self.docs[("students", student_id)] = copy.deepcopy(data)
        for name, records in (collections or {}).items():
            for record_id, payload in records.items():
                self.docs[("students", student_id, name, record_id)] = copy.deepcopy(payload)

    def get_doc(self, *path: str) -> dict | None:
        return self.docs.get(tuple(path))


@pytest.fixture
def fake_firestore() -> FakeFirestoreClient:
    return FakeFirestoreClient()


# =============================================================================
# Services
# =============================================================================

class StubSummarizer(Summarizer):
    """Summarizer that records calls instead of calling a provider."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.calls: list[SummaryPayload] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def summarize(self, payload: SummaryPayload) -> str:
        self.calls.append(payload)
        return f"{payload.name} is {payload.status.lower()} with {len(payload.notes)} notes."


@pytest.fixture
def memory_store() -> InMemoryStudentStore:
    return InMemoryStudentStore.from_seed()


@pytest.fixture
def summary_cache() -> SummaryCache:
    return SummaryCache()


@pytest.fixture
def stub_summarizer() -> StubSummarizer:
    return StubSummarizer()


# =============================================================================
# Auth
# =============================================================================

@pytest.fixture
def session_token() -> str:
    return create_session_token("advisor-1", "advisor@example.com", "Jane Doe")


# =============================================================================
# HTTP Clients
# =============================================================================

def _override_services(store, cache, summarizer) -> None:
    app.dependency_overrides[get_student_store] = lambda: store
    app.dependency_overrides[get_summary_cache] = lambda: cache
    app.dependency_overrides[get_summarizer] = lambda: summarizer


@pytest.fixture(scope="function")
async def client(
    memory_store, summary_cache, stub_summarizer
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create unauthenticated AsyncClient for testing public endpoints.
    """
    _override_services(memory_store, summary_cache, stub_summarizer)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    memory_store, summary_cache, stub_summarizer, session_token
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create authenticated AsyncClient with JWT cookie and CSRF header.
    """
    _override_services(memory_store, summary_cache, stub_summarizer)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={COOKIE_NAME: session_token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    ) as c:
        yield c

    app.dependency_overrides.clear()
