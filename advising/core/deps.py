"""FastAPI dependencies for authentication, CSRF and service access.

The student store, summary cache and summarizer are resolved once in the
application lifespan and stored on ``app.state``; these dependencies hand
them to request handlers (and can be overridden in tests).
"""

import jwt
from fastapi import HTTPException
from starlette.requests import HTTPConnection

from advising.core.security import decode_session_token
from advising.schemas.auth import UserSession
from advising.services.student_store import StudentStore
from advising.services.summarizer import Summarizer
from advising.services.summary_cache import SummaryCache

COOKIE_NAME = "advising_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


# =============================================================================
# Services
# =============================================================================

def get_student_store(connection: HTTPConnection) -> StudentStore:
    """Active student store (Firestore or in-memory), chosen at startup."""
    store = getattr(connection.app.state, "student_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Student store is not initialized")
    return store


def get_summary_cache(connection: HTTPConnection) -> SummaryCache:
    cache = getattr(connection.app.state, "summary_cache", None)
    if cache is None:
        raise HTTPException(status_code=503, detail="Summary cache is not initialized")
    return cache


def get_summarizer(connection: HTTPConnection) -> Summarizer:
    summarizer = getattr(connection.app.state, "summarizer", None)
    if summarizer is None:
        raise HTTPException(status_code=503, detail="Summarizer is not initialized")
    return summarizer


# =============================================================================
# Authentication
# =============================================================================

def extract_session_token(connection: HTTPConnection) -> str | None:
    """Session token from the cookie, else from an ``Authorization: Bearer`` header."""
    token = connection.cookies.get(COOKIE_NAME)
    if token:
        return token
    authorization = connection.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def session_from_token(token: str) -> UserSession:
    """
    Verify a session token and build the session it carries.

    Raises:
        HTTPException 401: Invalid or incomplete token
    """
    try:
        payload = decode_session_token(token)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid session")

    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        raise HTTPException(status_code=401, detail="Invalid session")

    return UserSession(user_id=str(user_id), email=str(email), name=payload.get("name"))


def get_current_session(connection: HTTPConnection) -> UserSession:
    """
    Get the authenticated session.

    Authorization is "authenticated or not": any valid session may use
    every endpoint.

    Raises:
        HTTPException 401: Not authenticated
    """
    token = extract_session_token(connection)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session_from_token(token)


def require_csrf_header(connection: HTTPConnection) -> None:
    """
    Verify CSRF header on mutations.

    Apply to state-changing endpoints (POST, PATCH, DELETE).

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if connection.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )
