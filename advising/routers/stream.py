"""
WebSocket router for live roster updates.

Provides a WebSocket endpoint that:
1. Authenticates via session token (query parameter or cookie)
2. Subscribes to the active student store
3. Pushes a full roster snapshot on connect and after every mutation
"""

import asyncio
import contextlib
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect

from advising.core.deps import COOKIE_NAME, get_student_store, session_from_token
from advising.schemas.student import Student
from advising.services.student_store import StudentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/students", tags=["WebSocket"])


def _students_message(students: list[Student]) -> dict[str, Any]:
    return {
        "type": "students",
        "data": [student.model_dump(mode="json", by_alias=True) for student in students],
    }


def _error_message(error: Exception) -> dict[str, Any]:
    logger.warning(f"Student snapshot failed: {type(error).__name__}")
    return {"type": "error", "data": {"detail": "Unable to load students"}}


async def _forward(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError):
            # Client went away; the receive loop handles cleanup
            return


@router.websocket("/stream")
async def stream_students(
    websocket: WebSocket,
    token: str | None = Query(None),
    store: StudentStore = Depends(get_student_store),
):
    """
    WebSocket endpoint for roster snapshots.

    Authenticates via:
    1. JWT token in query parameter (?token=...)
    2. Or session cookie (for browser clients)

    Messages: ``{"type": "students", "data": [...]}`` or
    ``{"type": "error", ...}``. Clients may send ``ping`` and receive ``pong``.
    """
    token = token or websocket.cookies.get(COOKIE_NAME)
    if not token:
        await websocket.close(code=4001, reason="Authentication required")
        return
    try:
        session_from_token(token)
    except HTTPException:
        await websocket.close(code=4001, reason="Invalid token")
        return

    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    # Listeners may fire from another thread's loop; hand off safely
    def on_students(students: list[Student]) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, _students_message(students))

    def on_error(error: Exception) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, _error_message(error))

    unsubscribe = await store.subscribe(on_students, on_error)
    sender = asyncio.create_task(_forward(websocket, queue))

    try:
        # Keep connection alive, handle incoming messages (heartbeat/pings)
        while True:
            try:
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text("pong")
            except WebSocketDisconnect:
                break
    finally:
        unsubscribe()
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
        logger.debug("Student stream closed")
