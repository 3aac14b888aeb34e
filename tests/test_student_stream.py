"""
Tests for the live roster WebSocket.
"""
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from advising.core.deps import get_student_store
from advising.main import app


@pytest.fixture
def stream_client(memory_store):
    app.dependency_overrides[get_student_store] = lambda: memory_store
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def test_stream_requires_token(stream_client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with stream_client.websocket_connect("/students/stream"):
            pass

    assert exc_info.value.code == 4001


def test_stream_rejects_invalid_token(stream_client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with stream_client.websocket_connect("/students/stream?token=garbage"):
            pass

    assert exc_info.value.code == 4001


def test_stream_pushes_snapshots(stream_client, session_token):
    with stream_client.websocket_connect(f"/students/stream?token={session_token}") as ws:
        initial = ws.receive_json()
        assert initial["type"] == "students"
        assert len(initial["data"]) == 5
        assert "lastContacted" in initial["data"][0]

        ws.send_text("ping")
        assert ws.receive_text() == "pong"

        response = stream_client.post(
            "/students/s-aanya/notes",
            json={"author": "Jane Doe", "content": "Called today"},
            headers={
                "Authorization": f"Bearer {session_token}",
                "X-Requested-With": "XMLHttpRequest",
            },
        )
        assert response.status_code == 201

        update = ws.receive_json()
        assert update["type"] == "students"
        aanya = next(s for s in update["data"] if s["id"] == "s-aanya")
        assert len(aanya["notes"]) == 3
