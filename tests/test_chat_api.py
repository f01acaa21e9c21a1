"""
Tests for the REST send and history endpoints.

Tests cover:
- Send persists and returns the canonical message
- History in both directions, oldest first, repeatable
- Offline recipient (message recovered by history)
- Authentication, validation and storage failures
"""

import pytest
from sqlalchemy.exc import OperationalError

from matchchat.repositories.message_repository import MessageRepository
from tests.conftest import auth_headers


def send(client, sender, to, text):
    return client.post("/api/v1/chat/send", json={"to": to, "text": text}, headers=auth_headers(sender))


def history(client, requester, peer, **params):
    response = client.get(f"/api/v1/chat/history/{peer}", params=params, headers=auth_headers(requester))
    assert response.status_code == 200
    return response.json()["messages"]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_send_returns_persisted_message(client):
    response = send(client, "u1", "u2", "  hello  ")

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    message = body["message"]
    assert set(message) == {"id", "from", "to", "text", "createdAt"}
    assert message["from"] == "u1"
    assert message["to"] == "u2"
    assert message["text"] == "hello"
    assert "X-Request-ID" in response.headers


def test_offline_recipient_recovers_message_from_history(client):
    sent = send(client, "u1", "u2", "hi").json()["message"]

    sender_view = history(client, "u1", "u2")
    recipient_view = history(client, "u2", "u1")

    assert sender_view == [sent]
    assert recipient_view == [sent]
    # polling again never duplicates
    assert history(client, "u2", "u1") == recipient_view


def test_history_is_ordered_across_directions(client):
    ids = [
        send(client, "u1", "u2", "one").json()["message"]["id"],
        send(client, "u2", "u1", "two").json()["message"]["id"],
        send(client, "u1", "u2", "three").json()["message"]["id"],
    ]
    send(client, "u1", "u3", "elsewhere")

    messages = history(client, "u2", "u1")

    assert [m["id"] for m in messages] == ids
    assert [m["text"] for m in messages] == ["one", "two", "three"]


def test_history_since_filter(client):
    first = send(client, "u1", "u2", "one").json()["message"]

    messages = history(client, "u1", "u2", since=first["createdAt"])

    assert first["id"] not in [m["id"] for m in messages]


def test_missing_identity_is_rejected(client):
    response = client.post("/api/v1/chat/send", json={"to": "u2", "text": "hi"})

    assert response.status_code == 401
    assert response.json()["error"] == "authentication_missing"


def test_invalid_token_is_rejected(client):
    response = client.get("/api/v1/chat/history/u2", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json()["error"] == "authentication_missing"


@pytest.mark.parametrize("payload", [
    {"to": "u2", "text": ""},
    {"to": "u2", "text": "   "},
    {"to": "u2"},
    {"text": "hi"},
    {"to": "", "text": "hi"},
])
def test_invalid_send_stores_nothing(client, payload):
    response = client.post("/api/v1/chat/send", json=payload, headers=auth_headers("u1"))

    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"
    assert history(client, "u1", "u2") == []


def test_storage_failure_stores_nothing(client, monkeypatch):
    async def failing_create(self, *args, **kwargs):
        raise OperationalError("INSERT INTO messages", {}, Exception("database is down"))

    monkeypatch.setattr(MessageRepository, "create", failing_create)

    response = send(client, "u1", "u2", "lost")

    assert response.status_code == 503
    assert response.json()["error"] == "storage_error"

    monkeypatch.undo()
    assert history(client, "u1", "u2") == []
    assert history(client, "u2", "u1") == []
