import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fiesta.main import app
from fiesta.models.chat_message import ChatMessage, MessageRole, MessageStatus
from fiesta.repositories.message_repository import MessageRepository
from fiesta.routers.chat import get_chat_service
from fiesta.schemas.chat import ReasoningStep


HEADERS = {"X-User-Id": "u1"}

pytestmark = [pytest.mark.asyncio, pytest.mark.database]


@pytest_asyncio.fixture
async def chat_service(db, settings, fake_ai, make_chat_service):
    service = make_chat_service(settings, fake_ai)
    app.dependency_overrides[get_chat_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(chat_service):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def test_user_header_required(client):
    response = await client.get("/history/sessions")
    assert response.status_code == 422


async def test_start_session(client):
    response = await client.post("/chat/sessions", json={"explicit": True}, headers=HEADERS)

    assert response.status_code == 200
    session_id = response.json()["session_id"]
    assert session_id.startswith("session_")

    messages = await client.get(f"/chat/sessions/{session_id}/messages", headers=HEADERS)
    assert messages.status_code == 200
    assert len(messages.json()) == 1
    assert messages.json()[0]["role"] == "assistant"


async def test_start_session_store_down(client, chat_service):
    chat_service.message_repo = AsyncMock()
    chat_service.message_repo.create.side_effect = RuntimeError("db down")

    response = await client.post("/chat/sessions", json={}, headers=HEADERS)

    assert response.status_code == 503


async def test_send_message_streams(client):
    response = await client.post(
        "/chat/messages",
        json={"session_id": "s1", "content": "Kunde spørger om faktura", "mode": "compute"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.text == "Hej Jonas!"
    message_id = uuid.UUID(response.headers["X-Message-Id"])
    user_message_id = uuid.UUID(response.headers["X-User-Message-Id"])

    stored = await ChatMessage.get(id=message_id)
    assert stored.content == "Hej Jonas!"
    assert stored.status == MessageStatus.COMPLETED
    assert (await ChatMessage.get(id=user_message_id)).role == MessageRole.USER


@pytest.mark.parametrize("content", ["", "   ", "x" * 1001])
async def test_send_message_validation(client, content):
    response = await client.post("/chat/messages", json={"session_id": "s1", "content": content}, headers=HEADERS)
    assert response.status_code == 422


async def test_send_message_store_down(client, chat_service):
    chat_service.send_message = AsyncMock(side_effect=RuntimeError("db down"))

    response = await client.post("/chat/messages", json={"session_id": "s1", "content": "Hej"}, headers=HEADERS)

    assert response.status_code == 503


async def test_delete_message(client):
    message = await MessageRepository().create("u1", "s1", MessageRole.USER, "Hej")

    response = await client.delete(f"/chat/messages/{message.id}", headers=HEADERS)
    assert response.status_code == 204

    response = await client.delete(f"/chat/messages/{message.id}", headers=HEADERS)
    assert response.status_code == 404


async def test_history(client):
    repo = MessageRepository()
    await repo.create("u1", "s1", MessageRole.USER, "Menu til event",
                      created_at=datetime(2024, 6, 1, 10, tzinfo=timezone.utc))
    await repo.create("u1", "s2", MessageRole.USER, "Send faktura",
                      created_at=datetime(2024, 6, 3, 10, tzinfo=timezone.utc))

    response = await client.get("/history/sessions", headers=HEADERS)
    assert response.status_code == 200
    assert [s["id"] for s in response.json()] == ["day_2024-06-03", "day_2024-06-01"]

    response = await client.get("/history/sessions", params={"tags": ["menu"]}, headers=HEADERS)
    assert [s["id"] for s in response.json()] == ["day_2024-06-01"]

    response = await client.get("/history/sessions", params={"sort_by": "oldest"}, headers=HEADERS)
    assert [s["id"] for s in response.json()] == ["day_2024-06-01", "day_2024-06-03"]

    response = await client.get("/history/sessions/day_2024-06-01", headers=HEADERS)
    assert response.status_code == 200
    detail = response.json()
    assert detail["session"]["title"] == "Menu til event"
    assert len(detail["messages"]) == 1

    response = await client.get("/history/sessions/day_2030-01-01", headers=HEADERS)
    assert response.status_code == 404


async def test_analysis(client, chat_service):
    chat_service.analyze_session = AsyncMock(return_value=[
        ReasoningStep(step=1, title="Forstå", description="Behov", outcome="Klart"),
    ])

    response = await client.post("/history/sessions/day_2024-06-01/analysis", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()[0]["title"] == "Forstå"
    chat_service.analyze_session.assert_awaited_once_with("u1", "day_2024-06-01")
