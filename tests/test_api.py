"""Tests for API routes."""
import asyncio
import json

import pytest

from app.api.deps import get_chat_store, get_orchestrator
from app.main import app
from app.models.chat import ChatRequestError, GenerationError
from app.services import streaming
from app.services.chat_store import InMemoryChatStore


class FakeOrchestrator:
    """Replays canned events, or raises before the first one."""

    def __init__(self, events=(), error: Exception | None = None):
        self.events = list(events)
        self.error = error
        self.calls = []

    async def answer(self, messages, chat_id=None):
        self.calls.append((messages, chat_id))
        if self.error is not None:
            raise self.error
        for event in self.events:
            yield event


class BrokenStore(InMemoryChatStore):
    async def list_conversations(self):
        raise RuntimeError("database unavailable")


@pytest.fixture
def store():
    return InMemoryChatStore()


@pytest.fixture
def client(store):
    from fastapi.testclient import TestClient

    app.dependency_overrides[get_chat_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use_orchestrator(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator


def _sse_events(body: str) -> list[tuple[str, dict]]:
    events = []
    for block in body.replace("\r\n", "\n").split("\n\n"):
        event_type, data = None, None
        for line in block.splitlines():
            if line.startswith("event:"):
                event_type = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data = json.loads(line[len("data:"):].strip())
        if event_type:
            events.append((event_type, data))
    return events


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "freesearch"}


class TestChatRoute:
    def test_streams_sources_text_and_done(self, client):
        from app.models.chat import SearchResult

        orchestrator = FakeOrchestrator(
            events=[
                streaming.sources([SearchResult(title="France", url="https://fr.test", content="Paris", engine="wiki")]),
                streaming.text_delta("Paris is the capital "),
                streaming.text_delta("[1]."),
                streaming.done(chat_id="c1", sources_count=1),
            ]
        )
        _use_orchestrator(orchestrator)

        response = client.post(
            "/api/chat",
            json={"messages": [{"role": "user", "content": "What is the capital of France?"}], "chatId": "c1"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _sse_events(response.text)
        assert [e[0] for e in events] == ["sources", "text", "text", "done"]
        assert events[0][1]["sources"][0] == {
            "index": 1,
            "title": "France",
            "url": "https://fr.test",
            "content": "Paris",
            "engine": "wiki",
        }
        messages, chat_id = orchestrator.calls[0]
        assert chat_id == "c1"
        assert messages[0].role == "user"
        assert messages[0].text == "What is the capital of France?"

    def test_wire_parts_are_normalized(self, client):
        orchestrator = FakeOrchestrator(events=[streaming.done()])
        _use_orchestrator(orchestrator)

        client.post(
            "/api/chat",
            json={
                "messages": [
                    {"role": "user", "parts": [{"type": "text", "text": "hello "}, {"type": "text", "text": "there"}]},
                    {"role": "assistant", "content": [{"type": "text", "text": "hi!"}]},
                    {"role": "user", "content": "who is Marie Curie"},
                ]
            },
        )

        messages, chat_id = orchestrator.calls[0]
        assert [(m.role, m.text) for m in messages] == [
            ("user", "hello there"),
            ("assistant", "hi!"),
            ("user", "who is Marie Curie"),
        ]
        assert chat_id is None

    def test_request_error_maps_to_400(self, client):
        _use_orchestrator(FakeOrchestrator(error=ChatRequestError("Messages are required")))

        response = client.post("/api/chat", json={"messages": []})

        assert response.status_code == 400
        assert response.json() == {"error": "Messages are required"}

    def test_malformed_body_maps_to_400(self, client):
        _use_orchestrator(FakeOrchestrator())

        response = client.post("/api/chat", content=b"not json", headers={"content-type": "application/json"})
        assert response.status_code == 400

        response = client.post("/api/chat", json={"messages": "hello"})
        assert response.status_code == 400

    def test_generation_failure_maps_to_500(self, client):
        _use_orchestrator(FakeOrchestrator(error=GenerationError("model offline")))

        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to process chat request"}


class TestChatsRoutes:
    def test_create_then_get(self, client, store):
        created = client.post("/api/chats")

        assert created.status_code == 200
        chat = created.json()
        assert chat["title"] == "New Chat"

        detail = client.get(f"/api/chats/{chat['id']}")
        assert detail.status_code == 200
        assert detail.json()["messages"] == []

    def test_list_returns_only_chats_with_messages(self, client, store):
        async def seed():
            empty = await store.create_conversation()
            chat = await store.create_conversation(title="Capital of France")
            await store.append_message(chat["id"], "user", "What is the capital of France?")
            await store.append_message(chat["id"], "assistant", "Paris [1].", [{"index": 1, "title": "France"}])
            return empty, chat

        empty, chat = asyncio.run(seed())

        response = client.get("/api/chats")

        assert response.status_code == 200
        listed = response.json()
        assert [c["id"] for c in listed] == [chat["id"]]
        assert empty["id"] not in [c["id"] for c in listed]
        assert listed[0]["messages"][0]["content"] == "Paris [1]."
        assert listed[0]["messages"][0]["sources"] == [{"index": 1, "title": "France"}]

    def test_get_returns_messages_in_order(self, client, store):
        async def seed():
            chat = await store.create_conversation()
            await store.append_message(chat["id"], "user", "first")
            await store.append_message(chat["id"], "assistant", "second")
            return chat

        chat = asyncio.run(seed())

        response = client.get(f"/api/chats/{chat['id']}")

        assert [m["content"] for m in response.json()["messages"]] == ["first", "second"]

    def test_get_unknown_chat_is_404(self, client):
        response = client.get("/api/chats/missing")

        assert response.status_code == 404
        assert response.json() == {"error": "Chat not found"}

    def test_delete(self, client, store):
        chat = asyncio.run(store.create_conversation())

        response = client.delete(f"/api/chats/{chat['id']}")

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert asyncio.run(store.get_conversation(chat["id"])) is None
        assert client.delete(f"/api/chats/{chat['id']}").status_code == 404

    def test_store_failure_maps_to_500(self):
        from fastapi.testclient import TestClient

        app.dependency_overrides[get_chat_store] = lambda: BrokenStore()
        try:
            response = TestClient(app).get("/api/chats")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to fetch chats"}
