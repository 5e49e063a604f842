from __future__ import annotations

import anyio
import pytest
from conftest import FakeProvider, sse_body
from fastapi.testclient import TestClient

from beet.config.app_config import AppConfig, get_app_config
from beet.main import create_app
from beet.services.chat_service import ChatService, get_chat_service
from beet.services.model_catalog import ModelCatalog
from beet.services.relay_service import RelayService, get_relay_service
from beet.storage.message_store import InMemoryMessageStore


@pytest.fixture
def wiring():
    store = InMemoryMessageStore()
    provider = FakeProvider([sse_body("Hel", "lo!")])
    app_config = AppConfig(premium_user_ids="Alice, bob")
    catalog = ModelCatalog()
    relay = RelayService(store=store, catalog=catalog, provider=provider.client(), app_config=app_config)
    chat = ChatService(store=store, catalog=catalog)

    app = create_app()
    app.dependency_overrides[get_relay_service] = lambda: relay
    app.dependency_overrides[get_chat_service] = lambda: chat
    app.dependency_overrides[get_app_config] = lambda: app_config
    return app, store, provider


def test_full_chat_round_trip(wiring) -> None:
    app, store, provider = wiring

    with TestClient(app) as client:
        started = client.post("/chats", json={"message": "hi", "model": "gpt-oss-20b"})
        assert started.status_code == 201
        body = started.json()
        assert body["title"] == "hi"
        assert body["stream_url"] == f"/stream/{body['conversation_id']}/gpt-oss-20b"

        with client.stream("GET", body["stream_url"]) as response:
            assert response.status_code == 200
            assert response.headers["content-type"].startswith("text/event-stream")
            assert response.headers["cache-control"] == "no-cache"
            text = "".join(response.iter_text())

        assert text == "data: Hel\n\ndata: lo!\n\nevent: close\ndata: done\n\n"

        conversation_id = body["conversation_id"]
        listing = client.get("/chats")
        assert [c["conversation_id"] for c in listing.json()] == [conversation_id]

    # leaving the client runs shutdown, which waits for pending commits
    transcript = anyio.run(store.read_transcript, conversation_id)
    assert [(m.role, m.content) for m in transcript] == [("user", "hi"), ("assistant", "Hello!")]
    assert provider.streams[0].closed


def test_premium_request_from_anonymous_caller_is_downgraded(wiring) -> None:
    app, store, provider = wiring

    with TestClient(app) as client:
        started = client.post("/chats", json={"message": "tell me a story", "model": "qwen3-235b"}).json()
        assert started["model"] == "gpt-oss-20b"
        assert started["title"] == "tell me a story"[:15]

        turn = client.post(
            f"/chats/{started['conversation_id']}/messages",
            json={"message": "again", "model": "deepseek-v3-terminus"},
        ).json()
        assert turn["model"] == "gpt-oss-20b"

        # even a hand-crafted stream URL cannot reach a premium model
        with client.stream("GET", f"/stream/{started['conversation_id']}/deepseek-v3-terminus") as response:
            "".join(response.iter_text())

    assert provider.last_payload["model"] == "openai/gpt-oss-20b"


def test_premium_user_can_switch_models(wiring) -> None:
    app, store, provider = wiring
    headers = {"X-User-Id": "alice"}

    with TestClient(app) as client:
        started = client.post("/chats", json={"message": "hello"}, headers=headers).json()
        assert started["model"] == "gpt-oss-120b"

        turn = client.post(
            f"/chats/{started['conversation_id']}/messages",
            json={"message": "more", "model": "qwen3-coder-480b"},
            headers=headers,
        ).json()
        assert turn["model"] == "qwen3-coder-480b"

        detail = client.get(f"/chats/{started['conversation_id']}", headers=headers).json()
        assert detail["conversation"]["model"] == "qwen3-coder-480b"
        assert detail["conversation"]["owner_key"] == "user:alice"


def test_conversations_are_private_to_their_owner(wiring) -> None:
    app, _, _ = wiring

    with TestClient(app) as client:
        started = client.post("/chats", json={"message": "secret"}, headers={"X-User-Id": "carol"}).json()

        response = client.get(f"/chats/{started['conversation_id']}", headers={"X-User-Id": "dave"})
        assert response.status_code == 404

        stream = client.get(f"/stream/{started['conversation_id']}/gpt-oss-20b", headers={"X-User-Id": "dave"})
        assert stream.status_code == 404


def test_unknown_conversation_turn_is_404(wiring) -> None:
    app, _, _ = wiring

    with TestClient(app) as client:
        response = client.post("/chats/nope/messages", json={"message": "hi"})

    assert response.status_code == 404
    assert "nope" in response.json()["detail"]


def test_empty_prompt_is_rejected(wiring) -> None:
    app, _, _ = wiring

    with TestClient(app) as client:
        response = client.post("/chats", json={"message": ""})

    assert response.status_code == 422


def test_models_endpoint_groups_catalog(wiring) -> None:
    app, _, _ = wiring

    with TestClient(app) as client:
        anonymous = client.get("/models").json()
        premium = client.get("/models", headers={"X-User-Id": "bob"}).json()

    assert anonymous[0]["group_name"] == "Basic models"
    assert premium[0]["group_name"] == "Premium models"


def test_health(wiring) -> None:
    app, _, _ = wiring

    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok", "store": "ok"}


def test_blank_session_cookie_is_replaced(wiring) -> None:
    app, store, _ = wiring

    with TestClient(app) as client:
        response = client.post("/chats", json={"message": "hi"}, headers={"Cookie": 'beet_session="   "'})

    assert response.status_code == 201
    session_id = response.cookies["beet_session"]
    assert session_id.strip()
    conversation = anyio.run(store.read_metadata, response.json()["conversation_id"])
    assert conversation.owner_key == f"session:{session_id}"
