"""Tests for conversation, share and document routes."""

from datetime import datetime, timedelta, timezone

import pytest

from parley.domain.records import (
    Conversation,
    ConversationDocumentLink,
    Message,
    MessageRole,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def conversations(store):
    rows = [
        Conversation(id="c1", title="Old", device_id="dev-1", updated_at=T0),
        Conversation(
            id="c2",
            title="New",
            device_id="dev-1",
            updated_at=T0 + timedelta(hours=1),
        ),
        Conversation(
            id="c3", title="Pinned", device_id="dev-1", pinned=True, updated_at=T0
        ),
        Conversation(
            id="c4", title="Gone", device_id="dev-1", active=False, share_token="tok4"
        ),
        Conversation(id="c5", title="Other", device_id="dev-2", share_token="tok5"),
    ]
    for row in rows:
        store.conversations[row.id] = row
    return rows


def test_list_pinned_first_then_recent(client, conversations):
    response = client.get("/api/conversations", params={"deviceId": "dev-1"})

    assert response.status_code == 200
    ids = [c["id"] for c in response.json()["conversations"]]
    assert ids == ["c3", "c2", "c1"]


def test_list_requires_device_id(client):
    assert client.get("/api/conversations").status_code == 422


def test_get_conversation_with_messages_and_documents(client, store, documents):
    store.conversations["c1"] = Conversation(id="c1", title="T", device_id="dev-1")
    store.messages[1] = Message("c1", MessageRole.USER, "q", id=1)
    store.messages[2] = Message(
        "c1", MessageRole.ASSISTANT, "a", id=2, sources=["Alpha"]
    )
    store.links.append(ConversationDocumentLink("c1", "doc-a"))

    body = client.get("/api/conversations/c1").json()

    assert [m["content"] for m in body["messages"]] == ["q", "a"]
    assert body["messages"][1]["sources"] == ["Alpha"]
    assert [d["name"] for d in body["documents"]] == ["Alpha"]


def test_get_missing_or_deleted_is_404(client, conversations):
    assert client.get("/api/conversations/nope").status_code == 404
    assert client.get("/api/conversations/c4").status_code == 404


def test_patch_title_and_pin(client, store, conversations):
    response = client.patch(
        "/api/conversations/c1", json={"title": "Renamed", "pinned": True}
    )

    assert response.status_code == 200
    assert response.json()["title"] == "Renamed"
    assert store.conversations["c1"].pinned
    assert store.conversations["c1"].updated_at > T0


def test_patch_validation(client, conversations):
    assert client.patch("/api/conversations/c1", json={}).status_code == 400
    assert client.patch("/api/conversations/c1", json={"title": ""}).status_code == 422
    assert (
        client.patch("/api/conversations/c1", json={"title": "x" * 101}).status_code
        == 422
    )
    missing = client.patch("/api/conversations/nope", json={"pinned": True})
    assert missing.status_code == 404


def test_delete_is_soft(client, store, conversations):
    response = client.delete("/api/conversations/c2")

    assert response.status_code == 200
    assert store.conversations["c2"].active is False
    assert client.get("/api/conversations/c2").status_code == 404


def test_shared_view_by_token(client, conversations):
    assert client.get("/api/share/tok5").json()["id"] == "c5"
    assert client.get("/api/share/tok4").status_code == 404
    assert client.get("/api/share/unknown").status_code == 404


def test_list_documents_includes_system_and_omits_text(client, documents):
    response = client.get("/api/documents", params={"deviceId": "dev-1"})

    docs = response.json()["documents"]
    assert {d["id"] for d in docs} == {"doc-a", "doc-b", "doc-sys"}
    assert all("content" not in d for d in docs)


def test_get_document_includes_text(client, documents):
    assert client.get("/api/documents/doc-a").json()["content"] == "alpha text"
    assert client.get("/api/documents/doc-c").status_code == 404


def test_create_document_computes_utf8_size(client, store):
    response = client.post(
        "/api/documents",
        json={"name": "Notes", "content": "héllo", "deviceId": "dev-1"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["size_bytes"] == 6
    assert store.documents[body["id"]].device_id == "dev-1"


def test_create_document_rejects_blank_content(client):
    response = client.post(
        "/api/documents", json={"name": "Empty", "content": "  ", "deviceId": "d"}
    )
    assert response.status_code == 400


def test_store_failure_maps_to_503(client, store):
    store.fail_on.add("list_conversations")

    response = client.get("/api/conversations", params={"deviceId": "dev-1"})

    assert response.status_code == 503


def test_create_empty_conversation_defaults_title(client, store, documents):
    response = client.post(
        "/api/conversations",
        json={"deviceId": "dev-1", "documentIds": ["doc-a", "missing"]},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["title"] == "New Chat"
    assert body["share_token"]
    assert store.conversations[body["id"]].device_id == "dev-1"
    assert [link.document_id for link in store.links] == ["doc-a"]
    assert not store.messages


def test_create_conversation_with_title_then_chat_reuses_it(client, store):
    created = client.post(
        "/api/conversations", json={"title": "Planning", "deviceId": "dev-1"}
    ).json()

    response = client.post(
        "/api/chat",
        json={
            "messages": [{"role": "user", "content": "hi"}],
            "conversationId": created["id"],
            "deviceId": "dev-1",
        },
    )

    assert response.headers["X-Conversation-Id"] == created["id"]
    assert response.headers["X-Conversation-Created"] == "false"
    assert len(store.conversations) == 1
    assert store.conversations[created["id"]].title == "Planning"


def test_create_conversation_requires_device_id(client):
    assert client.post("/api/conversations", json={"title": "x"}).status_code == 422


def test_patch_document_content_updates_size(client, store, documents):
    response = client.patch("/api/documents/doc-a", json={"content": "naïve"})

    assert response.status_code == 200
    body = response.json()
    assert body["content"] == "naïve"
    assert body["size_bytes"] == 6
    assert store.documents["doc-a"].name == "Alpha"


def test_patch_document_validation(client, documents):
    assert client.patch("/api/documents/doc-a", json={}).status_code == 400
    assert (
        client.patch("/api/documents/doc-a", json={"content": "  "}).status_code
        == 400
    )
    assert client.patch("/api/documents/doc-a", json={"name": " "}).status_code == 400
    assert (
        client.patch("/api/documents/doc-c", json={"content": "x"}).status_code == 404
    )
    assert (
        client.patch("/api/documents/nope", json={"content": "x"}).status_code == 404
    )


def test_delete_document_is_soft(client, store, documents):
    response = client.delete("/api/documents/doc-b")

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert store.documents["doc-b"].active is False
    assert client.get("/api/documents/doc-b").status_code == 404
    assert client.delete("/api/documents/doc-b").status_code == 404

    listed = client.get("/api/documents", params={"deviceId": "dev-1"}).json()
    assert "doc-b" not in [d["id"] for d in listed["documents"]]
