"""Tests for loading and lazily creating conversations."""

import pytest

from parley.domain.errors import StoreUnavailableError
from parley.domain.records import Conversation
from parley.services.conversations import (
    BASE62,
    ConversationResolver,
    generate_id,
    make_title,
)


def test_generate_id_is_base62_of_requested_length():
    value = generate_id()
    assert len(value) == 10
    assert set(value) <= set(BASE62)
    assert len(generate_id(4)) == 4


def test_title_is_first_hundred_characters():
    assert make_title("a" * 150) == "a" * 100
    assert make_title("   ") == "New Chat"


@pytest.mark.asyncio
async def test_creates_conversation_and_links_once(store, documents):
    resolver = ConversationResolver(store)

    resolved = await resolver.resolve(None, "dev-1", "Hello there", ["doc-a", "doc-b"])

    assert resolved.created
    assert not resolved.repointed
    conversation = store.conversations[resolved.id]
    assert conversation.title == "Hello there"
    assert conversation.device_id == "dev-1"
    assert conversation.active
    assert len(conversation.share_token) == 10
    assert [link.document_id for link in store.links] == ["doc-a", "doc-b"]
    assert resolved.linked == 2


@pytest.mark.asyncio
async def test_existing_conversation_is_loaded_without_new_links(store, documents):
    resolver = ConversationResolver(store)
    first = await resolver.resolve(None, "dev-1", "first", ["doc-a"])

    second = await resolver.resolve(first.id, "dev-1", "second", ["doc-b"])

    assert not second.created
    assert second.id == first.id
    assert len(store.conversations) == 1
    assert [link.document_id for link in store.links] == ["doc-a"]


@pytest.mark.asyncio
async def test_unknown_identifier_creates_a_new_one(store):
    resolver = ConversationResolver(store, id_factory=lambda n=10: "Z" * n)

    resolved = await resolver.resolve("client-guess", "dev-1", "hi")

    assert resolved.created
    assert resolved.repointed
    assert resolved.id == "Z" * 10
    assert resolved.requested_id == "client-guess"


@pytest.mark.asyncio
async def test_soft_deleted_conversation_does_not_resolve(store):
    store.conversations["old"] = Conversation(
        id="old", title="t", device_id="dev-1", active=False
    )

    resolved = await ConversationResolver(store).resolve("old", "dev-1", "hi")

    assert resolved.created
    assert resolved.id != "old"


@pytest.mark.asyncio
async def test_conversation_of_another_device_does_not_resolve(store):
    store.conversations["theirs"] = Conversation(
        id="theirs", title="t", device_id="dev-2"
    )

    resolved = await ConversationResolver(store).resolve("theirs", "dev-1", "hi")

    assert resolved.created
    assert store.conversations["theirs"].device_id == "dev-2"


@pytest.mark.asyncio
async def test_store_failure_propagates_without_side_effects(store):
    store.fail_on.add("create_conversation")

    with pytest.raises(StoreUnavailableError):
        await ConversationResolver(store).resolve(None, "dev-1", "hi", ["doc-a"])

    assert store.conversations == {}
    assert store.links == []


@pytest.mark.asyncio
async def test_create_blank_title_defaults_and_links(store, documents):
    resolver = ConversationResolver(store)

    resolved = await resolver.create("dev-1", "   ", ["doc-b", "doc-b"])

    assert resolved.created
    assert resolved.conversation.title == "New Chat"
    assert resolved.linked == 1
    assert not resolved.repointed
