"""Dict-backed store used by tests and by the server when no database is wanted."""

from __future__ import annotations

import itertools
from collections.abc import Iterable, Sequence
from dataclasses import replace
from typing import Any

from parley.domain.errors import StoreUnavailableError
from parley.domain.records import (
    Conversation,
    ConversationDocumentLink,
    Document,
    Message,
)
from parley.store.base import Store


class InMemoryStore(Store):
    """In-process store. Records are copied on the way in and out.

    ``fail_on`` names operations that should raise ``StoreUnavailableError``,
    which lets tests simulate an unreachable database mid-turn.
    """

    def __init__(self) -> None:
        self.conversations: dict[str, Conversation] = {}
        self.messages: dict[int, Message] = {}
        self.documents: dict[str, Document] = {}
        self.links: list[ConversationDocumentLink] = []
        self.fail_on: set[str] = set()
        self.calls: list[str] = []
        self._ids = itertools.count(1)

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise StoreUnavailableError(f"Store operation '{name}' failed")

    async def ping(self) -> None:
        self._enter("ping")

    # Conversations
    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        self._enter("get_conversation")
        found = self.conversations.get(conversation_id)
        return replace(found) if found else None

    async def get_conversation_by_share_token(
        self, share_token: str
    ) -> Conversation | None:
        self._enter("get_conversation_by_share_token")
        for conversation in self.conversations.values():
            if conversation.share_token == share_token:
                return replace(conversation)
        return None

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        self._enter("create_conversation")
        self.conversations[conversation.id] = replace(conversation)
        return replace(conversation)

    async def update_conversation(
        self, conversation_id: str, **fields: Any
    ) -> Conversation | None:
        self._enter("update_conversation")
        found = self.conversations.get(conversation_id)
        if found is None:
            return None
        updated = replace(found, **fields)
        self.conversations[conversation_id] = updated
        return replace(updated)

    async def list_conversations(
        self, device_id: str | None = None, active_only: bool = True
    ) -> list[Conversation]:
        self._enter("list_conversations")
        rows = [
            replace(c)
            for c in self.conversations.values()
            if (device_id is None or c.device_id == device_id)
            and (c.active or not active_only)
        ]
        rows.sort(key=lambda c: c.updated_at, reverse=True)
        rows.sort(key=lambda c: not c.pinned)
        return rows

    # Links
    async def link_documents(
        self, conversation_id: str, document_ids: Sequence[str]
    ) -> int:
        self._enter("link_documents")
        existing = {
            link.document_id
            for link in self.links
            if link.conversation_id == conversation_id
        }
        created = 0
        for document_id in dict.fromkeys(document_ids):
            if document_id in self.documents and document_id not in existing:
                self.links.append(
                    ConversationDocumentLink(conversation_id, document_id)
                )
                created += 1
        return created

    async def list_linked_documents(self, conversation_id: str) -> list[Document]:
        self._enter("list_linked_documents")
        docs = [
            replace(self.documents[link.document_id])
            for link in self.links
            if link.conversation_id == conversation_id
        ]
        return sorted(docs, key=lambda d: d.name)

    # Messages
    async def create_message(self, message: Message) -> Message:
        self._enter("create_message")
        stored = replace(message, id=next(self._ids))
        self.messages[stored.id] = stored
        return replace(stored)

    async def update_message(self, message_id: int, **fields: Any) -> Message | None:
        self._enter("update_message")
        found = self.messages.get(message_id)
        if found is None:
            return None
        updated = replace(found, **fields)
        self.messages[message_id] = updated
        return replace(updated)

    async def list_messages(self, conversation_id: str) -> list[Message]:
        self._enter("list_messages")
        return [
            replace(m)
            for m in sorted(self.messages.values(), key=lambda m: m.id)
            if m.conversation_id == conversation_id
        ]

    # Documents
    async def get_document(self, document_id: str) -> Document | None:
        self._enter("get_document")
        found = self.documents.get(document_id)
        return replace(found) if found else None

    async def get_documents(
        self, document_ids: Sequence[str], active_only: bool = True
    ) -> list[Document]:
        self._enter("get_documents")
        return [
            replace(self.documents[i])
            for i in dict.fromkeys(document_ids)
            if i in self.documents and (self.documents[i].active or not active_only)
        ]

    async def create_document(self, document: Document) -> Document:
        self._enter("create_document")
        self.documents[document.id] = replace(document)
        return replace(document)

    async def update_document(self, document_id: str, **fields: Any) -> Document | None:
        self._enter("update_document")
        found = self.documents.get(document_id)
        if found is None:
            return None
        updated = replace(found, **fields)
        self.documents[document_id] = updated
        return replace(updated)

    async def list_documents(
        self, device_ids: Iterable[str], active_only: bool = True
    ) -> list[Document]:
        self._enter("list_documents")
        owners = set(device_ids)
        docs = [
            replace(d)
            for d in self.documents.values()
            if d.device_id in owners and (d.active or not active_only)
        ]
        return sorted(docs, key=lambda d: d.created_at, reverse=True)
