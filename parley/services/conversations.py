"""Conversation Resolver: load or lazily create the conversation for a turn."""

from __future__ import annotations

import secrets
import string
from collections.abc import Sequence
from dataclasses import dataclass

from parley.config.constants import (
    CONVERSATION_ID_LENGTH,
    CONVERSATION_TITLE_MAX_CHARS,
    DEFAULT_CONVERSATION_TITLE,
    SHARE_TOKEN_LENGTH,
)
from parley.domain.records import Conversation, utcnow
from parley.store.base import Store
from parley.utils.logger import logger

BASE62 = string.ascii_letters + string.digits


def generate_id(length: int = CONVERSATION_ID_LENGTH) -> str:
    return "".join(secrets.choice(BASE62) for _ in range(length))


def make_title(text: str) -> str:
    title = (text or "")[:CONVERSATION_TITLE_MAX_CHARS]
    return title if title.strip() else DEFAULT_CONVERSATION_TITLE


@dataclass
class ResolvedConversation:
    conversation: Conversation
    created: bool
    linked: int = 0
    requested_id: str | None = None

    @property
    def id(self) -> str:
        return self.conversation.id

    @property
    def repointed(self) -> bool:
        """True when the caller proposed an identifier that did not resolve."""
        return self.created and self.requested_id is not None


class ConversationResolver:
    """Sole owner of conversation creation and identifier assignment.

    Soft-deleted conversations and conversations owned by another device do not
    resolve; the turn then starts a fresh conversation rather than merging.
    Document links are written only on the creation branch.
    """

    def __init__(self, store: Store, id_factory=generate_id):
        self.store = store
        self.id_factory = id_factory

    async def resolve(
        self,
        conversation_id: str | None,
        device_id: str,
        first_message: str,
        document_ids: Sequence[str] = (),
    ) -> ResolvedConversation:
        if conversation_id:
            existing = await self.store.get_conversation(conversation_id)
            if existing and existing.active and existing.device_id == device_id:
                return ResolvedConversation(
                    existing, created=False, requested_id=conversation_id
                )
            logger.info(
                "Conversation did not resolve, creating a new one",
                requested_id=conversation_id,
                found=existing is not None,
            )

        return await self.create(
            device_id,
            first_message,
            document_ids,
            requested_id=conversation_id or None,
        )

    async def create(
        self,
        device_id: str,
        title: str,
        document_ids: Sequence[str] = (),
        requested_id: str | None = None,
    ) -> ResolvedConversation:
        """Create a conversation and link the selected documents to it."""
        now = utcnow()
        conversation = await self.store.create_conversation(
            Conversation(
                id=self.id_factory(),
                title=make_title(title),
                device_id=device_id,
                share_token=self.id_factory(SHARE_TOKEN_LENGTH),
                pinned=False,
                active=True,
                created_at=now,
                updated_at=now,
            )
        )
        linked = 0
        if document_ids:
            linked = await self.store.link_documents(conversation.id, document_ids)
        logger.info(
            "Conversation created",
            conversation_id=conversation.id,
            linked_documents=linked,
        )
        return ResolvedConversation(
            conversation,
            created=True,
            linked=linked,
            requested_id=requested_id,
        )
