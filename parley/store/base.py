"""Store capability consumed by the chat core.

The core never issues raw queries; it only uses the operations below, so a
SQL database and the in-memory fake are interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from typing import Any

from parley.domain.records import Conversation, Document, Message


class Store(ABC):
    """Key-addressed record store for conversations, turns and documents.

    Every method may raise ``StoreUnavailableError``.
    """

    # Conversations
    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        pass

    @abstractmethod
    async def get_conversation_by_share_token(
        self, share_token: str
    ) -> Conversation | None:
        pass

    @abstractmethod
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        pass

    @abstractmethod
    async def update_conversation(
        self, conversation_id: str, **fields: Any
    ) -> Conversation | None:
        """Update the given fields; returns None when the row does not exist."""
        pass

    @abstractmethod
    async def list_conversations(
        self, device_id: str | None = None, active_only: bool = True
    ) -> list[Conversation]:
        """Pinned conversations first, then most recently updated."""
        pass

    # Conversation-document links
    @abstractmethod
    async def link_documents(
        self, conversation_id: str, document_ids: Sequence[str]
    ) -> int:
        """Create links in one batch for the ids that name existing documents.

        Returns the number of links created.
        """
        pass

    @abstractmethod
    async def list_linked_documents(self, conversation_id: str) -> list[Document]:
        pass

    # Messages
    @abstractmethod
    async def create_message(self, message: Message) -> Message:
        """Insert a message and return it with its assigned identifier."""
        pass

    @abstractmethod
    async def update_message(self, message_id: int, **fields: Any) -> Message | None:
        pass

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> list[Message]:
        """Messages of a conversation in creation order."""
        pass

    # Documents
    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        pass

    @abstractmethod
    async def get_documents(
        self, document_ids: Sequence[str], active_only: bool = True
    ) -> list[Document]:
        """Fetch documents by id; unknown ids are absent from the result."""
        pass

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        pass

    @abstractmethod
    async def update_document(self, document_id: str, **fields: Any) -> Document | None:
        """Update the given fields; returns None when the row does not exist."""
        pass

    @abstractmethod
    async def list_documents(
        self, device_ids: Iterable[str], active_only: bool = True
    ) -> list[Document]:
        pass

    async def ping(self) -> None:
        """Raise StoreUnavailableError when the store cannot be reached."""
        return None

    async def close(self) -> None:
        return None
