"""SQLAlchemy-backed store.

SQLAlchemy sessions are synchronous; each operation runs in a worker thread
so the request handler suspends instead of blocking the event loop.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from collections.abc import Callable, Iterable, Sequence
from typing import Any, TypeVar

from sqlalchemy import select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from parley.db.base import get_engine, get_session
from parley.db.models import (
    BaseORM,
    ConversationDocumentORM,
    ConversationORM,
    DocumentORM,
    MessageORM,
)
from parley.domain.errors import StoreUnavailableError
from parley.domain.records import (
    Conversation,
    Document,
    Message,
    MessageRole,
)
from parley.store.base import Store
from parley.utils.logger import store_logger

T = TypeVar("T")

_CONVERSATION_FIELDS = {"title", "pinned", "active", "updated_at", "share_token"}
_MESSAGE_FIELDS = {"content", "sources", "model", "image_url"}
_DOCUMENT_FIELDS = {"name", "content", "size_bytes", "active"}


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _conversation_from_orm(row: ConversationORM) -> Conversation:
    return Conversation(
        id=row.id,
        title=row.title,
        device_id=row.device_id,
        share_token=row.share_token,
        pinned=bool(row.pinned),
        active=bool(row.active),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _message_from_orm(row: MessageORM) -> Message:
    return Message(
        id=row.id,
        conversation_id=row.conversation_id,
        role=MessageRole(row.role),
        content=row.content,
        model=row.model,
        sources=json.loads(row.sources_json) if row.sources_json else None,
        image_url=row.image_url,
        created_at=_aware(row.created_at),
    )


def _document_from_orm(row: DocumentORM) -> Document:
    return Document(
        id=row.id,
        name=row.name,
        content=row.content,
        size_bytes=row.size_bytes,
        device_id=row.device_id,
        active=bool(row.active),
        created_at=_aware(row.created_at),
    )


class SQLStore(Store):
    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    def from_url(cls, database_url: str) -> SQLStore:
        return cls(get_engine(database_url))

    def create_schema(self) -> None:
        BaseORM.metadata.create_all(self.engine)

    async def close(self) -> None:
        self.engine.dispose()

    async def _run(self, op: Callable[[Session], T], name: str) -> T:
        def _call() -> T:
            with get_session(self.engine) as session:
                return op(session)

        try:
            return await asyncio.to_thread(_call)
        except SQLAlchemyError as e:
            store_logger.error("Store operation failed", operation=name, error=str(e))
            raise StoreUnavailableError(f"Store operation '{name}' failed") from e

    async def ping(self) -> None:
        await self._run(lambda s: s.execute(text("SELECT 1")).scalar(), "ping")

    # Conversations
    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        def op(session: Session) -> Conversation | None:
            row = session.get(ConversationORM, conversation_id)
            return _conversation_from_orm(row) if row else None

        return await self._run(op, "get_conversation")

    async def get_conversation_by_share_token(
        self, share_token: str
    ) -> Conversation | None:
        def op(session: Session) -> Conversation | None:
            row = session.scalars(
                select(ConversationORM).where(
                    ConversationORM.share_token == share_token
                )
            ).first()
            return _conversation_from_orm(row) if row else None

        return await self._run(op, "get_conversation_by_share_token")

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        def op(session: Session) -> Conversation:
            row = ConversationORM(
                id=conversation.id,
                title=conversation.title,
                device_id=conversation.device_id,
                share_token=conversation.share_token,
                pinned=conversation.pinned,
                active=conversation.active,
                created_at=conversation.created_at,
                updated_at=conversation.updated_at,
            )
            session.add(row)
            session.commit()
            return _conversation_from_orm(row)

        return await self._run(op, "create_conversation")

    async def update_conversation(
        self, conversation_id: str, **fields: Any
    ) -> Conversation | None:
        unknown = set(fields) - _CONVERSATION_FIELDS
        if unknown:
            raise ValueError(f"Unknown conversation fields: {sorted(unknown)}")

        def op(session: Session) -> Conversation | None:
            row = session.get(ConversationORM, conversation_id)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            session.commit()
            return _conversation_from_orm(row)

        return await self._run(op, "update_conversation")

    async def list_conversations(
        self, device_id: str | None = None, active_only: bool = True
    ) -> list[Conversation]:
        def op(session: Session) -> list[Conversation]:
            stmt = select(ConversationORM)
            if device_id is not None:
                stmt = stmt.where(ConversationORM.device_id == device_id)
            if active_only:
                stmt = stmt.where(ConversationORM.active.is_(True))
            stmt = stmt.order_by(
                ConversationORM.pinned.desc(), ConversationORM.updated_at.desc()
            )
            return [_conversation_from_orm(r) for r in session.scalars(stmt)]

        return await self._run(op, "list_conversations")

    # Links
    async def link_documents(
        self, conversation_id: str, document_ids: Sequence[str]
    ) -> int:
        wanted = list(dict.fromkeys(document_ids))

        def op(session: Session) -> int:
            if not wanted:
                return 0
            existing = set(
                session.scalars(
                    select(DocumentORM.id).where(DocumentORM.id.in_(wanted))
                )
            )
            already = set(
                session.scalars(
                    select(ConversationDocumentORM.document_id).where(
                        ConversationDocumentORM.conversation_id == conversation_id
                    )
                )
            )
            rows = [
                ConversationDocumentORM(
                    conversation_id=conversation_id, document_id=doc_id
                )
                for doc_id in wanted
                if doc_id in existing and doc_id not in already
            ]
            session.add_all(rows)
            session.commit()
            return len(rows)

        return await self._run(op, "link_documents")

    async def list_linked_documents(self, conversation_id: str) -> list[Document]:
        def op(session: Session) -> list[Document]:
            stmt = (
                select(DocumentORM)
                .join(
                    ConversationDocumentORM,
                    ConversationDocumentORM.document_id == DocumentORM.id,
                )
                .where(ConversationDocumentORM.conversation_id == conversation_id)
                .order_by(DocumentORM.name)
            )
            return [_document_from_orm(r) for r in session.scalars(stmt)]

        return await self._run(op, "list_linked_documents")

    # Messages
    async def create_message(self, message: Message) -> Message:
        def op(session: Session) -> Message:
            row = MessageORM(
                conversation_id=message.conversation_id,
                role=message.role.value,
                content=message.content,
                model=message.model,
                sources_json=json.dumps(message.sources) if message.sources else None,
                image_url=message.image_url,
                created_at=message.created_at,
            )
            session.add(row)
            session.commit()
            return _message_from_orm(row)

        return await self._run(op, "create_message")

    async def update_message(self, message_id: int, **fields: Any) -> Message | None:
        unknown = set(fields) - _MESSAGE_FIELDS
        if unknown:
            raise ValueError(f"Unknown message fields: {sorted(unknown)}")

        def op(session: Session) -> Message | None:
            row = session.get(MessageORM, message_id)
            if row is None:
                return None
            for key, value in fields.items():
                if key == "sources":
                    row.sources_json = json.dumps(value) if value else None
                else:
                    setattr(row, key, value)
            session.commit()
            return _message_from_orm(row)

        return await self._run(op, "update_message")

    async def list_messages(self, conversation_id: str) -> list[Message]:
        def op(session: Session) -> list[Message]:
            stmt = (
                select(MessageORM)
                .where(MessageORM.conversation_id == conversation_id)
                .order_by(MessageORM.created_at, MessageORM.id)
            )
            return [_message_from_orm(r) for r in session.scalars(stmt)]

        return await self._run(op, "list_messages")

    # Documents
    async def get_document(self, document_id: str) -> Document | None:
        def op(session: Session) -> Document | None:
            row = session.get(DocumentORM, document_id)
            return _document_from_orm(row) if row else None

        return await self._run(op, "get_document")

    async def get_documents(
        self, document_ids: Sequence[str], active_only: bool = True
    ) -> list[Document]:
        ids = list(document_ids)

        def op(session: Session) -> list[Document]:
            if not ids:
                return []
            stmt = select(DocumentORM).where(DocumentORM.id.in_(ids))
            if active_only:
                stmt = stmt.where(DocumentORM.active.is_(True))
            return [_document_from_orm(r) for r in session.scalars(stmt)]

        return await self._run(op, "get_documents")

    async def create_document(self, document: Document) -> Document:
        def op(session: Session) -> Document:
            row = DocumentORM(
                id=document.id,
                name=document.name,
                content=document.content,
                size_bytes=document.size_bytes,
                device_id=document.device_id,
                active=document.active,
                created_at=document.created_at,
            )
            session.add(row)
            session.commit()
            return _document_from_orm(row)

        return await self._run(op, "create_document")

    async def update_document(self, document_id: str, **fields: Any) -> Document | None:
        unknown = set(fields) - _DOCUMENT_FIELDS
        if unknown:
            raise ValueError(f"Unknown document fields: {sorted(unknown)}")

        def op(session: Session) -> Document | None:
            row = session.get(DocumentORM, document_id)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            session.commit()
            return _document_from_orm(row)

        return await self._run(op, "update_document")

    async def list_documents(
        self, device_ids: Iterable[str], active_only: bool = True
    ) -> list[Document]:
        owners = list(device_ids)

        def op(session: Session) -> list[Document]:
            stmt = select(DocumentORM).where(DocumentORM.device_id.in_(owners))
            if active_only:
                stmt = stmt.where(DocumentORM.active.is_(True))
            stmt = stmt.order_by(DocumentORM.created_at.desc())
            return [_document_from_orm(r) for r in session.scalars(stmt)]

        return await self._run(op, "list_documents")
