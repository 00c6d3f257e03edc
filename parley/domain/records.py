"""Domain records shared by the store, the services and the API layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Conversation:
    """A chat thread. Soft-deleted through ``active``; never removed by the core."""

    id: str
    title: str
    device_id: str | None = None
    share_token: str | None = None
    pinned: bool = False
    active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Message:
    """One side of a turn.

    Assistant rows start as an empty placeholder and are overwritten in place
    once the stream completes.
    """

    conversation_id: str
    role: MessageRole
    content: str
    id: int | None = None
    model: str | None = None
    sources: list[str] | None = None
    image_url: str | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Document:
    id: str
    name: str
    content: str
    size_bytes: int = 0
    device_id: str | None = None
    active: bool = True
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ConversationDocumentLink:
    conversation_id: str
    document_id: str
