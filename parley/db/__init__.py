"""Database package: engine/session management and ORM models."""

from .base import get_engine, get_session
from .models import (
    BaseORM,
    ConversationDocumentORM,
    ConversationORM,
    DocumentORM,
    MessageORM,
)

__all__ = [
    "get_engine",
    "get_session",
    "BaseORM",
    "ConversationORM",
    "MessageORM",
    "DocumentORM",
    "ConversationDocumentORM",
]
