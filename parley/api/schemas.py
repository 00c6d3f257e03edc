"""API request/response schemas.

Request bodies accept both camelCase (what browser clients send) and
snake_case field names.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from parley.domain.records import Conversation, Document, Message


class TurnMessage(BaseModel):
    role: str
    content: str = ""


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Optional so that a missing field is a 400 from the service, not a 422
    messages: list[TurnMessage] | None = None
    conversation_id: str | None = Field(default=None, alias="conversationId")
    document_ids: list[str] = Field(default_factory=list, alias="documentIds")
    device_id: str | None = Field(default=None, alias="deviceId")


class ConversationCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(default=None, max_length=100)
    device_id: str = Field(alias="deviceId", min_length=1)
    document_ids: list[str] = Field(default_factory=list, alias="documentIds")


class ConversationPatchRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=100)
    pinned: bool | None = None


class DocumentCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, max_length=255)
    content: str
    device_id: str = Field(alias="deviceId", min_length=1)


class DocumentPatchRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    content: str | None = None


class ConversationSummary(BaseModel):
    id: str
    title: str
    share_token: str | None = None
    pinned: bool = False
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, conversation: Conversation) -> ConversationSummary:
        return cls(
            id=conversation.id,
            title=conversation.title,
            share_token=conversation.share_token,
            pinned=conversation.pinned,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )


class MessageResponse(BaseModel):
    id: int | None = None
    role: str
    content: str
    model: str | None = None
    sources: list[str] | None = None
    image_url: str | None = None
    created_at: datetime

    @classmethod
    def from_record(cls, message: Message) -> MessageResponse:
        return cls(
            id=message.id,
            role=message.role.value,
            content=message.content,
            model=message.model,
            sources=message.sources,
            image_url=message.image_url,
            created_at=message.created_at,
        )


class DocumentSummary(BaseModel):
    id: str
    name: str
    size_bytes: int
    device_id: str | None = None
    created_at: datetime

    @classmethod
    def from_record(cls, document: Document) -> DocumentSummary:
        return cls(
            id=document.id,
            name=document.name,
            size_bytes=document.size_bytes,
            device_id=document.device_id,
            created_at=document.created_at,
        )


class DocumentResponse(DocumentSummary):
    content: str

    @classmethod
    def from_record(cls, document: Document) -> DocumentResponse:
        return cls(
            id=document.id,
            name=document.name,
            size_bytes=document.size_bytes,
            device_id=document.device_id,
            created_at=document.created_at,
            content=document.content,
        )


class ConversationDetail(ConversationSummary):
    messages: list[MessageResponse] = []
    documents: list[DocumentSummary] = []


class ConversationListResponse(BaseModel):
    conversations: list[ConversationSummary]


class DocumentListResponse(BaseModel):
    documents: list[DocumentSummary]


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str = "parley"
    version: str
    config_valid: bool
    config_errors: list[str] = []
    store: str = "ok"
