from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from parley.api.deps import get_store
from parley.api.schemas import (
    ConversationCreateRequest,
    ConversationDetail,
    ConversationListResponse,
    ConversationPatchRequest,
    ConversationSummary,
    DocumentSummary,
    MessageResponse,
)
from parley.domain.errors import StoreError
from parley.domain.records import Conversation, utcnow
from parley.services.conversations import ConversationResolver
from parley.store.base import Store
from parley.utils.logger import api_logger

router = APIRouter()


async def _detail(store: Store, conversation: Conversation) -> ConversationDetail:
    messages = await store.list_messages(conversation.id)
    documents = await store.list_linked_documents(conversation.id)
    summary = ConversationSummary.from_record(conversation)
    return ConversationDetail(
        **summary.model_dump(),
        messages=[MessageResponse.from_record(m) for m in messages],
        documents=[DocumentSummary.from_record(d) for d in documents],
    )


async def _load_active(store: Store, conversation_id: str) -> Conversation:
    conversation = await store.get_conversation(conversation_id)
    if conversation is None or not conversation.active:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@router.get("/api/conversations", response_model=ConversationListResponse)
async def list_conversations(
    device_id: str = Query(alias="deviceId", min_length=1),
    store: Store = Depends(get_store),  # noqa: B008
):
    try:
        items = await store.list_conversations(device_id=device_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail="Store unavailable") from e
    return ConversationListResponse(
        conversations=[ConversationSummary.from_record(c) for c in items]
    )


@router.post(
    "/api/conversations", response_model=ConversationSummary, status_code=201
)
async def create_conversation(
    payload: ConversationCreateRequest,
    store: Store = Depends(get_store),  # noqa: B008
):
    """Start an empty conversation; a blank title becomes "New Chat"."""
    try:
        resolved = await ConversationResolver(store).create(
            payload.device_id, payload.title or "", payload.document_ids
        )
    except StoreError as e:
        raise HTTPException(status_code=503, detail="Store unavailable") from e
    return ConversationSummary.from_record(resolved.conversation)


@router.get(
    "/api/conversations/{conversation_id}", response_model=ConversationDetail
)
async def get_conversation(
    conversation_id: str,
    store: Store = Depends(get_store),  # noqa: B008
):
    try:
        conversation = await _load_active(store, conversation_id)
        return await _detail(store, conversation)
    except StoreError as e:
        raise HTTPException(status_code=503, detail="Store unavailable") from e


@router.patch(
    "/api/conversations/{conversation_id}", response_model=ConversationSummary
)
async def patch_conversation(
    conversation_id: str,
    payload: ConversationPatchRequest,
    store: Store = Depends(get_store),  # noqa: B008
):
    fields = payload.model_dump(exclude_none=True)
    if "title" in fields:
        fields["title"] = fields["title"].strip()
        if not fields["title"]:
            raise HTTPException(status_code=400, detail="Title cannot be empty")
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")
    try:
        await _load_active(store, conversation_id)
        updated = await store.update_conversation(
            conversation_id, updated_at=utcnow(), **fields
        )
    except StoreError as e:
        raise HTTPException(status_code=503, detail="Store unavailable") from e
    if updated is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    api_logger.info(
        "Conversation updated", conversation_id=conversation_id, fields=list(fields)
    )
    return ConversationSummary.from_record(updated)


@router.delete("/api/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    store: Store = Depends(get_store),  # noqa: B008
):
    try:
        await _load_active(store, conversation_id)
        await store.update_conversation(conversation_id, active=False)
    except StoreError as e:
        raise HTTPException(status_code=503, detail="Store unavailable") from e
    api_logger.info("Conversation deleted", conversation_id=conversation_id)
    return {"success": True}


@router.get("/api/share/{share_token}", response_model=ConversationDetail)
async def get_shared_conversation(
    share_token: str,
    store: Store = Depends(get_store),  # noqa: B008
):
    try:
        conversation = await store.get_conversation_by_share_token(share_token)
        if conversation is None or not conversation.active:
            raise HTTPException(status_code=404, detail="Conversation not found")
        return await _detail(store, conversation)
    except StoreError as e:
        raise HTTPException(status_code=503, detail="Store unavailable") from e
