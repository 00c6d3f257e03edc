from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from parley.api.deps import get_store
from parley.api.schemas import (
    DocumentCreateRequest,
    DocumentListResponse,
    DocumentPatchRequest,
    DocumentResponse,
    DocumentSummary,
)
from parley.config.constants import SYSTEM_DEVICE_ID
from parley.domain.errors import StoreError
from parley.domain.records import Document
from parley.services.conversations import generate_id
from parley.store.base import Store
from parley.utils.logger import api_logger

router = APIRouter()


async def _load_active(store: Store, document_id: str) -> Document:
    doc = await store.get_document(document_id)
    if doc is None or not doc.active:
        raise HTTPException(status_code=404, detail="Document not found")
    return doc


@router.get("/api/documents", response_model=DocumentListResponse)
async def list_documents(
    device_id: str = Query(alias="deviceId", min_length=1),
    store: Store = Depends(get_store),  # noqa: B008
):
    """Documents owned by the device plus the shared system documents."""
    try:
        docs = await store.list_documents([device_id, SYSTEM_DEVICE_ID])
    except StoreError as e:
        raise HTTPException(status_code=503, detail="Store unavailable") from e
    return DocumentListResponse(
        documents=[DocumentSummary.from_record(d) for d in docs]
    )


@router.get("/api/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    store: Store = Depends(get_store),  # noqa: B008
):
    try:
        doc = await _load_active(store, document_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail="Store unavailable") from e
    return DocumentResponse.from_record(doc)


@router.post("/api/documents", response_model=DocumentResponse, status_code=201)
async def create_document(
    payload: DocumentCreateRequest,
    store: Store = Depends(get_store),  # noqa: B008
):
    if not payload.content.strip():
        raise HTTPException(status_code=400, detail="Document content is empty")
    document = Document(
        id=generate_id(),
        name=payload.name.strip(),
        content=payload.content,
        size_bytes=len(payload.content.encode("utf-8")),
        device_id=payload.device_id,
    )
    try:
        created = await store.create_document(document)
    except StoreError as e:
        raise HTTPException(status_code=503, detail="Store unavailable") from e
    api_logger.info(
        "Document registered",
        document_id=created.id,
        name=created.name,
        size_bytes=created.size_bytes,
    )
    return DocumentResponse.from_record(created)


@router.patch("/api/documents/{document_id}", response_model=DocumentResponse)
async def patch_document(
    document_id: str,
    payload: DocumentPatchRequest,
    store: Store = Depends(get_store),  # noqa: B008
):
    """Replace a document's name and/or text; the byte size follows the text."""
    fields = payload.model_dump(exclude_none=True)
    if "name" in fields:
        fields["name"] = fields["name"].strip()
        if not fields["name"]:
            raise HTTPException(status_code=400, detail="Name cannot be empty")
    if "content" in fields:
        if not fields["content"].strip():
            raise HTTPException(status_code=400, detail="Document content is empty")
        fields["size_bytes"] = len(fields["content"].encode("utf-8"))
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")
    try:
        await _load_active(store, document_id)
        updated = await store.update_document(document_id, **fields)
    except StoreError as e:
        raise HTTPException(status_code=503, detail="Store unavailable") from e
    if updated is None:
        raise HTTPException(status_code=404, detail="Document not found")
    api_logger.info("Document updated", document_id=document_id, fields=list(fields))
    return DocumentResponse.from_record(updated)


@router.delete("/api/documents/{document_id}")
async def delete_document(
    document_id: str,
    store: Store = Depends(get_store),  # noqa: B008
):
    """Soft delete. Existing conversation links stay but stop grounding turns."""
    try:
        await _load_active(store, document_id)
        await store.update_document(document_id, active=False)
    except StoreError as e:
        raise HTTPException(status_code=503, detail="Store unavailable") from e
    api_logger.info("Document deleted", document_id=document_id)
    return {"success": True}
