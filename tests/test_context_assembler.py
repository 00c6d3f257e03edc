"""Tests for grounding context assembly."""

import pytest

from parley.domain.records import Document
from parley.services.context import ContextAssembler


@pytest.mark.asyncio
async def test_two_short_documents_in_selection_order(store, documents):
    assembler = ContextAssembler(store)

    context = await assembler.assemble(["doc-b", "doc-a"])

    assert context.block == (
        "Document: Beta\nbeta text\n\n---\n\nDocument: Alpha\nalpha text"
    )
    assert context.sources == ["Beta", "Alpha"]


@pytest.mark.asyncio
async def test_long_document_is_clipped_with_marker(store):
    store.documents["long"] = Document(id="long", name="Long", content="x" * 25)
    assembler = ContextAssembler(store, max_chars=10, truncation_marker="...")

    context = await assembler.assemble(["long"])

    assert context.block == "Document: Long\n" + "x" * 10 + "..."


@pytest.mark.asyncio
async def test_document_exactly_at_limit_has_no_marker(store):
    store.documents["exact"] = Document(id="exact", name="Exact", content="y" * 10)
    assembler = ContextAssembler(store, max_chars=10)

    context = await assembler.assemble(["exact"])

    assert context.block == "Document: Exact\n" + "y" * 10


@pytest.mark.asyncio
async def test_unknown_and_inactive_documents_are_skipped(store, documents):
    assembler = ContextAssembler(store)

    context = await assembler.assemble(["missing", "doc-c", "doc-a"])

    assert context.sources == ["Alpha"]
    assert context.block == "Document: Alpha\nalpha text"


@pytest.mark.asyncio
async def test_empty_selection_yields_empty_context(store, documents):
    context = await ContextAssembler(store).assemble([])

    assert context.block == ""
    assert context.sources == []
    assert context.is_empty
    assert "get_documents" not in store.calls


@pytest.mark.asyncio
async def test_duplicate_selection_is_used_once(store, documents):
    context = await ContextAssembler(store).assemble(["doc-a", "doc-a"])

    assert context.sources == ["Alpha"]
