"""Context Assembler: bounded grounding block built from selected documents."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from parley.domain.records import Document
from parley.store.base import Store
from parley.utils.logger import logger


@dataclass
class GroundingContext:
    block: str = ""
    sources: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.block


class ContextAssembler:
    def __init__(
        self,
        store: Store,
        max_chars: int = 10000,
        separator: str = "\n\n---\n\n",
        truncation_marker: str = "...",
    ):
        self.store = store
        self.max_chars = max_chars
        self.separator = separator
        self.truncation_marker = truncation_marker

    def format_document(self, document: Document) -> str:
        text = document.content or ""
        excerpt = text[: self.max_chars]
        if len(text) > self.max_chars:
            excerpt += self.truncation_marker
        return f"Document: {document.name}\n{excerpt}"

    def build(self, documents: Sequence[Document]) -> GroundingContext:
        """Join already resolved documents in the order given."""
        usable = [d for d in documents if d.active]
        if not usable:
            return GroundingContext()
        for doc in usable:
            if len(doc.content or "") < 100:
                logger.warning(
                    "Document has very little content",
                    document=doc.name,
                    chars=len(doc.content or ""),
                )
        return GroundingContext(
            block=self.separator.join(self.format_document(d) for d in usable),
            sources=[d.name for d in usable],
        )

    async def assemble(self, document_ids: Sequence[str]) -> GroundingContext:
        """Fetch the selected documents and build their grounding block.

        Unknown and inactive identifiers are skipped. Blocks follow selection
        order regardless of the order the store returns rows in.
        """
        if not document_ids:
            return GroundingContext()
        found = await self.store.get_documents(document_ids, active_only=True)
        by_id = {d.id: d for d in found}
        ordered = [by_id[i] for i in dict.fromkeys(document_ids) if i in by_id]
        context = self.build(ordered)
        logger.debug(
            "Grounding context assembled",
            requested=len(document_ids),
            used=len(context.sources),
            chars=len(context.block),
        )
        return context
