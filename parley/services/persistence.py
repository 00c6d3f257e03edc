"""Persistence Finalizer: ordered turn writes and the single final update."""

from __future__ import annotations

from collections.abc import Sequence

from parley.domain.records import Message, MessageRole, utcnow
from parley.store.base import Store
from parley.utils.logger import store_logger


class PersistenceFinalizer:
    """Sole writer of turn content.

    ``begin`` must complete before any streamed byte is released. ``finalize``
    makes exactly one write attempt and never raises.
    """

    def __init__(self, store: Store):
        self.store = store

    async def begin(
        self,
        conversation_id: str,
        user_text: str,
        model: str | None = None,
        sources: Sequence[str] = (),
    ) -> int:
        """Write the user turn, the empty assistant placeholder, then touch the
        conversation. Each write is awaited before the next starts.

        Returns the placeholder identifier.
        """
        await self.store.create_message(
            Message(
                conversation_id=conversation_id,
                role=MessageRole.USER,
                content=user_text,
                model=model,
            )
        )
        placeholder = await self.store.create_message(
            Message(
                conversation_id=conversation_id,
                role=MessageRole.ASSISTANT,
                content="",
                model=model,
                sources=list(sources) or None,
            )
        )
        await self.store.update_conversation(conversation_id, updated_at=utcnow())
        store_logger.debug(
            "Turn rows written",
            conversation_id=conversation_id,
            placeholder_id=placeholder.id,
        )
        return placeholder.id

    async def finalize(
        self, placeholder_id: int, text: str, sources: Sequence[str] = ()
    ) -> bool:
        """Overwrite the placeholder with the trimmed final text.

        Empty output leaves the placeholder as "". Returns True when a write
        was made and succeeded.
        """
        final = (text or "").strip()
        if not final:
            store_logger.info(
                "No content produced, placeholder left empty",
                placeholder_id=placeholder_id,
            )
            return False
        try:
            await self.store.update_message(
                placeholder_id, content=final, sources=list(sources) or None
            )
        except Exception as e:
            store_logger.error(
                "Failed to save assistant message",
                exc_info=True,
                placeholder_id=placeholder_id,
                error=str(e),
            )
            return False
        store_logger.info(
            "Assistant message saved",
            placeholder_id=placeholder_id,
            chars=len(final),
            sources=list(sources),
        )
        return True
