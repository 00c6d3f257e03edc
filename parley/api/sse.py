"""SSE adapter utilities.

Provides `stream_response` to wrap async generators of dicts into
EventSourceResponse with the guarantee that every stream ends with ``done``.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

from sse_starlette.sse import EventSourceResponse

from parley.domain.events import EventFactory, EventType
from parley.utils.logger import api_logger


def _is_done(event: dict[str, Any]) -> bool:
    try:
        payload = json.loads(event.get("data", "") or "{}")
    except ValueError:
        return False
    return isinstance(payload, dict) and (
        payload.get("type") == EventType.DONE.value or bool(payload.get("done"))
    )


def stream_response(
    event_stream: AsyncIterator[dict[str, Any]],
    conversation_id: str | None = None,
    headers: dict[str, str] | None = None,
) -> EventSourceResponse:
    async def guarded_stream() -> AsyncIterator[dict[str, Any]]:
        done_sent = False
        try:
            async for event in event_stream:
                if _is_done(event):
                    done_sent = True
                yield event
        except Exception as e:
            api_logger.error("SSE pipeline crashed", exc_info=True, error=str(e))
            # Always send error, then done (if not yet sent)
            yield EventFactory.error(str(e), conversation_id).to_sse()
        if not done_sent:
            yield EventFactory.done(conversation_id).to_sse()

    return EventSourceResponse(
        guarded_stream(),
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            **(headers or {}),
        },
    )
