from __future__ import annotations

import json
import time

from fastapi import APIRouter, Depends, HTTPException, Request

from parley.api.deps import get_chat_service
from parley.api.schemas import ChatRequest
from parley.api.sse import stream_response
from parley.config.constants import (
    CONVERSATION_CREATED_HEADER,
    CONVERSATION_ID_HEADER,
    SOURCES_HEADER,
)
from parley.domain.errors import (
    GenerationError,
    GenerationRateLimitError,
    StoreError,
    TurnTimeoutError,
    TurnValidationError,
)
from parley.services.chat_service import ChatService, TurnSubmission
from parley.services.turn_request import PromptMessage
from parley.utils.logger import api_logger, request_log

router = APIRouter()


@router.post("/api/chat")
async def chat(
    request: ChatRequest,
    raw_request: Request,
    chat_service: ChatService = Depends(get_chat_service),  # noqa: B008
):
    start_time = time.time()
    client_host = raw_request.client.host if raw_request.client else "unknown"

    api_logger.info(
        "Chat request received",
        client=client_host,
        message_count=len(request.messages or []),
        conversation_id=request.conversation_id,
        document_count=len(request.document_ids),
    )

    submission = TurnSubmission(
        device_id=request.device_id,
        messages=[PromptMessage(m.role, m.content) for m in request.messages or []],
        conversation_id=request.conversation_id,
        document_ids=list(request.document_ids),
    )

    try:
        turn = await chat_service.start_turn(submission)
    except TurnValidationError as e:
        api_logger.warning("Rejected chat request", reason=str(e))
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StoreError as e:
        raise HTTPException(status_code=503, detail="Store unavailable") from e
    except GenerationRateLimitError as e:
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit reached for the generation endpoint: {e.detail}",
        ) from e
    except GenerationError as e:
        raise HTTPException(status_code=502, detail=e.detail) from e
    except TurnTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e)) from e

    headers = {
        CONVERSATION_ID_HEADER: turn.conversation_id,
        CONVERSATION_CREATED_HEADER: "true" if turn.created else "false",
        SOURCES_HEADER: json.dumps(turn.sources) if turn.sources else "",
    }
    response = stream_response(
        chat_service.stream_turn(turn),
        conversation_id=turn.conversation_id,
        headers=headers,
    )

    duration_ms = (time.time() - start_time) * 1000
    request_log(api_logger, "POST", "/api/chat", 200, duration_ms, streaming=True)
    return response
