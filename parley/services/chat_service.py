"""Chat service: runs one turn from validation to the final write.

Routers stay thin. ``start_turn`` does everything that can still fail with a
plain HTTP status; ``stream_turn`` yields SSE-ready dicts once the turn rows
exist.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field

from parley.config.settings import Settings
from parley.domain.errors import (
    GenerationError,
    StoreError,
    TurnTimeoutError,
    TurnValidationError,
)
from parley.domain.events import EventFactory
from parley.llm.provider import GenerationClient, GenerationStream
from parley.services.context import ContextAssembler
from parley.services.conversations import ConversationResolver
from parley.services.persistence import PersistenceFinalizer
from parley.services.turn_request import PromptMessage, TurnRequestBuilder
from parley.store.base import Store
from parley.streaming.decoder import FrameKind, StreamDecoder, parse_completion_line
from parley.utils.logger import api_logger, stream_logger, turn_context

TURN_ROLES = {"user", "assistant"}
TIMEOUT_MESSAGE = "Turn timed out"
SHUTDOWN_MESSAGE = "Request cancelled due to server shutdown"


@dataclass
class TurnSubmission:
    device_id: str | None
    messages: list[PromptMessage]
    conversation_id: str | None = None
    document_ids: list[str] = field(default_factory=list)


@dataclass
class PreparedTurn:
    """A turn whose rows are written and whose upstream stream is open."""

    conversation_id: str
    created: bool
    placeholder_id: int
    sources: list[str]
    model: str
    stream: GenerationStream
    deadline: float


def validate_turn(
    device_id: str | None,
    messages: Sequence[PromptMessage],
    max_message_chars: int = 10000,
) -> tuple[list[PromptMessage], str]:
    """Check a submission before any side effect.

    Client-sent system messages are dropped. Returns the prior turns and the
    text of the new user turn.
    """
    if not device_id or not device_id.strip():
        raise TurnValidationError("Device ID is required")
    if not messages:
        raise TurnValidationError("No messages provided")

    turns = [m for m in messages if m.role != "system"]
    if not turns:
        raise TurnValidationError("No messages provided")
    for m in turns:
        if m.role not in TURN_ROLES:
            raise TurnValidationError(f"Unsupported message role: {m.role}")

    last = turns[-1]
    if last.role != "user":
        raise TurnValidationError("Last message must be from the user")
    if not last.content or not last.content.strip():
        raise TurnValidationError("Message cannot be empty")
    if len(last.content) > max_message_chars:
        raise TurnValidationError(
            f"Message is too long (max {max_message_chars} characters)"
        )
    return turns[:-1], last.content


class ChatService:
    def __init__(
        self,
        store: Store,
        generation: GenerationClient,
        *,
        assembler: ContextAssembler | None = None,
        builder: TurnRequestBuilder | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        turn_timeout: float = 60.0,
        max_message_chars: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.generation = generation
        self.resolver = ConversationResolver(store)
        self.assembler = assembler or ContextAssembler(store)
        self.builder = builder or TurnRequestBuilder()
        self.finalizer = PersistenceFinalizer(store)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.turn_timeout = turn_timeout
        self.max_message_chars = max_message_chars
        self.clock = clock
        self._active_streams: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls, store: Store, generation: GenerationClient, settings: Settings
    ) -> ChatService:
        return cls(
            store,
            generation,
            assembler=ContextAssembler(
                store,
                max_chars=settings.max_document_chars,
                separator=settings.context_separator,
                truncation_marker=settings.truncation_marker,
            ),
            builder=TurnRequestBuilder(formatting=settings.formatting),
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            turn_timeout=settings.turn_timeout_seconds,
            max_message_chars=settings.max_message_chars,
        )

    @property
    def active_streams(self) -> int:
        return len(self._active_streams)

    async def start_turn(self, submission: TurnSubmission) -> PreparedTurn:
        """Validate, resolve, assemble, open the generation stream, write rows.

        Raises TurnValidationError, StoreError, GenerationError or
        TurnTimeoutError. A failure here leaves no turn rows behind, except
        for a conversation created before generation failed.
        """
        deadline = self.clock() + self.turn_timeout
        prior, user_text = validate_turn(
            submission.device_id, submission.messages, self.max_message_chars
        )

        resolved = await self.resolver.resolve(
            submission.conversation_id,
            submission.device_id,
            user_text,
            submission.document_ids,
        )
        context = await self.assembler.assemble(submission.document_ids)
        prompt = self.builder.build(prior, user_text, context.block)

        remaining = deadline - self.clock()
        try:
            stream = await asyncio.wait_for(
                self.generation.open_stream(
                    prompt,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    timeout=remaining,
                ),
                timeout=max(remaining, 0),
            )
        except asyncio.TimeoutError as e:
            raise TurnTimeoutError(TIMEOUT_MESSAGE) from e

        try:
            placeholder_id = await self.finalizer.begin(
                resolved.id, user_text, model=stream.model, sources=context.sources
            )
        except StoreError:
            await stream.aclose()
            raise

        api_logger.info(
            "Turn started",
            conversation_id=resolved.id,
            created=resolved.created,
            prior_turns=len(prior),
            sources=context.sources,
        )
        return PreparedTurn(
            conversation_id=resolved.id,
            created=resolved.created,
            placeholder_id=placeholder_id,
            sources=context.sources,
            model=stream.model,
            stream=stream,
            deadline=deadline,
        )

    async def stream_turn(self, turn: PreparedTurn) -> AsyncIterator[dict[str, str]]:
        """Yield SSE events for a prepared turn.

        The upstream is read by a separate pump task. If the consumer stops
        early (client disconnect) the pump keeps draining and still finalizes.
        """
        queue: asyncio.Queue[dict[str, str] | None] = asyncio.Queue()
        task = asyncio.create_task(self._pump(turn, queue))
        self._active_streams.add(task)
        task.add_done_callback(self._active_streams.discard)

        while True:
            event = await queue.get()
            if event is None:
                return
            yield event

    async def _drain(
        self, turn: PreparedTurn, decoder: StreamDecoder, queue: asyncio.Queue
    ) -> None:
        async for frame in decoder.iter_frames(turn.stream.aiter_bytes()):
            if frame.kind == FrameKind.DELTA:
                queue.put_nowait(
                    EventFactory.chat(frame.text, turn.conversation_id).to_sse()
                )
            elif frame.kind == FrameKind.ERROR:
                raise GenerationError(frame.text)

    async def _pump(self, turn: PreparedTurn, queue: asyncio.Queue) -> None:
        with turn_context(turn.conversation_id, turn.placeholder_id):
            await self._run_pump(turn, queue)

    async def _run_pump(self, turn: PreparedTurn, queue: asyncio.Queue) -> None:
        cid = turn.conversation_id
        decoder = StreamDecoder(parse_completion_line)
        error: str | None = None
        cancelled = False
        try:
            remaining = max(turn.deadline - self.clock(), 0)
            await asyncio.wait_for(self._drain(turn, decoder, queue), remaining)
        except asyncio.TimeoutError:
            error = TIMEOUT_MESSAGE
            stream_logger.warning("Turn timed out")
        except GenerationError as e:
            error = e.detail
            stream_logger.error("Generation stream failed", error=e.detail)
        except asyncio.CancelledError:
            cancelled = True
            error = SHUTDOWN_MESSAGE
            stream_logger.info("Stream cancelled due to shutdown")
        except Exception as e:
            error = str(e) or e.__class__.__name__
            stream_logger.error("Stream pump crashed", exc_info=True, error=error)
        finally:
            await turn.stream.aclose()

        try:
            if error:
                queue.put_nowait(EventFactory.error(error, cid).to_sse())
            await self.finalizer.finalize(
                turn.placeholder_id, decoder.text, turn.sources
            )
        finally:
            queue.put_nowait(EventFactory.done(cid).to_sse())
            queue.put_nowait(None)
        stream_logger.info(
            "Turn finished",
            chars=len(decoder.text),
            skipped_frames=decoder.skipped,
            error=error,
        )
        if cancelled:
            raise asyncio.CancelledError()

    async def shutdown(self) -> None:
        """Cancel all active streams during shutdown."""
        api_logger.info("Cancelling active streams", count=len(self._active_streams))
        for task in list(self._active_streams):
            if not task.done():
                task.cancel()
        if self._active_streams:
            await asyncio.gather(*self._active_streams, return_exceptions=True)
