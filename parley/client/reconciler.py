"""Client side of a chat turn.

Renders streamed text at a bounded cadence and keeps the active conversation
identifier in step with the one the server resolved.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from parley.config.constants import CONVERSATION_ID_HEADER, SOURCES_HEADER
from parley.streaming.decoder import FrameKind, StreamDecoder, parse_event_line
from parley.utils.logger import get_logger

logger = get_logger("parley.client")

RenderCallback = Callable[[str, bool], None]


class ChatClientError(Exception):
    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class ConversationIdentityError(Exception):
    """A confirmed conversation was asked to take a different identifier."""


class IdentityState(str, Enum):
    PROVISIONAL = "provisional"
    CONFIRMED = "confirmed"


class ConversationIdentity:
    """Two-state identifier lifecycle.

    A provisional identifier (client-chosen, or None) becomes confirmed by the
    first server response. A confirmed identifier never changes.
    """

    def __init__(self, conversation_id: str | None = None):
        self.conversation_id = conversation_id
        self.state = IdentityState.PROVISIONAL

    @property
    def confirmed(self) -> bool:
        return self.state == IdentityState.CONFIRMED

    def confirm(self, server_id: str) -> bool:
        """Accept the server's identifier. Returns True when it differs from
        the one previously held.
        """
        if self.confirmed:
            if server_id != self.conversation_id:
                raise ConversationIdentityError(
                    f"Conversation {self.conversation_id} is confirmed; "
                    f"server returned {server_id}"
                )
            return False
        repointed = server_id != self.conversation_id
        self.conversation_id = server_id
        self.state = IdentityState.CONFIRMED
        return repointed


class ThrottledRenderer:
    """Calls ``render(text, complete)`` at most once per ``interval`` seconds.

    An update that lands inside the interval is rendered when the interval
    ends (when an event loop is running), so a stalled stream still shows its
    latest text.
    """

    def __init__(
        self,
        render: RenderCallback,
        interval: float = 0.05,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.render = render
        self.interval = interval
        self.clock = clock
        self.latest = ""
        self.renders = 0
        self._last_at: float | None = None
        self._rendered = ""
        self._trailing: asyncio.TimerHandle | None = None

    def update(self, text: str) -> bool:
        self.latest = text
        now = self.clock()
        if self._last_at is not None and now - self._last_at < self.interval:
            self._schedule_trailing(self.interval - (now - self._last_at))
            return False
        self._emit(text)
        return True

    def flush(self) -> None:
        self._cancel_trailing()
        self.renders += 1
        self.render(self.latest, True)

    def _emit(self, text: str) -> None:
        self._cancel_trailing()
        self._last_at = self.clock()
        self._rendered = text
        self.renders += 1
        self.render(text, False)

    def _schedule_trailing(self, delay: float) -> None:
        if self._trailing is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._trailing = loop.call_later(delay, self._render_trailing)

    def _render_trailing(self) -> None:
        self._trailing = None
        if self.latest != self._rendered:
            self._emit(self.latest)

    def _cancel_trailing(self) -> None:
        if self._trailing is not None:
            self._trailing.cancel()
            self._trailing = None


@dataclass
class TurnResult:
    text: str
    conversation_id: str | None
    sources: list[str] = field(default_factory=list)
    error: str | None = None


def _parse_sources(header: str | None) -> list[str]:
    if not header:
        return []
    try:
        value = json.loads(header)
    except ValueError:
        logger.warning("Ignoring unparseable sources header", header=header[:200])
        return []
    return [str(v) for v in value] if isinstance(value, list) else []


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP error! status: {response.status_code}"
    if isinstance(payload, dict):
        return str(payload.get("detail") or payload.get("error") or payload)
    return str(payload)


class ChatClient:
    """Streaming chat client. Turns are sent strictly one at a time."""

    def __init__(
        self,
        base_url: str,
        device_id: str,
        *,
        client: httpx.AsyncClient | None = None,
        conversation_id: str | None = None,
        document_ids: Sequence[str] = (),
        render: RenderCallback | None = None,
        render_interval: float = 0.05,
        on_conversation_change: Callable[[str], Any] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.device_id = device_id
        self.identity = ConversationIdentity(conversation_id)
        self.document_ids = list(document_ids)
        self.history: list[dict[str, str]] = []
        self.render = render
        self.render_interval = render_interval
        self.on_conversation_change = on_conversation_change
        self.clock = clock
        self._client = client or httpx.AsyncClient(timeout=None)
        self._owns_client = client is None
        self._lock = asyncio.Lock()

    @property
    def conversation_id(self) -> str | None:
        return self.identity.conversation_id

    def new_conversation(self, conversation_id: str | None = None) -> None:
        self.identity = ConversationIdentity(conversation_id)
        self.history = []

    async def send(self, text: str) -> TurnResult:
        async with self._lock:
            return await self._send(text)

    def _confirm(self, server_id: str) -> None:
        try:
            changed = self.identity.confirm(server_id)
        except ConversationIdentityError as e:
            # The confirmed conversation no longer resolves on the server;
            # follow the new one instead of merging into it.
            logger.warning("Conversation replaced by server", error=str(e))
            self.identity = ConversationIdentity(server_id)
            self.identity.confirm(server_id)
            changed = True
        if changed:
            logger.info("Conversation identifier repointed", conversation_id=server_id)
            if self.on_conversation_change:
                self.on_conversation_change(server_id)

    async def _send(self, text: str) -> TurnResult:
        user_turn = {"role": "user", "content": text}
        payload = {
            "messages": [*self.history, user_turn],
            "conversationId": self.identity.conversation_id,
            "documentIds": self.document_ids,
            "deviceId": self.device_id,
        }
        decoder = StreamDecoder(parse_event_line)
        renderer = (
            ThrottledRenderer(self.render, self.render_interval, self.clock)
            if self.render
            else None
        )
        error: str | None = None

        async with self._client.stream(
            "POST", f"{self.base_url}/api/chat", json=payload
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                raise ChatClientError(response.status_code, _error_detail(response))

            server_id = response.headers.get(CONVERSATION_ID_HEADER)
            if server_id:
                self._confirm(server_id)
            sources = _parse_sources(response.headers.get(SOURCES_HEADER))

            async for frame in decoder.iter_frames(response.aiter_bytes()):
                if frame.kind == FrameKind.DELTA and renderer:
                    renderer.update(decoder.text)
                elif frame.kind == FrameKind.ERROR:
                    error = frame.text

        answer = decoder.text
        if renderer and answer:
            renderer.flush()
        self.history.append(user_turn)
        if answer:
            self.history.append({"role": "assistant", "content": answer})
        return TurnResult(
            text=answer,
            conversation_id=self.identity.conversation_id,
            sources=sources,
            error=error,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> ChatClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
