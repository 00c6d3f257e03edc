"""Stream event types and factory for the chat SSE protocol."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Literal


class EventType(str, Enum):
    CHAT = "chat"
    ERROR = "error"
    DONE = "done"


@dataclass
class BaseEvent:
    conversation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for k, v in list(data.items()):
            if isinstance(v, Enum):
                data[k] = v.value
        return {k: v for k, v in data.items() if v is not None}

    def to_sse(self) -> dict[str, str]:
        return {"data": json.dumps(self.to_dict(), ensure_ascii=False)}


@dataclass
class ChatEvent(BaseEvent):
    type: Literal[EventType.CHAT] = EventType.CHAT
    content: str = ""


@dataclass
class ErrorEvent(BaseEvent):
    type: Literal[EventType.ERROR] = EventType.ERROR
    error: str = ""


@dataclass
class DoneEvent(BaseEvent):
    type: Literal[EventType.DONE] = EventType.DONE
    done: bool = True


class EventFactory:
    @staticmethod
    def chat(content: str, conversation_id: str | None = None) -> ChatEvent:
        return ChatEvent(content=content, conversation_id=conversation_id)

    @staticmethod
    def error(message: str, conversation_id: str | None = None) -> ErrorEvent:
        return ErrorEvent(error=message, conversation_id=conversation_id)

    @staticmethod
    def done(conversation_id: str | None = None) -> DoneEvent:
        return DoneEvent(conversation_id=conversation_id)
