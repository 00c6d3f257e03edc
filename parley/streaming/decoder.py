"""Incremental decoder for line-delimited delta streams.

Network reads are not aligned with frames: a read may end in the middle of a
line or in the middle of a multi-byte UTF-8 sequence. The decoder keeps the
undecoded bytes and the trailing partial line pending until the next read.
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from parley.domain.errors import MalformedFrameError
from parley.utils.logger import frame_log, stream_logger


class FrameKind(str, Enum):
    DELTA = "delta"
    END = "end"
    ERROR = "error"
    META = "meta"


@dataclass
class Frame:
    kind: FrameKind
    text: str = ""
    data: dict[str, Any] = field(default_factory=dict)


FrameParser = Callable[[str], Optional[Frame]]


def _sse_payload(line: str) -> str | None:
    """Return the payload of an SSE ``data:`` line, or None for other lines."""
    if not line.startswith("data:"):
        return None
    return line[5:].lstrip(" ")


def parse_completion_line(line: str) -> Frame | None:
    """Parse one line of an OpenAI-compatible chat completion stream."""
    payload = _sse_payload(line)
    if payload is None:
        # blank lines, ": keep-alive" comments, event:/id:/retry: fields
        return None
    if payload.strip() == "[DONE]":
        return Frame(FrameKind.END)
    try:
        obj = json.loads(payload)
    except json.JSONDecodeError as e:
        raise MalformedFrameError(f"Invalid JSON in frame: {e}") from e
    if not isinstance(obj, dict):
        raise MalformedFrameError("Frame payload is not an object")

    if "error" in obj:
        err = obj["error"]
        message = err.get("message") if isinstance(err, dict) else str(err)
        return Frame(FrameKind.ERROR, text=message or "Generation failed", data=obj)

    choices = obj.get("choices")
    if not isinstance(choices, list):
        raise MalformedFrameError("Frame has no choices")
    if not choices:
        # usage-only trailer
        return Frame(FrameKind.META, data=obj)
    choice = choices[0]
    if not isinstance(choice, dict):
        raise MalformedFrameError("Choice is not an object")
    delta = choice.get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    if content is not None and not isinstance(content, str):
        raise MalformedFrameError("Delta content is not a string")
    if content:
        return Frame(FrameKind.DELTA, text=content, data=obj)
    return Frame(FrameKind.META, data=obj)


def parse_event_line(line: str) -> Frame | None:
    """Parse one line of Parley's own chat event stream."""
    payload = _sse_payload(line)
    if payload is None:
        return None
    try:
        obj = json.loads(payload)
    except json.JSONDecodeError as e:
        raise MalformedFrameError(f"Invalid JSON in event: {e}") from e
    if not isinstance(obj, dict):
        raise MalformedFrameError("Event payload is not an object")

    event_type = obj.get("type")
    if event_type == "chat":
        content = obj.get("content", "")
        if not isinstance(content, str):
            raise MalformedFrameError("Chat content is not a string")
        return Frame(FrameKind.DELTA, text=content, data=obj)
    if event_type == "error":
        return Frame(FrameKind.ERROR, text=str(obj.get("error") or ""), data=obj)
    if event_type == "done" or obj.get("done"):
        return Frame(FrameKind.END, data=obj)
    return Frame(FrameKind.META, data=obj)


class StreamDecoder:
    """Turns arbitrary byte chunks into frames and accumulates delta text.

    Malformed lines are counted in ``skipped`` and dropped; decoding continues
    with the next line. END and ERROR frames are terminal: everything after
    them is ignored, so ``text`` never holds deltas that follow an error.
    """

    def __init__(self, parser: FrameParser = parse_completion_line):
        self.parser = parser
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""
        self._parts: list[str] = []
        self.skipped = 0
        self.ended = False
        self.errors: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def feed(self, chunk: bytes) -> list[Frame]:
        """Consume one read and return the frames it completed."""
        if self.ended:
            return []
        self._pending += self._utf8.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        return list(self._handle_lines(lines))

    def close(self) -> list[Frame]:
        """Flush undecoded bytes and a final line with no trailing newline."""
        tail = self._pending + self._utf8.decode(b"", final=True)
        self._pending = ""
        if self.ended or not tail:
            return []
        return list(self._handle_lines(tail.split("\n")))

    def _handle_lines(self, lines: list[str]) -> Iterator[Frame]:
        for raw in lines:
            if self.ended:
                return
            line = raw.rstrip("\r")
            try:
                frame = self.parser(line)
            except MalformedFrameError as e:
                self.skipped += 1
                stream_logger.warning(
                    "Skipping malformed frame", error=str(e), line=line[:200]
                )
                continue
            if frame is None:
                continue
            if frame.kind == FrameKind.DELTA:
                self._parts.append(frame.text)
            elif frame.kind == FrameKind.ERROR:
                self.errors.append(frame.text)
                self.ended = True
            elif frame.kind == FrameKind.END:
                self.ended = True
            frame_log(stream_logger, frame.kind.value, frame.text or None)
            yield frame

    async def iter_frames(
        self, chunks: AsyncIterable[bytes]
    ) -> AsyncIterator[Frame]:
        """Decode an async byte stream until it is exhausted or signals END."""
        async for chunk in chunks:
            for frame in self.feed(chunk):
                yield frame
            if self.ended:
                return
        for frame in self.close():
            yield frame
