from .decoder import (
    Frame,
    FrameKind,
    StreamDecoder,
    parse_completion_line,
    parse_event_line,
)

__all__ = [
    "Frame",
    "FrameKind",
    "StreamDecoder",
    "parse_completion_line",
    "parse_event_line",
]
