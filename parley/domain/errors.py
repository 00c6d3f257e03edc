"""Error taxonomy for a chat turn.

Validation and resolution errors are raised before any side effect; generation
errors are raised before the placeholder row exists; decode and finalization
errors never propagate to the caller.
"""

from __future__ import annotations


class ParleyError(Exception):
    """Base class for all Parley errors."""


class TurnValidationError(ParleyError):
    """The submitted turn is malformed (missing device id, empty messages, ...)."""


class StoreError(ParleyError):
    """Base class for persistent store failures."""


class StoreUnavailableError(StoreError):
    """The store could not be reached or rejected the operation."""


class GenerationError(ParleyError):
    """The generation endpoint failed before or while streaming."""

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class GenerationRateLimitError(GenerationError):
    """The generation endpoint signalled a rate limit or an exhausted quota."""


class TurnTimeoutError(ParleyError):
    """The turn exceeded its wall-clock ceiling."""


class MalformedFrameError(ParleyError):
    """A single delta frame could not be parsed."""
