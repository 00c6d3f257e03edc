"""Request rate limiting for the /api routes.

The limiter is an injected capability (``allow(key) -> bool``) so the
in-process window can be replaced by a shared one without touching the
routes. The default counts requests with ``limits`` over its memory storage;
pass a different ``limits`` storage to share counters between workers.
"""

from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod

from fastapi import Request
from limits import RateLimitItemPerSecond, storage, strategies


class RateLimiter(ABC):
    @abstractmethod
    def allow(self, key: str) -> bool:
        """Count one request for key; False when the key is over its limit."""

    def retry_after(self, key: str) -> int:
        """Seconds a rejected key should wait before retrying."""
        return 1


class FixedWindowRateLimiter(RateLimiter):
    """``max_requests`` per ``window_seconds`` for each key."""

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        backend: storage.Storage | None = None,
    ):
        self.item = RateLimitItemPerSecond(
            max(1, max_requests), max(1, math.ceil(window_seconds))
        )
        self.storage = backend or storage.MemoryStorage()
        self._limiter = strategies.FixedWindowRateLimiter(self.storage)

    def allow(self, key: str) -> bool:
        return self._limiter.hit(self.item, key)

    def remaining(self, key: str) -> int:
        return self._limiter.get_window_stats(self.item, key).remaining

    def retry_after(self, key: str) -> int:
        reset_time, _remaining = self._limiter.get_window_stats(self.item, key)
        return max(1, math.ceil(reset_time - time.time()))

    def reset(self, key: str) -> None:
        self._limiter.clear(self.item, key)


class AllowAllRateLimiter(RateLimiter):
    def allow(self, key: str) -> bool:
        return True


def client_key(request: Request) -> str:
    """First X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
