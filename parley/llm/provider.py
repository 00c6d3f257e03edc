"""Streaming client for an OpenAI-compatible chat completions endpoint.

The endpoint is treated as an opaque producer of delta frames: the client
only opens the stream, classifies failures before the first byte, and hands
the raw body to the caller.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from parley.domain.errors import GenerationError, GenerationRateLimitError
from parley.services.turn_request import PromptMessage
from parley.utils.logger import logger

# Throttling phrases recognised on statuses other than 429
RATE_LIMIT_MARKERS = (
    "quota",
    "rate limit",
    "rate_limit",
    "rate-limit",
    "too many requests",
)


def _is_rate_limited(status_code: int, body: str) -> bool:
    if status_code == 429:
        return True
    lowered = body.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def _error_detail(body: str, status_code: int) -> str:
    """Pull a human-readable message out of an error body."""
    try:
        payload = json.loads(body)
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
        if payload.get("detail"):
            return str(payload["detail"])
    return body.strip()[:500] or f"Generation endpoint returned {status_code}"


class GenerationStream:
    """An open upstream response whose body has not been read yet."""

    def __init__(self, response: httpx.Response, model: str):
        self.response = response
        self.model = model
        self._closed = False

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            raise GenerationError(f"Generation stream interrupted: {e}") from e

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self.response.aclose()


class GenerationClient:
    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "text/event-stream"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _payload(
        self,
        messages: Sequence[PromptMessage],
        temperature: float,
        max_tokens: int,
    ) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": True,
        }

    async def open_stream(
        self,
        messages: Sequence[PromptMessage],
        temperature: float = 0.7,
        max_tokens: int = 4096,
        timeout: float | None = None,
    ) -> GenerationStream:
        """Send the request and wait for the response head.

        Raises GenerationRateLimitError for 429 and quota signals and
        GenerationError for any other non-2xx or transport failure. No body
        byte has been consumed when this returns.
        """
        request = self._client.build_request(
            "POST",
            f"{self.base_url}/chat/completions",
            json=self._payload(messages, temperature, max_tokens),
            headers=self._headers(),
            timeout=httpx.Timeout(timeout) if timeout else httpx.USE_CLIENT_DEFAULT,
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error("Generation request failed", error=str(e))
            raise GenerationError(f"Generation request failed: {e}") from e

        if response.is_success:
            logger.debug(
                "Generation stream opened",
                model=self.model,
                status_code=response.status_code,
            )
            return GenerationStream(response, self.model)

        try:
            body = (await response.aread()).decode("utf-8", errors="replace")
        except httpx.HTTPError:
            body = ""
        finally:
            await response.aclose()

        detail = _error_detail(body, response.status_code)
        logger.warning(
            "Generation endpoint rejected request",
            status_code=response.status_code,
            detail=detail,
        )
        if _is_rate_limited(response.status_code, body):
            raise GenerationRateLimitError(detail, status_code=response.status_code)
        raise GenerationError(detail, status_code=response.status_code)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
