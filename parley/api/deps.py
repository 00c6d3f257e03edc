from __future__ import annotations

from parley.api.rate_limit import (
    AllowAllRateLimiter,
    FixedWindowRateLimiter,
    RateLimiter,
)
from parley.config import settings as _settings
from parley.config.settings import Settings
from parley.llm.provider import GenerationClient
from parley.services.chat_service import ChatService
from parley.store import SQLStore, Store

# Global instances, created on first use
_store: Store | None = None
_generation: GenerationClient | None = None
_chat_service: ChatService | None = None
_rate_limiter: RateLimiter | None = None


def get_settings() -> Settings:
    return _settings


def get_store() -> Store:
    global _store
    if _store is None:
        store = SQLStore.from_url(_settings.database_url)
        store.create_schema()
        _store = store
    return _store


def get_generation_client() -> GenerationClient:
    global _generation
    if _generation is None:
        _generation = GenerationClient(
            api_key=_settings.api_key,
            base_url=_settings.base_url,
            model=_settings.model,
        )
    return _generation


def get_chat_service() -> ChatService:
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService.from_settings(
            get_store(), get_generation_client(), _settings
        )
    return _chat_service


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        if _settings.rate_limit_max_requests <= 0:
            _rate_limiter = AllowAllRateLimiter()
        else:
            _rate_limiter = FixedWindowRateLimiter(
                max_requests=_settings.rate_limit_max_requests,
                window_seconds=_settings.rate_limit_window_seconds,
            )
    return _rate_limiter


async def dispose_resources() -> None:
    """Shut down the chat service and release the store and HTTP client."""
    global _store, _generation, _chat_service
    if _chat_service is not None:
        await _chat_service.shutdown()
        _chat_service = None
    if _generation is not None:
        await _generation.aclose()
        _generation = None
    if _store is not None:
        await _store.close()
        _store = None
