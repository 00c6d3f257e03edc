from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from parley import __version__
from parley.api.deps import dispose_resources, get_rate_limiter
from parley.api.rate_limit import RateLimiter, client_key
from parley.api.routes.chat import router as chat_router
from parley.api.routes.conversations import router as conversations_router
from parley.api.routes.documents import router as documents_router
from parley.api.routes.health import router as health_router
from parley.config.constants import (
    CONVERSATION_CREATED_HEADER,
    CONVERSATION_ID_HEADER,
    SOURCES_HEADER,
)
from parley.utils.logger import api_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    api_logger.info("Parley server starting", version=__version__)

    yield

    # Shutdown: cancel active streams, then release the store and HTTP client
    try:
        api_logger.info("Starting shutdown cleanup")
        await dispose_resources()
        api_logger.info("Chat service shutdown completed")
    except Exception as e:
        api_logger.error("Shutdown cleanup failed", exc_info=True, error=str(e))


def create_app(rate_limiter: RateLimiter | None = None) -> FastAPI:
    app = FastAPI(
        title="Parley Server",
        description="Streaming chat orchestration with document grounding",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            CONVERSATION_ID_HEADER,
            CONVERSATION_CREATED_HEADER,
            SOURCES_HEADER,
        ],
    )

    app.state.rate_limiter = rate_limiter or get_rate_limiter()

    app.include_router(chat_router)
    app.include_router(conversations_router)
    app.include_router(documents_router)
    app.include_router(health_router)

    @app.middleware("http")
    async def limit_and_secure(request: Request, call_next):
        if request.url.path.startswith("/api/"):
            limiter: RateLimiter = request.app.state.rate_limiter
            key = client_key(request)
            if not limiter.allow(key):
                api_logger.warning("Rate limit exceeded", client=key)
                return JSONResponse(
                    status_code=429,
                    content={
                        "detail": "Too many requests",
                        "message": "Please slow down and try again later",
                    },
                    headers={"Retry-After": str(limiter.retry_after(key))},
                )
        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        return response

    return app
