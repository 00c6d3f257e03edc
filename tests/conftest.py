"""Shared pytest fixtures for all tests."""

from __future__ import annotations

import json
from collections.abc import Sequence

import pytest
from fastapi.testclient import TestClient

from parley.api.app import create_app
from parley.api.deps import get_chat_service, get_settings, get_store
from parley.api.rate_limit import AllowAllRateLimiter
from parley.config.settings import Settings
from parley.domain.records import Document
from parley.services.chat_service import ChatService
from parley.store.memory import InMemoryStore


def completion_frame(text: str) -> str:
    payload = {"choices": [{"index": 0, "delta": {"content": text}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def completion_body(fragments: Sequence[str], done: bool = True) -> bytes:
    """Serialize fragments the way an OpenAI-compatible endpoint streams them."""
    body = "".join(completion_frame(f) for f in fragments)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode("utf-8")


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


class FakeGenerationStream:
    def __init__(self, chunks: Sequence[bytes], model: str = "test-model", fail=None):
        self.chunks = list(chunks)
        self.model = model
        self.fail = fail
        self.closed = False
        self.consumed = 0

    async def aiter_bytes(self):
        for chunk in self.chunks:
            self.consumed += 1
            yield chunk
        if self.fail is not None:
            raise self.fail

    async def aclose(self):
        self.closed = True


class FakeGeneration:
    """Stands in for GenerationClient; records the prompts it was given."""

    def __init__(self, chunks=(), error=None, fail=None, model="test-model"):
        self.chunks = list(chunks)
        self.error = error
        self.fail = fail
        self.model = model
        self.calls: list[dict] = []
        self.streams: list[FakeGenerationStream] = []

    async def open_stream(
        self, messages, temperature=0.7, max_tokens=4096, timeout=None
    ):
        self.calls.append(
            {
                "messages": list(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
                "timeout": timeout,
            }
        )
        if self.error is not None:
            raise self.error
        stream = FakeGenerationStream(self.chunks, self.model, self.fail)
        self.streams.append(stream)
        return stream

    async def aclose(self):
        pass


def sse_events(body: str) -> list[dict]:
    """Decode the data: payloads of an SSE response body."""
    events = []
    for line in body.splitlines():
        if line.startswith("data:"):
            events.append(json.loads(line[5:].strip()))
    return events


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps an exit event bound to the first event loop it saw."""
    from sse_starlette import sse

    status = getattr(sse, "AppStatus", None)
    if status is not None and hasattr(status, "should_exit_event"):
        status.should_exit_event = None
    yield


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def documents(store) -> dict[str, Document]:
    docs = {
        "doc-a": Document(
            id="doc-a", name="Alpha", content="alpha text", device_id="dev-1"
        ),
        "doc-b": Document(
            id="doc-b", name="Beta", content="beta text", device_id="dev-1"
        ),
        "doc-c": Document(
            id="doc-c", name="Gamma", content="gamma", device_id="dev-1", active=False
        ),
        "doc-sys": Document(
            id="doc-sys", name="Handbook", content="system text", device_id="system"
        ),
    }
    store.documents.update(docs)
    return docs


@pytest.fixture
def generation() -> FakeGeneration:
    return FakeGeneration(chunks=[completion_body(["Hello", " there", "!"])])


@pytest.fixture
def chat_service(store, generation) -> ChatService:
    return ChatService(store, generation)


@pytest.fixture
def test_settings() -> Settings:
    return Settings({"generation": {"api_key": "sk-test", "model": "test-model"}})


@pytest.fixture
def app(store, chat_service, test_settings):
    app = create_app(rate_limiter=AllowAllRateLimiter())
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_chat_service] = lambda: chat_service
    app.dependency_overrides[get_settings] = lambda: test_settings
    return app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)

