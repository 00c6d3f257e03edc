"""Tests for the SSE adapter contract: every stream ends with done."""

import json

import pytest

from parley.api.sse import stream_response
from parley.domain.events import EventFactory


async def collect(response):
    return [json.loads(e["data"]) async for e in response.body_iterator]


@pytest.mark.asyncio
async def test_error_then_done_when_pipeline_crashes():
    async def failing():
        yield EventFactory.chat("Starting...", "c1").to_sse()
        raise RuntimeError("context window exceeded")

    events = await collect(stream_response(failing(), conversation_id="c1"))

    assert [e["type"] for e in events] == ["chat", "error", "done"]
    assert events[1]["error"] == "context window exceeded"
    assert events[2]["conversation_id"] == "c1"


@pytest.mark.asyncio
async def test_done_added_when_missing():
    async def no_done():
        yield EventFactory.chat("hi").to_sse()

    events = await collect(stream_response(no_done()))

    assert [e["type"] for e in events] == ["chat", "done"]
    assert "conversation_id" not in events[1]


@pytest.mark.asyncio
async def test_done_not_duplicated():
    async def with_done():
        yield EventFactory.chat("hi", "c1").to_sse()
        yield EventFactory.done("c1").to_sse()

    events = await collect(stream_response(with_done(), conversation_id="c1"))

    assert [e["type"] for e in events] == ["chat", "done"]


def test_extra_headers_are_set():
    async def empty():
        return
        yield

    response = stream_response(empty(), headers={"X-Conversation-Id": "c1"})

    assert response.headers["X-Conversation-Id"] == "c1"
    assert response.headers["Cache-Control"] == "no-cache"
