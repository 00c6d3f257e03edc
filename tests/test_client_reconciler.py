"""Tests for the client-side identifier state machine, throttle and chat client."""

import asyncio
import json

import httpx
import pytest
from conftest import FakeGeneration, completion_body

from parley.api.app import create_app
from parley.api.deps import get_chat_service, get_settings, get_store
from parley.api.rate_limit import AllowAllRateLimiter
from parley.client import (
    ChatClient,
    ChatClientError,
    ConversationIdentity,
    ConversationIdentityError,
    IdentityState,
    ThrottledRenderer,
)
from parley.services.chat_service import ChatService


def sse_body(*events) -> bytes:
    return "".join(f"data: {json.dumps(e)}\r\n\r\n" for e in events).encode()


def chat_response(conversation_id, fragments, sources=None, error=None):
    events = [{"type": "chat", "content": f} for f in fragments]
    if error:
        events.append({"type": "error", "error": error})
    events.append({"type": "done", "done": True, "conversation_id": conversation_id})
    return httpx.Response(
        200,
        headers={
            "content-type": "text/event-stream",
            "X-Conversation-Id": conversation_id,
            "X-Sources": json.dumps(sources) if sources else "",
        },
        content=sse_body(*events),
    )


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_identity_confirms_once():
    identity = ConversationIdentity("local-1")
    assert identity.state == IdentityState.PROVISIONAL

    assert identity.confirm("srv-1") is True
    assert identity.confirmed
    assert identity.conversation_id == "srv-1"

    assert identity.confirm("srv-1") is False
    with pytest.raises(ConversationIdentityError):
        identity.confirm("srv-2")
    assert identity.conversation_id == "srv-1"


def test_identity_confirming_same_id_is_not_a_repoint():
    identity = ConversationIdentity("abc")
    assert identity.confirm("abc") is False
    assert identity.confirmed


def test_throttled_renderer_bounds_cadence():
    clock = FakeClock()
    calls = []
    renderer = ThrottledRenderer(
        lambda text, complete: calls.append((text, complete)),
        interval=0.05,
        clock=clock,
    )

    assert renderer.update("a")
    clock.now = 0.01
    assert not renderer.update("ab")
    clock.now = 0.06
    assert renderer.update("abc")
    clock.now = 0.07
    renderer.update("abcd")
    renderer.flush()

    assert calls == [("a", False), ("abc", False), ("abcd", True)]


@pytest.mark.asyncio
async def test_throttled_renderer_renders_trailing_update_after_stall():
    calls = []
    renderer = ThrottledRenderer(
        lambda text, complete: calls.append((text, complete)), interval=0.02
    )

    renderer.update("a")
    renderer.update("ab")
    renderer.update("abc")
    assert calls == [("a", False)]

    # No further frames arrive; the last dropped update still shows up
    await asyncio.sleep(0.1)
    assert calls == [("a", False), ("abc", False)]

    renderer.flush()
    assert calls[-1] == ("abc", True)


@pytest.mark.asyncio
async def test_flush_cancels_pending_trailing_render():
    calls = []
    renderer = ThrottledRenderer(
        lambda text, complete: calls.append((text, complete)), interval=0.02
    )
    renderer.update("a")
    renderer.update("ab")
    renderer.flush()

    await asyncio.sleep(0.1)

    assert calls == [("a", False), ("ab", True)]


@pytest.mark.asyncio
async def test_turn_result_and_repoint_callback():
    requests = []

    def handler(request):
        requests.append(json.loads(request.content))
        return chat_response("srv-1", ["Hel", "lo"], sources=["Alpha"])

    changes = []
    rendered = []
    client = ChatClient(
        "http://parley.test",
        "dev-1",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        document_ids=["doc-a"],
        render=lambda text, complete: rendered.append((text, complete)),
        on_conversation_change=changes.append,
    )

    result = await client.send("hi")

    assert result.text == "Hello"
    assert result.conversation_id == "srv-1"
    assert result.sources == ["Alpha"]
    assert result.error is None
    assert changes == ["srv-1"]
    assert rendered[-1] == ("Hello", True)
    assert requests[0] == {
        "messages": [{"role": "user", "content": "hi"}],
        "conversationId": None,
        "documentIds": ["doc-a"],
        "deviceId": "dev-1",
    }


@pytest.mark.asyncio
async def test_turns_are_serialized_and_carry_history():
    requests = []

    async def handler(request):
        body = json.loads(request.content)
        requests.append(body)
        await asyncio.sleep(0.01)
        return chat_response("srv-1", [f"answer {len(requests)}"])

    client = ChatClient(
        "http://parley.test",
        "dev-1",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    await asyncio.gather(client.send("first"), client.send("second"))

    assert requests[1]["conversationId"] == "srv-1"
    assert requests[1]["messages"] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "answer 1"},
        {"role": "user", "content": "second"},
    ]


@pytest.mark.asyncio
async def test_server_replacing_confirmed_conversation():
    ids = iter(["srv-1", "srv-2"])

    def handler(request):
        return chat_response(next(ids), ["ok"])

    changes = []
    client = ChatClient(
        "http://parley.test",
        "dev-1",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        on_conversation_change=changes.append,
    )

    await client.send("one")
    result = await client.send("two")

    assert result.conversation_id == "srv-2"
    assert changes == ["srv-1", "srv-2"]
    assert client.identity.confirmed


@pytest.mark.asyncio
async def test_error_event_is_reported_with_partial_text():
    def handler(request):
        return chat_response("srv-1", ["part"], error="Turn timed out")

    client = ChatClient(
        "http://parley.test",
        "dev-1",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    result = await client.send("hi")

    assert result.text == "part"
    assert result.error == "Turn timed out"


@pytest.mark.asyncio
async def test_http_error_raises_chat_client_error():
    def handler(request):
        return httpx.Response(429, json={"detail": "Too many requests"})

    client = ChatClient(
        "http://parley.test",
        "dev-1",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    with pytest.raises(ChatClientError) as exc:
        await client.send("hi")

    assert exc.value.status_code == 429
    assert exc.value.detail == "Too many requests"
    assert client.history == []


@pytest.mark.asyncio
async def test_against_running_app(store, documents, test_settings):
    service = ChatService(
        store, FakeGeneration(chunks=[completion_body(["Grounded", " answer"])])
    )
    app = create_app(rate_limiter=AllowAllRateLimiter())
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_chat_service] = lambda: service
    app.dependency_overrides[get_settings] = lambda: test_settings

    changes = []
    async with ChatClient(
        "http://parley.test",
        "dev-1",
        client=httpx.AsyncClient(transport=httpx.ASGITransport(app=app)),
        conversation_id="provisional",
        document_ids=["doc-a"],
        on_conversation_change=changes.append,
    ) as client:
        first = await client.send("What does alpha say?")
        second = await client.send("And again?")

    assert first.text == "Grounded answer"
    assert first.sources == ["Alpha"]
    assert changes == [first.conversation_id]
    assert first.conversation_id != "provisional"
    assert second.conversation_id == first.conversation_id
    assert len(store.conversations) == 1
    assert len(await store.list_messages(first.conversation_id)) == 4
