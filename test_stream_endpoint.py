#!/usr/bin/env python3
"""
Test the HTTP streaming endpoint end to end over an in-process ASGI transport.
"""

import httpx
import pytest

from streamchat.client.session import ChatSession, TurnOutcome
from streamchat.config import Configuration
from streamchat.models import DoneEvent, ErrorEvent, MetaEvent, TokenEvent
from streamchat.server.app import create_app
from streamchat.streaming.codec import FrameDecoder

STREAM_PATH = "/api/chat/stream"


class FakeProvider:
    name = "fake"

    def __init__(self, model, fragments, error=None):
        self.model = model
        self.fragments = fragments
        self.error = error

    async def stream_reply(self, turn):
        for fragment in self.fragments:
            yield fragment
        if self.error is not None:
            raise self.error


@pytest.fixture
def configuration(monkeypatch):
    config = Configuration()
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    return config


def make_client(configuration, fragments, error=None):
    def factory(api_key, model):
        assert api_key == "test-key"
        return FakeProvider(model, fragments, error)

    app = create_app(configuration, provider_factory=factory)
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    )


def decode_body(body: bytes):
    decoder = FrameDecoder()
    return decoder.feed(body) + decoder.flush()


def hello_request():
    return {"messages": [{"role": "user", "content": "Hi"}]}


class TestSuccessfulStream:
    """Test the frame sequence for a normal reply."""

    @pytest.mark.asyncio
    async def test_meta_tokens_done(self, configuration):
        async with make_client(configuration, ["Hel", "lo"]) as client:
            response = await client.post(STREAM_PATH, json=hello_request())

        assert response.status_code == 200
        assert decode_body(response.content) == [
            MetaEvent(model=configuration.model),
            TokenEvent(token="Hel"),
            TokenEvent(token="lo"),
            DoneEvent(),
        ]

    @pytest.mark.asyncio
    async def test_stream_headers(self, configuration):
        async with make_client(configuration, ["x"]) as client:
            response = await client.post(STREAM_PATH, json=hello_request())

        assert response.headers["content-type"] == "text/event-stream; charset=utf-8"
        assert response.headers["cache-control"] == "no-cache, no-transform"
        assert response.headers["connection"] == "keep-alive"
        assert response.headers["x-accel-buffering"] == "no"
        assert response.headers["x-request-id"]

    @pytest.mark.asyncio
    async def test_empty_fragments_suppressed(self, configuration):
        async with make_client(configuration, ["", "a", "", "b", ""]) as client:
            response = await client.post(STREAM_PATH, json=hello_request())

        tokens = [e for e in decode_body(response.content) if isinstance(e, TokenEvent)]
        assert tokens == [TokenEvent(token="a"), TokenEvent(token="b")]

    @pytest.mark.asyncio
    async def test_no_fragments_is_meta_then_done(self, configuration):
        async with make_client(configuration, []) as client:
            response = await client.post(STREAM_PATH, json=hello_request())

        assert decode_body(response.content) == [
            MetaEvent(model=configuration.model),
            DoneEvent(),
        ]


class TestStreamFailure:
    """Test provider failures after the stream has opened."""

    @pytest.mark.asyncio
    async def test_mid_stream_failure_ends_with_error(self, configuration):
        error = RuntimeError("upstream exploded")
        async with make_client(configuration, ["Hel"], error=error) as client:
            response = await client.post(STREAM_PATH, json=hello_request())

        assert response.status_code == 200
        events = decode_body(response.content)
        assert events == [
            MetaEvent(model=configuration.model),
            TokenEvent(token="Hel"),
            ErrorEvent(message="upstream exploded"),
        ]

    @pytest.mark.asyncio
    async def test_failure_without_message(self, configuration):
        async with make_client(configuration, [], error=RuntimeError()) as client:
            response = await client.post(STREAM_PATH, json=hello_request())

        events = decode_body(response.content)
        assert events[-1] == ErrorEvent(message="Unknown error")
        assert not any(isinstance(e, DoneEvent) for e in events)


class TestRejectedRequests:
    """Test requests that are answered before any stream opens."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"messages": []},
            {"messages": [{"role": "user", "content": "x"}] * 51},
            {"messages": [{"role": "user", "content": "x" * 25_001}]},
            {"messages": [{"role": "user", "content": ""}]},
            {"messages": [{"role": "tool", "content": "x"}]},
            {"prompt": "Hi"},
        ],
        ids=["empty", "too-many", "too-long", "blank", "bad-role", "no-messages"],
    )
    async def test_invalid_body_is_400(self, configuration, body):
        async with make_client(configuration, ["never"]) as client:
            response = await client.post(STREAM_PATH, json=body)

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Invalid request"
        assert data["details"]

    @pytest.mark.asyncio
    async def test_limits_are_inclusive(self, configuration):
        body = {"messages": [{"role": "user", "content": "x" * 25_000}] * 50}
        async with make_client(configuration, ["ok"]) as client:
            response = await client.post(STREAM_PATH, json=body)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_non_json_body_is_400(self, configuration):
        async with make_client(configuration, ["never"]) as client:
            response = await client.post(
                STREAM_PATH,
                content=b"not json",
                headers={"content-type": "application/json"},
            )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_api_key_is_500(self, configuration, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        async with make_client(configuration, ["never"]) as client:
            response = await client.post(STREAM_PATH, json=hello_request())

        assert response.status_code == 500
        assert response.json() == {"error": "Server configuration error"}


@pytest.mark.asyncio
async def test_healthz(configuration):
    async with make_client(configuration, []) as client:
        response = await client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "model": configuration.model}


class ClosableProvider(FakeProvider):
    def __init__(self, model, fragments):
        super().__init__(model, fragments)
        self.closed = False

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_provider_shared_across_requests_and_closed_on_shutdown(configuration):
    """The provider is built once per app and released when the app stops."""
    built = []

    def factory(api_key, model):
        provider = ClosableProvider(model, ["ok"])
        built.append(provider)
        return provider

    app = create_app(configuration, provider_factory=factory)
    async with app.router.lifespan_context(app):
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as client:
            for _ in range(3):
                response = await client.post(STREAM_PATH, json=hello_request())
                assert decode_body(response.content)[-1] == DoneEvent()

        assert len(built) == 1
        assert not built[0].closed

    assert built[0].closed


@pytest.mark.asyncio
async def test_chat_session_against_server(configuration):
    """A client session reassembles the server's stream into the reply."""
    async with make_client(configuration, ["Hel", "lo"]) as client:
        session = ChatSession(client, endpoint=STREAM_PATH)
        outcome = await session.send("hi")

    assert outcome is TurnOutcome.COMPLETED
    reply = session.messages[-1]
    assert reply.role == "assistant"
    assert reply.content == "Hello"
    assert reply.model == configuration.model
    assert not reply.failed


@pytest.mark.asyncio
async def test_chat_session_sees_server_failure(configuration):
    error = RuntimeError("quota exceeded")
    async with make_client(configuration, ["Hel"], error=error) as client:
        session = ChatSession(client, endpoint=STREAM_PATH)
        outcome = await session.send("hi")

    assert outcome is TurnOutcome.FAILED
    assert session.messages[-1].content == "Error: quota exceeded"
