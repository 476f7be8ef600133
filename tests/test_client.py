"""Tests for the HTTP client, using httpx.MockTransport."""

import json

import httpx
import pytest

from chatflow.client import ChatClient
from chatflow.config import Settings
from chatflow.errors import ChatClientError, TransportError
from chatflow.models import DoneEvent, StatusEvent


def make_client(handler) -> ChatClient:
    return ChatClient(Settings(api_url="http://agent.test/"), transport=httpx.MockTransport(handler))


class TestSessions:
    """Tests for session CRUD requests."""

    async def test_get_session(self, session_with_tools_path) -> None:
        """Sessions are parsed into models."""
        body = json.loads(session_with_tools_path.read_text())

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/sessions/sess-1"
            return httpx.Response(200, json=body)

        async with make_client(handler) as client:
            session = await client.get_session("sess-1")
        assert session.title == "Weekly report"
        assert len(session.messages) == 5

    async def test_create_session_payload(self) -> None:
        """Agent id and provider are sent; task is omitted when unset."""
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(201, json={"id": "s9", "agent_id": "build", "status": "idle"})

        async with make_client(handler) as client:
            session = await client.create_session(provider="openai")
        assert seen == [{"agent_id": "build", "provider": "openai"}]
        assert session.id == "s9"

    async def test_server_error_message(self) -> None:
        """The server's error field is used when present."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": "unknown agent"})

        async with make_client(handler) as client:
            with pytest.raises(ChatClientError, match="unknown agent") as exc_info:
                await client.create_session()
        assert exc_info.value.status_code == 400

    async def test_fallback_error_message(self) -> None:
        """Without an error field the HTTP reason is used."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="nope")

        async with make_client(handler) as client:
            with pytest.raises(ChatClientError, match="Failed to get session: Not Found"):
                await client.get_session("missing")

    async def test_delete_and_list(self) -> None:
        """Delete and list hit the expected routes."""
        calls: list[tuple[str, str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.path))
            if request.method == "GET":
                return httpx.Response(200, json=[{"id": "a"}, {"id": "b"}])
            return httpx.Response(204)

        async with make_client(handler) as client:
            await client.delete_session("a")
            sessions = await client.list_sessions()
        assert calls == [("DELETE", "/sessions/a"), ("GET", "/sessions")]
        assert [s.id for s in sessions] == ["a", "b"]

    async def test_health_check_connection_error(self) -> None:
        """Connection failures report unhealthy instead of raising."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with make_client(handler) as client:
            assert await client.health_check() is False

    async def test_estimate_prompt(self) -> None:
        """Token estimates come from the estimate endpoint."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content) == {"text": "be brief"}
            return httpx.Response(200, json={"estimated_tokens": 42})

        async with make_client(handler) as client:
            assert await client.estimate_prompt("be brief") == 42


class TestStreamTurn:
    """Tests for stream_turn."""

    async def test_streams_events(self, hello_stream_path) -> None:
        """The response body is decoded into events."""
        body = hello_stream_path.read_bytes()

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/sessions/s1/chat/stream"
            assert json.loads(request.content) == {"message": "hello"}
            return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

        async with make_client(handler) as client:
            events = [e async for e in client.stream_turn("s1", "hello")]
        assert events[0] == StatusEvent(status="running")
        assert isinstance(events[-1], DoneEvent)

    async def test_open_failure_status(self) -> None:
        """A non-2xx response is a transport error."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, json={"error": "busy"})

        async with make_client(handler) as client:
            with pytest.raises(TransportError, match="busy"):
                async for _ in client.stream_turn("s1", "hello"):
                    pass

    async def test_connection_failure(self) -> None:
        """Network errors are wrapped as transport errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(TransportError, match="refused"):
                async for _ in client.stream_turn("s1", "hello"):
                    pass
