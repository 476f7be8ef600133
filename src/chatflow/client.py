"""HTTP client for the agent server."""

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from .config import Settings
from .decoder import decode_stream
from .errors import ChatClientError, TransportError
from .models import Session, StreamEvent

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response, action: str) -> str:
    """Prefer the server's ``error`` field, else the HTTP reason."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), str) and body["error"]:
        return body["error"]
    reason = response.reason_phrase or f"HTTP {response.status_code}"
    return f"Failed to {action}: {reason}"


class ChatClient:
    """Async API client. Use as ``async with ChatClient(settings) as client``."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def base_url(self) -> str:
        return self.settings.api_url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.api_url,
                timeout=self.settings.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Shut down the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(self, method: str, path: str, action: str, **kwargs) -> httpx.Response:
        try:
            response = await self._get_client().request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise ChatClientError(f"Failed to {action}: {e}") from e
        if response.is_error:
            raise ChatClientError(_error_message(response, action), response.status_code)
        return response

    async def list_sessions(self) -> list[Session]:
        response = await self._request("GET", "/sessions", "list sessions")
        return [Session.model_validate(item) for item in response.json() or []]

    async def get_session(self, session_id: str) -> Session:
        response = await self._request("GET", f"/sessions/{session_id}", "get session")
        return Session.model_validate(response.json())

    async def create_session(
        self,
        agent_id: str | None = None,
        provider: str | None = None,
        task: str | None = None,
    ) -> Session:
        """Create a session; unset fields are left to the server's defaults."""
        payload: dict[str, Any] = {"agent_id": agent_id or self.settings.agent_id}
        if provider or self.settings.provider:
            payload["provider"] = provider or self.settings.provider
        if task:
            payload["task"] = task
        response = await self._request("POST", "/sessions", "create session", json=payload)
        return Session.model_validate(response.json())

    async def delete_session(self, session_id: str) -> None:
        await self._request("DELETE", f"/sessions/{session_id}", "delete session")

    async def health_check(self) -> bool:
        try:
            response = await self._get_client().get("/health")
        except httpx.HTTPError:
            return False
        return response.is_success

    async def estimate_prompt(self, text: str) -> int:
        """Server-side token estimate for an instruction prompt."""
        response = await self._request(
            "POST", "/prompts/estimate", "estimate prompt", json={"text": text}
        )
        data = response.json()
        return int(data.get("estimated_tokens", 0)) if isinstance(data, dict) else 0

    async def stream_turn(self, session_id: str, message: str) -> AsyncIterator[StreamEvent]:
        """Send one message and yield decoded events as they arrive.

        Raises:
            TransportError: the stream could not be opened or broke mid-way
        """
        path = f"/sessions/{session_id}/chat/stream"
        try:
            async with self._get_client().stream(
                "POST",
                path,
                json={"message": message},
                headers={"Accept": "text/event-stream"},
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise TransportError(_error_message(response, "send message"))
                logger.debug("Stream opened: session=%s status=%s", session_id, response.status_code)
                async for event in decode_stream(response.aiter_lines()):
                    yield event
        except httpx.HTTPError as e:
            logger.warning("Stream transport failure: session=%s error=%s", session_id, e)
            raise TransportError(f"Failed to send message: {e}") from e
