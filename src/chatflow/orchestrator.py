"""Drive one outbound turn from optimistic update to server truth.

Every turn is tagged with its target session id and the foreground generation
it started under. The generation moves on each switch or reload, so the
consumer loop ignores everything from the first divergence on; the request
itself is left to finish.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from .client import ChatClient
from .errors import (
    ApplicationError,
    ChatClientError,
    ProtocolError,
    StreamError,
    TransportError,
    TurnInFlightError,
)
from .models import (
    AssistantDeltaEvent,
    ErrorEvent,
    Message,
    NotificationEvent,
    ProtocolErrorEvent,
    Role,
    Session,
    StreamEvent,
    Transcript,
    is_terminal,
)
from .reducer import apply_event, utc_now
from .side_channel import NotificationTracker, extract_notifications

logger = logging.getLogger(__name__)


@dataclass
class ChatState:
    """What the chat screen shows for the foreground session."""

    session: Session | None = None
    transcript: Transcript = field(default_factory=Transcript)
    is_loading: bool = False
    error: str | None = None
    active_request_session_id: str | None = None

    @property
    def session_id(self) -> str | None:
        return self.session.id if self.session else None

    @property
    def messages(self) -> list[Message]:
        return self.transcript.messages

    @property
    def status(self) -> str:
        return self.transcript.status


class SessionOrchestrator:
    """Owns the chat state and is the only thing that mutates it."""

    def __init__(
        self,
        client: ChatClient,
        *,
        agent_id: str | None = None,
        provider: str | None = None,
        on_change: Callable[[ChatState], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        on_notification: Callable[[NotificationEvent], None] | None = None,
        now: Callable[[], str] = utc_now,
    ) -> None:
        self._client = client
        self._agent_id = agent_id
        self._provider = provider
        self._on_change = on_change
        self._on_error = on_error
        self._on_notification = on_notification
        self._now = now
        self._state = ChatState()
        self._foreground_id: str | None = None
        self._generation = 0
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._tracker = NotificationTracker(base_url=client.base_url)

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def foreground_session_id(self) -> str | None:
        return self._foreground_id

    @property
    def notification_tracker(self) -> NotificationTracker:
        return self._tracker

    def is_in_flight(self, session_id: str) -> bool:
        return session_id in self._in_flight

    # -- state mutation --------------------------------------------------

    def _update(self, **changes) -> None:
        messages_before = self._state.transcript.messages
        for name, value in changes.items():
            setattr(self._state, name, value)
        if self._on_change is not None:
            self._on_change(self._state)
        if self._state.transcript.messages is not messages_before:
            self._observe_notifications()

    def _observe_notifications(self) -> None:
        for event in extract_notifications(self._state.transcript.messages, self._tracker):
            logger.info("Notification: session=%s id=%s level=%s", event.session_id, event.id, event.level.value)
            if self._on_notification is not None:
                self._on_notification(event)

    def _set_foreground(self, session_id: str | None) -> int:
        self._foreground_id = session_id
        self._generation += 1
        return self._generation

    def _activate(self, session: Session | None, transcript: Transcript) -> None:
        """Make ``session`` the foreground and hydrate notifications from its history."""
        self._set_foreground(session.id if session else None)
        self._tracker.switch(self._foreground_id)
        self._update(
            session=session,
            transcript=transcript,
            error=None,
            is_loading=self._foreground_id in self._in_flight,
        )
        if not self._tracker.hydrated:
            self._observe_notifications()

    def _is_current(self, session_id: str, generation: int) -> bool:
        return self._generation == generation and self._foreground_id == session_id

    # -- session switching -----------------------------------------------

    async def open_session(self, session_id: str | None) -> None:
        """Switch the foreground session, loading it from the server.

        In-flight turns keep running but stop touching the screen, including
        when the session being reloaded is their own.
        """
        if session_id is None:
            self._activate(None, Transcript())
            return

        # The tracker switches only once history is loaded, so it hydrates from it.
        generation = self._set_foreground(session_id)
        self._update(session=None, transcript=Transcript(), is_loading=True, error=None)
        try:
            session = await self._client.get_session(session_id)
        except ChatClientError as e:
            logger.warning("Failed to load session %s: %s", session_id, e)
            if self._is_current(session_id, generation):
                self._tracker.switch(session_id)
                self._update(is_loading=False, error=str(e))
                self._report(e)
            return

        if not self._is_current(session_id, generation):
            logger.debug("Dropping load of %s; foreground moved on", session_id)
            return
        self._activate(session, Transcript(messages=session.messages or [], status=session.status))

    # -- turns -----------------------------------------------------------

    def _reserve(self, session_id: str) -> None:
        if session_id in self._in_flight:
            raise TurnInFlightError(session_id)
        self._in_flight.add(session_id)

    def start_turn(self, session_id: str | None, text: str) -> asyncio.Task:
        """Fire-and-forget ``send_turn``. Results show up in ``state``.

        The session is reserved before this returns, so a second call for the
        same session raises ``TurnInFlightError`` right away.
        """
        if session_id is not None:
            self._reserve(session_id)
        task = asyncio.get_running_loop().create_task(self._send_reserved(session_id, text))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def send_turn(self, session_id: str | None, text: str) -> None:
        """Send one message and fold the streamed response into the transcript.

        With no session, one is created first and becomes the foreground; the
        message is sent to it once creation finishes.
        """
        if session_id is not None:
            self._reserve(session_id)
        await self._send_reserved(session_id, text)

    async def _send_reserved(self, session_id: str | None, text: str) -> None:
        if session_id is None:
            session_id = await self._create_session()
            if session_id is None:
                return
            self._reserve(session_id)

        try:
            await self._run_turn(session_id, text)
        finally:
            self._in_flight.discard(session_id)
            changes: dict = {}
            if self._state.active_request_session_id == session_id:
                changes["active_request_session_id"] = None
            if self._foreground_id == session_id and self._state.is_loading:
                changes["is_loading"] = False
            if changes:
                self._update(**changes)

    async def _create_session(self) -> str | None:
        generation = self._generation
        self._update(is_loading=True, error=None)
        try:
            created = await self._client.create_session(agent_id=self._agent_id, provider=self._provider)
        except ChatClientError as e:
            logger.warning("Failed to create session: %s", e)
            if self._generation == generation:
                self._update(is_loading=False, error=str(e) or "Failed to create session")
                self._report(e)
            return None
        logger.info("Created session %s", created.id)
        if self._generation != generation:
            # The user moved on while waiting; the message still goes out, off screen.
            logger.debug("Session %s created in the background", created.id)
            return created.id
        self._activate(created, Transcript(status=created.status))
        return created.id

    async def _run_turn(self, tag: str, text: str) -> None:
        generation = self._generation
        baseline: Transcript | None = None
        if self._foreground_id == tag:
            baseline = self._state.transcript
            user_message = Message(role=Role.USER, content=text, timestamp=self._now())
            placeholder = Message(role=Role.ASSISTANT, content="", timestamp=self._now())
            self._update(
                transcript=baseline.model_copy(
                    update={"messages": [*baseline.messages, user_message, placeholder]}
                ),
                is_loading=True,
                error=None,
                active_request_session_id=tag,
            )

        received_content = False
        stale = baseline is None
        terminal: StreamEvent | None = None
        try:
            async for event in self._client.stream_turn(tag, text):
                if is_terminal(event):
                    terminal = event
                if not stale and not self._is_current(tag, generation):
                    stale = True
                    logger.debug("Session %s left the foreground; ignoring its stream", tag)
                if stale:
                    continue
                if isinstance(event, AssistantDeltaEvent) and event.delta:
                    received_content = True
                self._apply(event)

            if terminal is None:
                raise TransportError("Stream ended without a terminal event")
            if isinstance(terminal, ErrorEvent):
                message = terminal.error or "Failed to send message"
                if isinstance(terminal, ProtocolErrorEvent):
                    raise ProtocolError(message)
                raise ApplicationError(message, terminal.status)
        except StreamError as e:
            logger.warning("Turn failed: session=%s error=%s", tag, e)
            if not stale and self._is_current(tag, generation):
                self._fail_turn(e, baseline, received_content)

    def _apply(self, event: StreamEvent) -> None:
        transcript = apply_event(self._state.transcript, event, now=self._now)
        if transcript is self._state.transcript:
            return
        changes: dict = {"transcript": transcript}
        session = self._state.session
        if session is not None and transcript.status != session.status:
            changes["session"] = session.model_copy(update={"status": transcript.status})
        self._update(**changes)

    def _fail_turn(self, exc: StreamError, baseline: Transcript, received_content: bool) -> None:
        changes: dict = {"error": str(exc) or "Failed to send message"}
        if not received_content:
            changes["transcript"] = self._state.transcript.model_copy(
                update={"messages": baseline.messages}
            )
        self._update(**changes)
        self._report(exc)

    def _report(self, exc: Exception) -> None:
        if self._on_error is not None:
            self._on_error(exc)

    async def wait(self) -> None:
        """Wait for every fire-and-forget turn to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
