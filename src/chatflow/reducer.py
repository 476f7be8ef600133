"""Fold stream events into a transcript."""

from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from .models import (
    AssistantDeltaEvent,
    DoneEvent,
    ErrorEvent,
    Message,
    Role,
    StatusEvent,
    StreamEvent,
    Transcript,
)


def utc_now() -> str:
    """ISO-8601 timestamp for locally created messages."""
    return datetime.now(timezone.utc).isoformat()


def append_delta(messages: list[Message], delta: str, timestamp: str) -> list[Message]:
    """Grow the trailing assistant message, or start one seeded with ``delta``."""
    if messages and messages[-1].role == Role.ASSISTANT:
        last = messages[-1]
        return [*messages[:-1], last.model_copy(update={"content": last.content + delta})]
    return [*messages, Message(role=Role.ASSISTANT, content=delta, timestamp=timestamp)]


def apply_event(
    transcript: Transcript,
    event: StreamEvent,
    *,
    now: Callable[[], str] = utc_now,
) -> Transcript:
    """Apply one event to the transcript and return the next transcript.

    ``done`` is the single reconciliation point: it replaces the whole message
    list, discarding anything built from deltas. ``error`` never touches the
    messages; undoing optimistic placeholders is the caller's job.
    """
    if isinstance(event, AssistantDeltaEvent):
        if not event.delta:
            return transcript
        return transcript.model_copy(
            update={"messages": append_delta(transcript.messages, event.delta, now())}
        )

    if isinstance(event, StatusEvent):
        return transcript.model_copy(update={"status": event.status})

    if isinstance(event, DoneEvent):
        return Transcript(messages=list(event.messages), status=event.status)

    if isinstance(event, ErrorEvent):
        if event.status and event.status.strip():
            return transcript.model_copy(update={"status": event.status})
        return transcript

    raise TypeError(f"Unknown stream event: {event!r}")


def fold_events(
    transcript: Transcript,
    events: Iterable[StreamEvent],
    *,
    now: Callable[[], str] = utc_now,
) -> Transcript:
    """Apply events strictly in arrival order."""
    for event in events:
        transcript = apply_event(transcript, event, now=now)
    return transcript
