"""Decode a streamed chat response into typed events.

The body is a sequence of text lines. Each frame is either a Server-Sent-Events
block (``data:`` lines closed by a blank line) or one bare JSON object per line.
Decoding stops after the first terminal event. A stream that simply runs out
without one is left for the caller to detect.
"""

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator

from pydantic import TypeAdapter, ValidationError

from .errors import ProtocolError
from .models import ProtocolErrorEvent, StreamEvent, is_terminal

logger = logging.getLogger(__name__)

_event_adapter: TypeAdapter = TypeAdapter(StreamEvent)

IGNORED_SSE_FIELDS = ("event", "id", "retry")


def parse_event(payload: str) -> StreamEvent:
    """Parse one frame payload into a stream event.

    Raises:
        ProtocolError: invalid JSON, not an object, unknown ``type`` or bad fields
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"invalid JSON in frame: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError(f"frame is not a JSON object: {type(data).__name__}")
    try:
        return _event_adapter.validate_python(data)
    except ValidationError as e:
        kind = data.get("type")
        raise ProtocolError(f"invalid {kind!r} event: {e.errors()[0]['msg']}") from e


class FrameAssembler:
    """Line-to-frame state machine for SSE blocks and NDJSON lines."""

    def __init__(self) -> None:
        self._data: list[str] = []

    def feed(self, line: str) -> str | None:
        """Consume one line; return a complete frame payload when one closes."""
        line = line.rstrip("\r\n")
        if not line.strip():
            return self._flush()
        if line.startswith(":"):  # comment / keep-alive
            return None
        if line.lstrip().startswith("{"):
            if self._data:
                raise ProtocolError("bare JSON line inside an unterminated SSE frame")
            return line.strip()

        field, sep, value = line.partition(":")
        if not sep:
            raise ProtocolError(f"unrecognized frame line: {line[:80]!r}")
        if field == "data":
            self._data.append(value[1:] if value.startswith(" ") else value)
            return None
        if field in IGNORED_SSE_FIELDS:
            return None
        raise ProtocolError(f"unknown frame field: {field!r}")

    def finish(self) -> str | None:
        """Return a trailing frame left open at end of stream, if any."""
        return self._flush()

    def _flush(self) -> str | None:
        if not self._data:
            return None
        payload = "\n".join(self._data)
        self._data = []
        return payload


def protocol_error_event(exc: ProtocolError) -> ProtocolErrorEvent:
    """Wrap a decoding failure as a terminal error event."""
    return ProtocolErrorEvent(error=f"protocol error: {exc}")


def _decode_payload(payload: str | None) -> StreamEvent | None:
    if payload is None:
        return None
    return parse_event(payload)


def decode_lines(lines: Iterable[str]) -> Iterator[StreamEvent]:
    """Decode events from a synchronous line source (recorded streams, tests)."""
    assembler = FrameAssembler()
    try:
        for line in lines:
            event = _decode_payload(assembler.feed(line))
            if event is None:
                continue
            yield event
            if is_terminal(event):
                return
        event = _decode_payload(assembler.finish())
    except ProtocolError as e:
        logger.warning("Malformed stream frame: %s", e)
        yield protocol_error_event(e)
        return
    if event is not None:
        yield event


async def decode_stream(lines: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
    """Decode events from a live response body, one line at a time."""
    assembler = FrameAssembler()
    try:
        async for line in lines:
            event = _decode_payload(assembler.feed(line))
            if event is None:
                continue
            yield event
            if is_terminal(event):
                return
        event = _decode_payload(assembler.finish())
    except ProtocolError as e:
        logger.warning("Malformed stream frame: %s", e)
        yield protocol_error_event(e)
        return
    if event is not None:
        yield event
