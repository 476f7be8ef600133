"""
Exceptions for chatflow.

Exception Hierarchy:
    ChatflowError (base)
    ├── StreamError (a turn's stream failed)
    │   ├── TransportError (stream failed to open or ended without a terminal event)
    │   ├── ProtocolError (malformed event frame)
    │   └── ApplicationError (explicit error event from the server)
    ├── ChatClientError (non-streaming API request failed)
    └── TurnInFlightError (a turn for the session is already running)
"""


class ChatflowError(Exception):
    """Base exception for all chatflow errors."""


class StreamError(ChatflowError):
    """Base exception for failures of a streamed turn."""


class TransportError(StreamError):
    """Raised when a stream fails to open or ends without a terminal event."""


class ProtocolError(StreamError):
    """Raised when an event frame cannot be decoded."""


class ApplicationError(StreamError):
    """Raised when the server reports an error for the turn."""

    def __init__(self, message: str, status: str | None = None) -> None:
        self.status = status
        super().__init__(message)


class ChatClientError(ChatflowError):
    """Raised when a non-streaming API request fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class TurnInFlightError(ChatflowError):
    """Raised when a second turn is started for a session with one in flight."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"A turn is already in flight for session {session_id}")
