"""Domain models for chatflow."""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Author of a transcript entry."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


class NotificationLevel(str, Enum):
    """Severity of a side-channel notification."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class ToolCall(BaseModel):
    """A tool invocation requested by the assistant."""

    id: str  # correlation key
    name: str
    input: dict[str, Any] = {}


class ToolResult(BaseModel):
    """The outcome of a tool call."""

    tool_call_id: str  # correlation key
    content: str = ""
    is_error: bool = False
    metadata: dict[str, Any] | None = None  # side-channel payloads


class Message(BaseModel):
    """One ordered transcript entry."""

    role: Role
    content: str = ""
    tool_calls: list[ToolCall] = []
    tool_results: list[ToolResult] = []
    timestamp: str
    metadata: dict[str, Any] | None = None


class Session(BaseModel):
    """A conversation as the server describes it."""

    id: str
    status: str = ""
    title: str = ""
    agent_id: str = ""
    provider: str | None = None
    model: str | None = None
    parent_id: str | None = None
    created_at: str = ""
    updated_at: str = ""
    messages: list[Message] | None = None


class Transcript(BaseModel):
    """Messages plus session status; the value folded by the reducer."""

    model_config = ConfigDict(frozen=True)

    messages: list[Message] = []
    status: str = ""


# Stream events, one per frame, discriminated by ``type``.


class AssistantDeltaEvent(BaseModel):
    """Text fragment to append to the in-flight assistant message."""

    model_config = ConfigDict(frozen=True)

    type: Literal["assistant_delta"] = "assistant_delta"
    delta: str


class StatusEvent(BaseModel):
    """Session status change with no transcript effect."""

    model_config = ConfigDict(frozen=True)

    type: Literal["status"] = "status"
    status: str


class DoneEvent(BaseModel):
    """Terminal event carrying the authoritative message list."""

    model_config = ConfigDict(frozen=True)

    type: Literal["done"] = "done"
    messages: list[Message]
    status: str = ""


class ErrorEvent(BaseModel):
    """Terminal failure event."""

    model_config = ConfigDict(frozen=True)

    type: Literal["error"] = "error"
    error: str
    status: str | None = None


class ProtocolErrorEvent(ErrorEvent):
    """Error event made by the decoder for a malformed stream.

    Never produced from wire data: the event union only validates into
    ``ErrorEvent``.
    """


StreamEvent = Annotated[
    AssistantDeltaEvent | StatusEvent | DoneEvent | ErrorEvent,
    Field(discriminator="type"),
]

TERMINAL_EVENT_TYPES = frozenset({"done", "error"})


def is_terminal(event: AssistantDeltaEvent | StatusEvent | DoneEvent | ErrorEvent) -> bool:
    """Check if an event ends its stream."""
    return event.type in TERMINAL_EVENT_TYPES


# Derived render nodes. Recomputed from the message list on every read.


class ToolExecutionRecord(BaseModel):
    """A tool call paired with its result, or a standalone result."""

    kind: Literal["tool_execution"] = "tool_execution"
    key: str
    call: ToolCall | None = None  # None for a standalone result
    result: ToolResult | None = None  # None while awaiting the result
    timestamp: str

    @property
    def awaiting_result(self) -> bool:
        return self.call is not None and self.result is None

    @property
    def is_error(self) -> bool:
        return self.result is not None and self.result.is_error


class MessageNode(BaseModel):
    """A plain message rendered as-is."""

    kind: Literal["message"] = "message"
    key: str
    message: Message
    label: str
    is_compaction: bool = False


RenderNode = Annotated[ToolExecutionRecord | MessageNode, Field(discriminator="kind")]


# Side-channel payloads found in tool result metadata.


class WebAppNotificationPayload(BaseModel):
    """A notification the agent asked the client to surface."""

    title: str = ""
    message: str
    level: NotificationLevel = NotificationLevel.INFO
    audio_clip_id: str = ""
    image_path: str = ""
    image_url: str = ""
    auto_play_audio: bool = True


class AudioClipEvent(BaseModel):
    """Reference to an audio clip produced by a tool."""

    clip_id: str
    auto_play: bool = True


class ImagePreview(BaseModel):
    """Reference to an image produced by a tool."""

    image_path: str = ""
    image_url: str = ""


class NotificationEvent(BaseModel):
    """A notification emitted at most once per (timestamp, tool_call_id)."""

    id: str
    title: str
    message: str
    level: NotificationLevel
    created_at: str
    session_id: str
    image_url: str = ""
    audio_clip_id: str = ""
    auto_play_audio: bool = True


# Task progress


class TaskItem(BaseModel):
    """A checkbox item with nested children."""

    id: str
    text: str
    completed: bool = False
    children: list["TaskItem"] = []


class TaskProgress(BaseModel):
    """Parsed task tree with aggregate counts."""

    tasks: list[TaskItem] = []
    completed: int = 0
    total: int = 0
    progress_pct: int = 0
