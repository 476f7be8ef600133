"""chatflow: keep a streamed agent conversation consistent with the server."""

from .client import ChatClient
from .config import Settings
from .correlator import derive_tool_execution_records
from .debounce import Debouncer, InstructionEstimator
from .decoder import decode_lines, decode_stream, parse_event
from .errors import (
    ApplicationError,
    ChatClientError,
    ChatflowError,
    ProtocolError,
    StreamError,
    TransportError,
    TurnInFlightError,
)
from .models import (
    AssistantDeltaEvent,
    DoneEvent,
    ErrorEvent,
    Message,
    MessageNode,
    NotificationEvent,
    ProtocolErrorEvent,
    Session,
    StatusEvent,
    TaskItem,
    TaskProgress,
    ToolCall,
    ToolExecutionRecord,
    ToolResult,
    Transcript,
)
from .orchestrator import ChatState, SessionOrchestrator
from .reducer import apply_event, fold_events
from .side_channel import NotificationTracker, extract_notifications
from .tasks import parse_task_tree

__all__ = [
    "ApplicationError",
    "AssistantDeltaEvent",
    "ChatClient",
    "ChatClientError",
    "ChatState",
    "ChatflowError",
    "Debouncer",
    "DoneEvent",
    "ErrorEvent",
    "InstructionEstimator",
    "Message",
    "MessageNode",
    "NotificationEvent",
    "NotificationTracker",
    "ProtocolError",
    "ProtocolErrorEvent",
    "Session",
    "SessionOrchestrator",
    "Settings",
    "StatusEvent",
    "StreamError",
    "TaskItem",
    "TaskProgress",
    "ToolCall",
    "ToolExecutionRecord",
    "ToolResult",
    "Transcript",
    "TransportError",
    "TurnInFlightError",
    "apply_event",
    "decode_lines",
    "decode_stream",
    "derive_tool_execution_records",
    "extract_notifications",
    "fold_events",
    "parse_event",
    "parse_task_tree",
]
