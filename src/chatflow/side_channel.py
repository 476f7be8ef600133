"""Side-channel payloads carried in tool result metadata.

Tools can ask the client to surface a notification, play an audio clip or
preview an image by attaching a payload under ``ToolResult.metadata``:

    webapp_notification  {title?, message, level?, audio_clip_id?, image_path?,
                          image_url?, auto_play_audio?}
    image_file           {path}
    audio_clip           {clip_id, auto_play?}

Older tools mark audio inline with ``A2_AUDIO_CLIP_ID:<id>`` in the result
content instead.

Notifications are deduplicated per session by (message timestamp, tool_call_id).
The first observation after a session switch only hydrates the seen set, so
history that was already on screen is never replayed.
"""

import logging
import re
from typing import Any
from urllib.parse import quote

from .config import DEFAULT_API_URL, normalize_api_url
from .models import (
    AudioClipEvent,
    ImagePreview,
    Message,
    NotificationEvent,
    NotificationLevel,
    ToolResult,
    WebAppNotificationPayload,
)

logger = logging.getLogger(__name__)

AUDIO_CLIP_MARKER = re.compile(r"A2_AUDIO_CLIP_ID:([a-zA-Z0-9-]+)")
DEFAULT_NOTIFICATION_TITLE = "Agent notification"


def as_record(value: Any) -> dict[str, Any]:
    """Return ``value`` if it is a mapping, else an empty dict."""
    return value if isinstance(value, dict) else {}


def as_string(value: Any) -> str:
    """Return ``value`` stripped if it is a string, else ''."""
    return value.strip() if isinstance(value, str) else ""


def as_bool(value: Any, fallback: bool) -> bool:
    return value if isinstance(value, bool) else fallback


def read_webapp_notification(result: ToolResult) -> WebAppNotificationPayload | None:
    """Parse the notification payload; None unless it has a non-blank message."""
    payload = as_record(as_record(result.metadata).get("webapp_notification"))
    message = as_string(payload.get("message"))
    if not message:
        return None

    level_raw = as_string(payload.get("level")).lower()
    try:
        level = NotificationLevel(level_raw)
    except ValueError:
        level = NotificationLevel.INFO

    return WebAppNotificationPayload(
        title=as_string(payload.get("title")),
        message=message,
        level=level,
        audio_clip_id=as_string(payload.get("audio_clip_id")),
        image_path=as_string(payload.get("image_path")),
        image_url=as_string(payload.get("image_url")),
        auto_play_audio=as_bool(payload.get("auto_play_audio"), True),
    )


def read_audio_clip_event(result: ToolResult) -> AudioClipEvent | None:
    """Find an audio clip in metadata, falling back to the legacy inline marker."""
    audio_clip = as_record(as_record(result.metadata).get("audio_clip"))
    clip_id = as_string(audio_clip.get("clip_id"))
    if clip_id:
        return AudioClipEvent(clip_id=clip_id, auto_play=as_bool(audio_clip.get("auto_play"), True))

    match = AUDIO_CLIP_MARKER.search(result.content or "")
    if not match:
        return None
    return AudioClipEvent(clip_id=match.group(1).strip(), auto_play=True)


def read_image_preview(result: ToolResult) -> ImagePreview | None:
    """Find an image in ``image_file`` metadata or in the notification payload."""
    image_path = as_string(as_record(as_record(result.metadata).get("image_file")).get("path"))
    if image_path:
        return ImagePreview(image_path=image_path)

    notification = read_webapp_notification(result)
    if notification is None:
        return None
    if not notification.image_path and not notification.image_url:
        return None
    return ImagePreview(image_path=notification.image_path, image_url=notification.image_url)


def build_image_asset_url(path: str, base_url: str = DEFAULT_API_URL) -> str:
    """URL under which the server serves a tool-generated image file."""
    return f"{normalize_api_url(base_url)}/assets/images?path={quote(path, safe='')}"


def resolve_image_url(result: ToolResult | None, base_url: str = DEFAULT_API_URL) -> str:
    """Displayable image URL for a tool result, or ''."""
    if result is None:
        return ""
    preview = read_image_preview(result)
    if preview is None:
        return ""
    if preview.image_url:
        return preview.image_url
    return build_image_asset_url(preview.image_path, base_url)


def notification_id(message: Message, result: ToolResult) -> str:
    """Identity of a notification: where it appeared, not what it says."""
    return f"{message.timestamp}:{result.tool_call_id}"


def iter_notification_payloads(messages: list[Message]):
    """Yield (message, result, payload) for every non-error notification."""
    for message in messages:
        for result in message.tool_results:
            if result.is_error:
                continue
            payload = read_webapp_notification(result)
            if payload is not None:
                yield message, result, payload


class NotificationTracker:
    """Per-session dedup state: the seen identities and the hydration flag."""

    def __init__(self, session_id: str | None = None, base_url: str = DEFAULT_API_URL) -> None:
        self.session_id = session_id
        self.base_url = base_url
        self.seen: set[str] = set()
        self.hydrated = False

    def switch(self, session_id: str | None) -> None:
        """Forget everything; the next observation hydrates again."""
        self.session_id = session_id
        self.seen = set()
        self.hydrated = False


def extract_notifications(
    messages: list[Message], tracker: NotificationTracker
) -> list[NotificationEvent]:
    """Return notifications not yet seen for the tracker's session.

    The first call after a switch registers every existing payload and returns
    nothing. Later calls return one event per new identity, in transcript order.
    """
    if not tracker.hydrated:
        for message, result, _payload in iter_notification_payloads(messages):
            tracker.seen.add(notification_id(message, result))
        tracker.hydrated = True
        logger.debug(
            "Hydrated %d notification(s) for session %s", len(tracker.seen), tracker.session_id
        )
        return []

    events: list[NotificationEvent] = []
    for message, result, payload in iter_notification_payloads(messages):
        ident = notification_id(message, result)
        if ident in tracker.seen:
            continue
        tracker.seen.add(ident)

        image_url = payload.image_url
        if not image_url and payload.image_path:
            image_url = build_image_asset_url(payload.image_path, tracker.base_url)

        events.append(
            NotificationEvent(
                id=ident,
                title=payload.title or DEFAULT_NOTIFICATION_TITLE,
                message=payload.message,
                level=payload.level,
                created_at=message.timestamp,
                session_id=tracker.session_id or "",
                image_url=image_url,
                audio_clip_id=payload.audio_clip_id,
                auto_play_audio=payload.auto_play_audio,
            )
        )
    return events
