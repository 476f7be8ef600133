"""Unit tests for the side_channel module."""

from chatflow.models import Message, NotificationLevel, Session, ToolResult
from chatflow.side_channel import (
    NotificationTracker,
    build_image_asset_url,
    extract_notifications,
    read_audio_clip_event,
    read_image_preview,
    read_webapp_notification,
    resolve_image_url,
)


def notifying_message(timestamp: str, call_id: str, text: str = "ping", **extra) -> Message:
    payload = {"message": text, **extra}
    return Message(
        role="tool",
        timestamp=timestamp,
        tool_results=[ToolResult(tool_call_id=call_id, metadata={"webapp_notification": payload})],
    )


class TestReadWebappNotification:
    """Tests for read_webapp_notification."""

    def test_defaults(self) -> None:
        """Level defaults to info and auto-play to true."""
        result = ToolResult(tool_call_id="c", metadata={"webapp_notification": {"message": " hi "}})
        payload = read_webapp_notification(result)
        assert payload.message == "hi"
        assert payload.level == NotificationLevel.INFO
        assert payload.auto_play_audio is True
        assert payload.title == ""

    def test_level_case_insensitive(self) -> None:
        """Known levels are accepted in any case."""
        result = ToolResult(
            tool_call_id="c", metadata={"webapp_notification": {"message": "x", "level": "WARNING"}}
        )
        assert read_webapp_notification(result).level == NotificationLevel.WARNING

    def test_unknown_level_falls_back(self) -> None:
        """Unknown levels become info."""
        result = ToolResult(
            tool_call_id="c", metadata={"webapp_notification": {"message": "x", "level": "critical"}}
        )
        assert read_webapp_notification(result).level == NotificationLevel.INFO

    def test_blank_message_ignored(self) -> None:
        """A payload needs a non-blank message."""
        result = ToolResult(tool_call_id="c", metadata={"webapp_notification": {"message": "  "}})
        assert read_webapp_notification(result) is None

    def test_malformed_shapes(self) -> None:
        """Non-object metadata and payloads are tolerated."""
        assert read_webapp_notification(ToolResult(tool_call_id="c")) is None
        assert read_webapp_notification(ToolResult(tool_call_id="c", metadata={"webapp_notification": "x"})) is None
        result = ToolResult(
            tool_call_id="c",
            metadata={"webapp_notification": {"message": "x", "auto_play_audio": "no", "title": 5}},
        )
        payload = read_webapp_notification(result)
        assert payload.auto_play_audio is True
        assert payload.title == ""


class TestReadAudioClip:
    """Tests for read_audio_clip_event."""

    def test_metadata(self) -> None:
        """Clip ids come from metadata first."""
        result = ToolResult(
            tool_call_id="c",
            content="A2_AUDIO_CLIP_ID:legacy",
            metadata={"audio_clip": {"clip_id": "clip-1", "auto_play": False}},
        )
        event = read_audio_clip_event(result)
        assert event.clip_id == "clip-1"
        assert event.auto_play is False

    def test_legacy_marker(self) -> None:
        """The inline marker is recognized when metadata is absent."""
        result = ToolResult(tool_call_id="c", content="Spoke it. A2_AUDIO_CLIP_ID:abc-123 done")
        event = read_audio_clip_event(result)
        assert event.clip_id == "abc-123"
        assert event.auto_play is True

    def test_nothing(self) -> None:
        """Plain results have no clip."""
        assert read_audio_clip_event(ToolResult(tool_call_id="c", content="ok")) is None


class TestImagePreview:
    """Tests for image preview helpers."""

    def test_image_file_wins(self) -> None:
        """image_file metadata is preferred."""
        result = ToolResult(
            tool_call_id="c",
            metadata={
                "image_file": {"path": "/tmp/a.png"},
                "webapp_notification": {"message": "x", "image_url": "http://img/b.png"},
            },
        )
        assert read_image_preview(result).image_path == "/tmp/a.png"

    def test_from_notification(self) -> None:
        """The notification's image is used as a fallback."""
        result = ToolResult(
            tool_call_id="c",
            metadata={"webapp_notification": {"message": "x", "image_url": "http://img/b.png"}},
        )
        assert resolve_image_url(result) == "http://img/b.png"

    def test_notification_without_image(self) -> None:
        """A notification without image fields yields no preview."""
        result = ToolResult(tool_call_id="c", metadata={"webapp_notification": {"message": "x"}})
        assert read_image_preview(result) is None
        assert resolve_image_url(result) == ""
        assert resolve_image_url(None) == ""

    def test_asset_url(self) -> None:
        """Paths are quoted into the asset URL."""
        url = build_image_asset_url("/tmp/my chart.png", "http://host:1/")
        assert url == "http://host:1/assets/images?path=%2Ftmp%2Fmy%20chart.png"


class TestExtractNotifications:
    """Tests for the hydration/live state machine."""

    def test_hydration_emits_nothing(self) -> None:
        """Existing history is treated as already acknowledged."""
        tracker = NotificationTracker("s1")
        messages = [notifying_message("T", "C")]
        assert extract_notifications(messages, tracker) == []
        assert tracker.hydrated
        assert extract_notifications(messages, tracker) == []

    def test_new_payload_emits_once(self) -> None:
        """A genuinely new identity emits exactly one event."""
        tracker = NotificationTracker("s1")
        messages = [notifying_message("T", "C")]
        extract_notifications(messages, tracker)

        messages = messages + [notifying_message("T2", "C2", text="new", level="error", title="Alert")]
        events = extract_notifications(messages, tracker)
        assert len(events) == 1
        event = events[0]
        assert event.id == "T2:C2"
        assert event.title == "Alert"
        assert event.level == NotificationLevel.ERROR
        assert event.session_id == "s1"
        assert event.created_at == "T2"
        assert extract_notifications(messages, tracker) == []

    def test_identity_ignores_content(self) -> None:
        """Same (timestamp, call id) with different text is not re-emitted."""
        tracker = NotificationTracker("s1")
        extract_notifications([notifying_message("T", "C", text="a")], tracker)
        assert extract_notifications([notifying_message("T", "C", text="b")], tracker) == []

    def test_error_results_skipped(self) -> None:
        """Notifications on error results are never emitted."""
        tracker = NotificationTracker("s1")
        extract_notifications([], tracker)
        message = notifying_message("T", "C")
        message.tool_results[0].is_error = True
        assert extract_notifications([message], tracker) == []

    def test_switch_resets(self) -> None:
        """A session switch rehydrates instead of replaying."""
        tracker = NotificationTracker("s1")
        extract_notifications([], tracker)
        tracker.switch("s2")
        assert not tracker.hydrated
        assert tracker.seen == set()
        assert extract_notifications([notifying_message("T", "C")], tracker) == []

    def test_default_title_and_image(self) -> None:
        """Missing title gets the default; image paths become asset URLs."""
        tracker = NotificationTracker("s1", base_url="http://srv")
        extract_notifications([], tracker)
        events = extract_notifications([notifying_message("T", "C", image_path="/x.png")], tracker)
        assert events[0].title == "Agent notification"
        assert events[0].image_url == "http://srv/assets/images?path=%2Fx.png"

    def test_fixture_session_live(self, session_with_tools: Session) -> None:
        """The fixture's notification fires when it arrives live."""
        tracker = NotificationTracker("sess-1")
        extract_notifications(session_with_tools.messages[:2], tracker)
        events = extract_notifications(session_with_tools.messages, tracker)
        assert [e.message for e in events] == ["Report ready"]
        assert events[0].level == NotificationLevel.SUCCESS
