"""Pytest configuration and fixtures."""

import json
from pathlib import Path

import pytest

from chatflow.models import Message, Session


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the fixtures directory path."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def session_with_tools_path(fixtures_dir: Path) -> Path:
    """Return path to session_with_tools.json fixture."""
    return fixtures_dir / "session_with_tools.json"


@pytest.fixture
def session_with_tools(session_with_tools_path: Path) -> Session:
    """Session with paired tool calls, a notification, tasks and a compaction marker."""
    return Session.model_validate(json.loads(session_with_tools_path.read_text()))


@pytest.fixture
def hello_stream_path(fixtures_dir: Path) -> Path:
    """Return path to stream_hello.sse fixture."""
    return fixtures_dir / "stream_hello.sse"


@pytest.fixture
def hello_stream_lines(hello_stream_path: Path) -> list[str]:
    """Lines of a complete SSE stream answering "hello"."""
    return hello_stream_path.read_text().splitlines()


@pytest.fixture
def truncated_stream_path(fixtures_dir: Path) -> Path:
    """Return path to stream_truncated.ndjson fixture (no terminal event)."""
    return fixtures_dir / "stream_truncated.ndjson"


@pytest.fixture
def tasks_path(fixtures_dir: Path) -> Path:
    """Return path to tasks.md fixture."""
    return fixtures_dir / "tasks.md"


@pytest.fixture
def canonical_messages() -> list[Message]:
    """The two messages the server returns for a "hello" turn."""
    return [
        Message(role="user", content="hello", timestamp="2026-01-17T10:00:00Z"),
        Message(role="assistant", content="Hi there!", timestamp="2026-01-17T10:00:02Z"),
    ]
