"""Render derived transcript views as JSON or HTML."""

import json
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .config import DEFAULT_API_URL
from .correlator import derive_tool_execution_records
from .models import Message, MessageNode, RenderNode, Role, Session, TaskProgress, ToolExecutionRecord
from .side_channel import read_audio_clip_event, resolve_image_url
from .tasks import parse_task_tree


def json_for_html(data: Any) -> str:
    """Safely encode JSON for embedding in HTML script tags."""
    json_str = json.dumps(data, ensure_ascii=False)
    # Escape </script> and <!-- to prevent HTML injection
    json_str = json_str.replace("</script>", "</scr\\u0069pt>")
    json_str = json_str.replace("<!--", "<\\u0021--")
    return json_str


def node_to_dict(node: RenderNode, base_url: str = DEFAULT_API_URL) -> dict:
    """Convert one render node to a plain dict, adding display-only fields."""
    data = node.model_dump(mode="json")
    if isinstance(node, ToolExecutionRecord):
        audio = read_audio_clip_event(node.result) if node.result else None
        data.update(
            {
                "title": node.call.name if node.call else "Tool result",
                "awaiting_result": node.awaiting_result,
                "is_error": node.is_error,
                "input_json": json.dumps(node.call.input, indent=2) if node.call else None,
                "image_url": resolve_image_url(node.result, base_url) or None,
                "audio_clip_id": audio.clip_id if audio else None,
            }
        )
    return data


def nodes_to_dict(nodes: list[RenderNode], base_url: str = DEFAULT_API_URL) -> list[dict]:
    return [node_to_dict(node, base_url) for node in nodes]


def latest_task_progress(messages: list[Message]) -> TaskProgress:
    """Task progress from the most recent assistant message that has any."""
    for message in reversed(messages):
        if message.role != Role.ASSISTANT or not message.content:
            continue
        progress = parse_task_tree(message.content)
        if progress.total:
            return progress
    return TaskProgress()


def compute_metadata(session: Session, nodes: list[RenderNode]) -> dict:
    """Compute summary metadata for the session."""
    messages = session.messages or []
    records = [n for n in nodes if isinstance(n, ToolExecutionRecord)]
    return {
        "session_id": session.id,
        "title": session.title,
        "status": session.status,
        "total_messages": len(messages),
        "tool_executions": len(records),
        "awaiting_results": sum(1 for r in records if r.awaiting_result),
        "tool_errors": sum(1 for r in records if r.is_error),
        "compactions": sum(1 for n in nodes if isinstance(n, MessageNode) and n.is_compaction),
    }


def render_json(session: Session, compact: bool = False, base_url: str = DEFAULT_API_URL) -> str:
    """Render the session's derived nodes as a JSON string."""
    nodes = derive_tool_execution_records(session.messages or [])
    ordered = {
        "metadata": compute_metadata(session, nodes),
        "nodes": nodes_to_dict(nodes, base_url),
        "tasks": latest_task_progress(session.messages or []).model_dump(),
    }
    return json.dumps(ordered, indent=None if compact else 2)


def load_session_file(path: Path) -> Session:
    """Load a session from JSON: a full session object or a bare message list."""
    data = json.loads(path.read_text())
    if isinstance(data, list):
        return Session(id=path.stem, messages=[Message.model_validate(m) for m in data])
    return Session.model_validate(data)


def render(session: Session, base_url: str = DEFAULT_API_URL) -> str:
    """Render Session to self-contained HTML string."""
    template_dir = Path(__file__).parent / "templates"
    env = Environment(loader=FileSystemLoader(template_dir), autoescape=select_autoescape(["j2", "html"]))
    template = env.get_template("transcript.html.j2")

    nodes = derive_tool_execution_records(session.messages or [])
    node_dicts = nodes_to_dict(nodes, base_url)
    return template.render(
        session=session,
        metadata=compute_metadata(session, nodes),
        nodes=node_dicts,
        tasks=latest_task_progress(session.messages or []),
        session_json=json_for_html({"nodes": node_dicts}),
    )
