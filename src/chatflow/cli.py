"""CLI entry point for chatflow."""

import asyncio
import json
import logging
import tempfile
import webbrowser
from pathlib import Path

import typer

from .config import Settings
from .models import Role, TaskItem

APP_HELP = """
Talk to an agent server and inspect its transcripts.

\b
The server URL comes from --api-url or CHATFLOW_API_URL
(default http://localhost:8080).
"""

SEND_HELP = """
Send one message and stream the agent's reply.

Without --session a new session is created first. Text is printed as it
streams; the final transcript is whatever the server returns when the turn
completes. Notifications raised by tools are printed to stderr.

\b
Examples:
  chatflow send "summarize the open issues"
  chatflow send --session 5f2c... "and the closed ones?"
"""

TRANSCRIPT_HELP = """
Output a session's derived view as JSON.

Tool calls are paired with their results, compaction markers are flagged, and
task progress from the latest assistant message is included.

\b
Examples:
  chatflow transcript 5f2c... | jq '.nodes[] | select(.kind == "tool_execution") | .title'
  chatflow transcript 5f2c... --compact | jq '.metadata.awaiting_results'
"""

HTML_HELP = """
Render a session as a self-contained HTML page and open it in the browser.

INPUT is a JSON file holding a session object or a bare list of messages.
Use --session to fetch one from the server instead.
"""

app = typer.Typer(add_completion=False, help=APP_HELP)


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Enable debug logging"),
) -> None:
    setup_logging(verbose)


async def _send(settings: Settings, session_id: str | None, text: str) -> int:
    from .client import ChatClient
    from .orchestrator import ChatState, SessionOrchestrator

    printed = ""

    def on_change(state: ChatState) -> None:
        nonlocal printed
        messages = state.messages
        if not messages or messages[-1].role != Role.ASSISTANT:
            return
        content = messages[-1].content
        if content.startswith(printed) and len(content) > len(printed):
            typer.echo(content[len(printed) :], nl=False)
            printed = content

    def on_notification(event) -> None:
        typer.echo(f"\n[{event.level.value}] {event.title}: {event.message}", err=True)

    async with ChatClient(settings) as client:
        orchestrator = SessionOrchestrator(
            client,
            agent_id=settings.agent_id,
            provider=settings.provider,
            on_change=on_change,
            on_notification=on_notification,
        )
        if session_id is not None:
            await orchestrator.open_session(session_id)
            if orchestrator.state.error:
                typer.echo(f"Error: {orchestrator.state.error}", err=True)
                return 1
        await orchestrator.send_turn(session_id, text)

    if printed:
        typer.echo()
    state = orchestrator.state
    if state.error:
        typer.echo(f"Error: {state.error}", err=True)
        return 1
    typer.echo(f"session {state.session_id} [{state.status}]", err=True)
    return 0


@app.command(help=SEND_HELP)
def send(
    text: str = typer.Argument(..., help="Message to send"),
    session: str | None = typer.Option(None, "-s", "--session", help="Existing session ID"),
    api_url: str | None = typer.Option(None, "--api-url", help="Agent server URL"),
) -> None:
    settings = Settings.from_env(api_url=api_url)
    code = asyncio.run(_send(settings, session, text))
    if code:
        raise typer.Exit(code)


async def _fetch_session(settings: Settings, session_id: str):
    from .client import ChatClient

    async with ChatClient(settings) as client:
        return await client.get_session(session_id)


@app.command(help=TRANSCRIPT_HELP)
def transcript(
    session_id: str = typer.Argument(..., help="Session ID"),
    output: Path | None = typer.Option(None, "-o", "--output", help="Output JSON file path"),
    compact: bool = typer.Option(False, "--compact", help="No indentation (for piping)"),
    api_url: str | None = typer.Option(None, "--api-url", help="Agent server URL"),
) -> None:
    from .errors import ChatClientError
    from .renderer import render_json

    settings = Settings.from_env(api_url=api_url)
    try:
        session = asyncio.run(_fetch_session(settings, session_id))
    except ChatClientError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    json_str = render_json(session, compact=compact, base_url=settings.api_url)
    if output is None:
        typer.echo(json_str)
    else:
        output.write_text(json_str)
        typer.echo(f"Written to {output}", err=True)


@app.command(help=HTML_HELP)
def html(
    input_path: Path | None = typer.Argument(None, help="Path to session JSON file"),
    session: str | None = typer.Option(None, "-s", "--session", help="Fetch this session from the server"),
    output: Path | None = typer.Option(None, "-o", "--output", help="Output HTML file path"),
    no_open: bool = typer.Option(False, "--no-open", help="Don't auto-open in browser"),
    api_url: str | None = typer.Option(None, "--api-url", help="Agent server URL"),
) -> None:
    from .errors import ChatClientError
    from .renderer import load_session_file, render

    settings = Settings.from_env(api_url=api_url)
    if session is not None:
        try:
            loaded = asyncio.run(_fetch_session(settings, session))
        except ChatClientError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
    elif input_path is None:
        typer.echo("Error: Provide INPUT or --session", err=True)
        raise typer.Exit(1)
    elif not input_path.exists():
        typer.echo(f"Error: File not found: {input_path}", err=True)
        raise typer.Exit(1)
    else:
        loaded = load_session_file(input_path)

    html_content = render(loaded, base_url=settings.api_url)

    if output is None:
        with tempfile.NamedTemporaryFile(suffix=".html", prefix="chatflow-", delete=False) as f:
            output = Path(f.name)

    output.write_text(html_content)
    typer.echo(f"Written to {output}")

    if not no_open:
        webbrowser.open(f"file://{output}")


async def _estimate(settings: Settings, text: str):
    from .client import ChatClient
    from .debounce import InstructionEstimator

    async with ChatClient(settings) as client:
        estimator = InstructionEstimator(client.estimate_prompt)
        estimator.edit(text)
        await estimator.flush()
    return estimator


@app.command()
def estimate(
    path: Path = typer.Argument(..., help="File with instruction text"),
    api_url: str | None = typer.Option(None, "--api-url", help="Agent server URL"),
) -> None:
    """Ask the server how many tokens an instruction prompt costs."""
    if not path.exists():
        typer.echo(f"Error: File not found: {path}", err=True)
        raise typer.Exit(1)

    settings = Settings.from_env(api_url=api_url)
    estimator = asyncio.run(_estimate(settings, path.read_text()))
    if estimator.error is not None:
        typer.echo(f"Error: {estimator.error}", err=True)
        raise typer.Exit(1)
    typer.echo(f"~{estimator.tokens} tokens")


def _echo_tasks(tasks: list[TaskItem], level: int = 0) -> None:
    for task in tasks:
        box = "☑" if task.completed else "☐"
        typer.echo(f"{'  ' * level}{box} {task.text}")
        _echo_tasks(task.children, level + 1)


@app.command()
def tasks(path: Path = typer.Argument(..., help="Text file with a checkbox list")) -> None:
    """Show the task tree and progress parsed from a checkbox list."""
    from .tasks import parse_task_tree

    if not path.exists():
        typer.echo(f"Error: File not found: {path}", err=True)
        raise typer.Exit(1)

    progress = parse_task_tree(path.read_text())
    if progress.total == 0:
        typer.echo("No tasks found.")
        return
    _echo_tasks(progress.tasks)
    typer.echo(f"{progress.completed}/{progress.total} ({progress.progress_pct}%)")


@app.command()
def replay(path: Path = typer.Argument(..., help="Recorded stream body (SSE or NDJSON)")) -> None:
    """Decode a recorded stream and print the transcript it produces."""
    from .decoder import decode_lines
    from .models import ErrorEvent, Transcript, is_terminal
    from .reducer import apply_event

    if not path.exists():
        typer.echo(f"Error: File not found: {path}", err=True)
        raise typer.Exit(1)

    result = Transcript()
    terminal = None
    with open(path) as f:
        for event in decode_lines(f):
            result = apply_event(result, event)
            if is_terminal(event):
                terminal = event

    typer.echo(json.dumps(result.model_dump(mode="json"), indent=2))
    if terminal is None:
        typer.echo("Error: Stream ended without a terminal event", err=True)
        raise typer.Exit(1)
    if isinstance(terminal, ErrorEvent):
        typer.echo(f"Error: {terminal.error}", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
