"""Pair tool calls with tool results for display."""

from .models import Message, MessageNode, RenderNode, Role, ToolExecutionRecord, ToolResult


def is_compaction_message(message: Message) -> bool:
    """Check the ``context_compaction`` marker in message metadata."""
    marker = (message.metadata or {}).get("context_compaction")
    if isinstance(marker, bool):
        return marker
    if isinstance(marker, str):
        return marker.strip().lower() == "true"
    return False


def message_label(message: Message) -> str:
    """Header label shown for a plain message."""
    if is_compaction_message(message):
        return "Compaction"
    return {
        Role.USER: "You",
        Role.ASSISTANT: "Agent",
        Role.TOOL: "Tool",
    }.get(message.role, "System")


def _message_node(message: Message, index: int) -> MessageNode:
    return MessageNode(
        key=f"message-{index}",
        message=message,
        label=message_label(message),
        is_compaction=is_compaction_message(message),
    )


def derive_tool_execution_records(messages: list[Message]) -> list[RenderNode]:
    """Build display-ordered render nodes from the message list.

    An assistant message with tool calls absorbs at most one following tool
    message carrying results. Results are matched to calls by ``tool_call_id``,
    so arrival order within that message does not matter. Tool results that
    were not absorbed render as standalone records.
    """
    nodes: list[RenderNode] = []
    index = 0

    while index < len(messages):
        message = messages[index]

        if message.role == Role.ASSISTANT and message.tool_calls:
            merged: list[ToolResult] = list(message.tool_results)
            timestamp = message.timestamp
            following = messages[index + 1] if index + 1 < len(messages) else None
            if following is not None and following.role == Role.TOOL and following.tool_results:
                merged.extend(following.tool_results)
                timestamp = following.timestamp
                index += 1

            by_call_id = {result.tool_call_id: result for result in merged}
            for call in message.tool_calls:
                nodes.append(
                    ToolExecutionRecord(
                        key=f"tool-exec-{index}-{call.id}",
                        call=call,
                        result=by_call_id.get(call.id),
                        timestamp=timestamp,
                    )
                )
            index += 1
            continue

        if message.role == Role.TOOL:
            if message.tool_results:
                for result in message.tool_results:
                    nodes.append(
                        ToolExecutionRecord(
                            key=f"tool-result-{index}-{result.tool_call_id}",
                            result=result,
                            timestamp=message.timestamp,
                        )
                    )
            elif message.content.strip():
                nodes.append(_message_node(message, index))
            index += 1
            continue

        nodes.append(_message_node(message, index))
        index += 1

    return nodes
