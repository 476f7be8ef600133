"""Parse nested checkbox lists into a task tree."""

import logging
import re

from .models import TaskItem, TaskProgress

logger = logging.getLogger(__name__)

TASK_LINE = re.compile(
    r"^(?P<indent>[ \t]*)(?:[-*+]|\d+[.)])\s+\[(?P<mark>[ xX])\]\s+(?P<text>\S.*?)\s*$"
)
TAB_WIDTH = 4


def indent_width(indent: str) -> int:
    return len(indent.expandtabs(TAB_WIDTH))


def count_tasks(tasks: list[TaskItem]) -> tuple[int, int]:
    """Return (completed, total) over the whole tree."""
    completed = total = 0
    for task in tasks:
        total += 1
        completed += task.completed
        child_completed, child_total = count_tasks(task.children)
        completed += child_completed
        total += child_total
    return completed, total


def percent(completed: int, total: int) -> int:
    """Completion percentage rounded half-up."""
    if total == 0:
        return 0
    return (completed * 200 + total) // (total * 2)


def parse_task_tree(text: str) -> TaskProgress:
    """Build a task tree from ``- [ ]`` / ``- [x]`` lines.

    Indentation decides nesting: each open parent sits on a stack with its
    indentation width, and a new item first pops every frame at the same or
    deeper indentation. Lines that are not checkbox items are skipped. No items
    at all is a valid, empty result.
    """
    roots: list[TaskItem] = []
    stack: list[tuple[int, TaskItem]] = []
    counter = 0

    for line_num, line in enumerate(text.splitlines(), 1):
        match = TASK_LINE.match(line)
        if not match:
            if line.strip():
                logger.debug("Skipping non-task line %d: %r", line_num, line[:80])
            continue

        depth = indent_width(match.group("indent"))
        while stack and stack[-1][0] >= depth:
            stack.pop()

        counter += 1
        item = TaskItem(
            id=f"task-{counter}",
            text=match.group("text"),
            completed=match.group("mark").lower() == "x",
        )
        if stack:
            stack[-1][1].children.append(item)
        else:
            roots.append(item)
        stack.append((depth, item))

    completed, total = count_tasks(roots)
    return TaskProgress(
        tasks=roots,
        completed=completed,
        total=total,
        progress_pct=percent(completed, total),
    )
