"""
Canonical task line formatting.

This module is the single source of truth for how a Task is rendered back to
a checklist line. The parser accepts tokens anywhere in a line; rendering
always produces:

    <indent>- [ ] **owner | due | stage | project:** text [priority:..] [repeat:..]
        [blocked-by:..] [blocks:..] [estimate:..] [logged:..] #tags [done:..] [created:..]

The ``**...:**`` block is only emitted when at least one of owner, due date,
stage or project is set.
"""

from typing import Iterable, List, Optional

from vault_tasks.models.task import Task


def render_tag(name: str, value: str) -> str:
    """Render one bracket tag, e.g. ``[priority:high]``."""
    return f"[{name}:{value}]"


def render_hashtags(tags: Iterable[str]) -> str:
    return " ".join(f"#{tag}" for tag in tags)


def format_dependency_tag(refs: Iterable[str], kind: str = "blocked-by") -> str:
    """``[blocked-by:a:1,b:2]`` / ``[blocks:...]`` for a reference list."""
    if kind not in ("blocked-by", "blocks"):
        raise ValueError(f"Unknown dependency kind: {kind}")
    return render_tag(kind, ",".join(refs))


def render_metadata_block(task: Task, delimiter: str = "|") -> Optional[str]:
    fields = [task.owner, task.due_date, task.stage, task.project]
    values = [f for f in fields if f]
    if not values:
        return None
    return f"**{f' {delimiter} '.join(values)}:**"


def render_inline_tags(task: Task) -> List[str]:
    parts: List[str] = []
    if task.priority:
        parts.append(render_tag("priority", task.priority))
    if task.recurrence:
        parts.append(render_tag("repeat", task.recurrence.raw))
    if task.blocked_by:
        parts.append(format_dependency_tag(task.blocked_by, "blocked-by"))
    if task.blocks:
        parts.append(format_dependency_tag(task.blocks, "blocks"))
    if task.estimate:
        parts.append(render_tag("estimate", task.estimate))
    if task.time_logged:
        parts.append(render_tag("logged", task.time_logged))
    if task.tags:
        parts.append(render_hashtags(task.tags))
    if task.completed_date:
        parts.append(render_tag("done", task.completed_date))
    if task.created_date:
        parts.append(render_tag("created", task.created_date))
    return parts


def render_task_line(task: Task, delimiter: str = "|") -> str:
    """
    Render a task as a checklist line.

    The task's indentation is kept, and a trailing carriage return on
    ``raw_line`` is carried over so CRLF documents stay CRLF.
    """
    checkbox = "[x]" if task.completed else "[ ]"
    parts = [render_metadata_block(task, delimiter), task.text]
    parts.extend(render_inline_tags(task))
    content = " ".join(p for p in parts if p)
    line = f"{task.indent}- {checkbox} {content}"
    if task.raw_line.endswith("\r"):
        line += "\r"
    return line
