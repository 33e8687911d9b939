"""
Task tool handlers.

Core logic lives in async handle_* functions (return dicts or lists).
MCP wrappers in register_task_tools() serialize to JSON strings; the REST
routes in api.routes call the same handlers.

Failed edits come back as ``{"error": ..., "kind": ...}`` where ``kind`` is a
FailureKind value.
"""

import json
import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional, Union

from mcp.server.fastmcp import FastMCP

from vault_tasks.config import parse_list
from vault_tasks.dependencies import resolver
from vault_tasks.models.query import TaskFilter
from vault_tasks.models.results import CreateOptions, FailureKind, UpdateResult
from vault_tasks.models.task import Task
from vault_tasks.parsers.search_query import parse_search_query

log = logging.getLogger(__name__)


def _task_to_dict(task: Task, index: Optional[Dict[str, Task]] = None) -> dict:
    """Serialize a Task; with ``index`` children are nested in full."""
    d = {
        "id": task.id,
        "path": task.path,
        "line_index": task.line_index,
        "ref": task.short_ref,
        "text": task.text,
        "completed": task.completed,
        "owner": task.owner,
        "project": task.project,
        "stage": task.stage,
        "priority": task.priority,
        "due_date": task.due_date,
        "completed_date": task.completed_date,
        "created_date": task.created_date,
        "tags": list(task.tags),
        "recurrence": task.recurrence.raw if task.recurrence else None,
        "estimate": task.estimate,
        "time_logged": task.time_logged,
        "blocked_by": list(task.blocked_by),
        "blocks": list(task.blocks),
        "depth": task.depth,
        "parent_id": task.parent_id,
    }
    if index is not None:
        d["children"] = [_task_to_dict(index[c], index) for c in task.children if c in index]
    else:
        d["children"] = list(task.children)
    return d


def _summary(task: Optional[Task], task_id: str) -> dict:
    if task is None:
        return {"id": task_id, "text": None, "completed": None, "resolved": False}
    return {"id": task.id, "text": task.text, "completed": task.completed, "resolved": True}


def _error(kind: FailureKind, message: str) -> dict:
    return {"error": message, "kind": kind.value}


def _result_to_dict(result: UpdateResult) -> dict:
    if not result.success:
        return _error(result.kind or FailureKind.STORE, result.error or "Unknown error")
    d = _task_to_dict(result.task) if result.task else {}
    if result.next_occurrence is not None:
        d["next_occurrence"] = _task_to_dict(result.next_occurrence)
    return d


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    return value if value else None


# ---------------------------------------------------------------------------
# Handler functions (shared by MCP tools and REST API)
# ---------------------------------------------------------------------------


def handle_task_list(
    engine,
    *,
    q: Optional[str] = None,
    completed: Optional[bool] = None,
    owner: Optional[str] = None,
    project: Optional[str] = None,
    stage: Optional[str] = None,
    priority: Optional[str] = None,
    tags: Optional[str] = None,
    file: Optional[str] = None,
    search: Optional[str] = None,
    due: Optional[str] = None,
    due_date: Optional[str] = None,
    due_from: Optional[str] = None,
    due_to: Optional[str] = None,
    blocked: Optional[bool] = None,
    limit: int = 200,
) -> List[dict]:
    """
    Filter tasks. ``q`` is an operator query (``owner:John #urgent report``);
    explicit arguments override what the query sets. Raises ValueError for an
    unknown ``due`` preset.
    """
    cache = engine.cache
    options = parse_search_query(q, first_day=engine.settings.first_day_of_week) if q else TaskFilter()
    explicit = {
        "completed": completed,
        "owner": owner,
        "project": project,
        "stage": stage,
        "priority": priority,
        "path": file,
        "search": search,
        "due": due,
        "due_date": due_date,
        "due_from": due_from,
        "due_to": due_to,
    }
    for name, value in explicit.items():
        if value is not None and value != "":
            setattr(options, name, value)
    if tags:
        options.tags = list(dict.fromkeys(options.tags + [t.lstrip("#").lower() for t in parse_list(tags)]))

    # Blocked state is not indexed; filter after the query and apply the limit here.
    options.limit = None if blocked is not None else limit
    tasks = cache.filter_tasks(options)
    if blocked is not None:
        index = cache.reference_index()
        all_tasks = cache.all_tasks()
        tasks = [t for t in tasks if resolver.resolve_status(t, all_tasks, index).is_blocked == blocked]
        tasks = tasks[:limit]
    return [_task_to_dict(t) for t in tasks]


def handle_task_get(engine, *, task_id: str) -> dict:
    task = engine.get_task(task_id)
    if task is None:
        return _error(FailureKind.NOT_FOUND, f"Task '{task_id}' not found")
    result = _task_to_dict(task, engine.cache.task_index())
    status = engine.dependency_status(task_id)
    result["is_blocked"] = status.is_blocked
    return result


async def handle_task_add(
    engine,
    *,
    text: str,
    file_path: Optional[str] = None,
    owner: Optional[str] = None,
    due: Optional[str] = None,
    project: Optional[str] = None,
    stage: Optional[str] = None,
    priority: Optional[str] = None,
    tags: Optional[str] = None,
    recurrence: Optional[str] = None,
    estimate: Optional[str] = None,
    at_line: Optional[int] = None,
) -> dict:
    """Add a task to ``file_path``, or to today's daily note when no path is given."""
    options = CreateOptions(
        owner=_blank_to_none(owner),
        due_date=_blank_to_none(due),
        project=_blank_to_none(project),
        stage=_blank_to_none(stage),
        priority=_blank_to_none(priority),
        tags=parse_list(tags),
        recurrence=_blank_to_none(recurrence),
        estimate=_blank_to_none(estimate),
    )
    if file_path:
        result = await engine.create(file_path, text, options, at_line)
    else:
        result = await engine.add_to_daily_note(text, options)
    return _result_to_dict(result)


async def handle_task_update(
    engine,
    *,
    task_id: str,
    text: Optional[str] = None,
    completed: Optional[bool] = None,
    owner: Optional[str] = None,
    due: Optional[str] = None,
    project: Optional[str] = None,
    stage: Optional[str] = None,
    priority: Optional[str] = None,
    tags: Optional[str] = None,
    recurrence: Optional[str] = None,
    estimate: Optional[str] = None,
    logged: Optional[str] = None,
    blocked_by: Optional[str] = None,
    blocks: Optional[str] = None,
) -> dict:
    """
    Only arguments that are not None are changed; an empty string clears the
    field. ``tags``, ``blocked_by`` and ``blocks`` replace the whole list.
    """
    changes: Dict[str, Any] = {}
    if text is not None:
        changes["text"] = text
    if completed is not None:
        changes["completed"] = completed
    fields = {
        "owner": owner,
        "due_date": due,
        "project": project,
        "stage": stage,
        "priority": priority,
        "recurrence": recurrence,
        "estimate": estimate,
        "time_logged": logged,
    }
    for name, value in fields.items():
        if value is not None:
            changes[name] = value or None
    for name, value in (("tags", tags), ("blocked_by", blocked_by), ("blocks", blocks)):
        if value is not None:
            changes[name] = parse_list(value)

    if not changes:
        return _error(FailureKind.VALIDATION, "No changes given")
    return _result_to_dict(await engine.update(task_id, **changes))


async def handle_task_toggle(engine, *, task_id: str, stage: Optional[str] = None) -> dict:
    return _result_to_dict(await engine.toggle(task_id, _blank_to_none(stage)))


async def handle_task_delete(engine, *, task_id: str) -> dict:
    result = await engine.delete(task_id)
    if not result.success:
        return _result_to_dict(result)
    return {"deleted": task_id}


def handle_task_dependencies(engine, *, task_id: str) -> dict:
    task = engine.get_task(task_id)
    if task is None:
        return _error(FailureKind.NOT_FOUND, f"Task '{task_id}' not found")

    cache = engine.cache
    index = cache.reference_index()
    all_tasks = cache.all_tasks()
    status = resolver.resolve_status(task, all_tasks, index)
    return {
        "task_id": task.id,
        "text": task.text,
        "is_blocked": status.is_blocked,
        "blocked_by": [_summary(index.get(i), i) for i in status.blocked_by_tasks],
        "blocks": [_summary(index.get(i), i) for i in status.blocks_tasks],
        "unresolved": list(status.unresolved),
        "cycle": resolver.detect_cycle(task, all_tasks, index),
        "would_unblock": [t.id for t in resolver.tasks_unblocked_by(task, all_tasks, index)],
    }


def handle_task_stats(engine) -> dict:
    return asdict(engine.cache.task_stats())


def handle_values(engine, *, field: str) -> Union[dict, List[str]]:
    try:
        return engine.cache.unique_values(field)
    except ValueError as e:
        return _error(FailureKind.VALIDATION, str(e))


async def handle_undo(engine) -> dict:
    result = await engine.undo()
    if not result.success:
        return _result_to_dict(result)
    return {"undone": True, "task": _task_to_dict(result.task) if result.task else None}


async def handle_refresh(engine) -> dict:
    result = await engine.refresh()
    if not result.success:
        return _result_to_dict(result)
    return engine.status()


def handle_cache_status(engine) -> dict:
    return engine.status()


# ---------------------------------------------------------------------------
# MCP registration
# ---------------------------------------------------------------------------


def register_task_tools(mcp: FastMCP, engine) -> None:
    """Register task tools with the FastMCP server."""

    @mcp.tool()
    def task_list(
        query: Optional[str] = None,
        completed: Optional[bool] = False,
        owner: Optional[str] = None,
        project: Optional[str] = None,
        stage: Optional[str] = None,
        priority: Optional[str] = None,
        tags: Optional[str] = None,
        file: Optional[str] = None,
        due: Optional[str] = None,
        blocked: Optional[bool] = None,
        limit: int = 200,
    ) -> str:
        """
        List tasks with optional filters.

        Args:
            query: Operator query, e.g. "owner:John due:thisweek #urgent report"
            completed: False (default) for open tasks, True for done, null for both
            owner: Exact owner name
            project: Exact project name
            stage: Requested, Staged, In-Progress, In-Review, Completed or a custom stage
            priority: high, medium or low
            tags: Comma-separated tags; every tag must be present
            file: Substring of the document path
            due: today, this_week, overdue or none
            blocked: True for blocked tasks only, False for ready tasks only
            limit: Maximum number of results (default 200)

        Returns:
            JSON array of task objects
        """
        try:
            return json.dumps(
                handle_task_list(
                    engine,
                    q=query,
                    completed=completed,
                    owner=owner,
                    project=project,
                    stage=stage,
                    priority=priority,
                    tags=tags,
                    file=file,
                    due=due,
                    blocked=blocked,
                    limit=limit,
                ),
                indent=2,
            )
        except ValueError as e:
            return json.dumps({"error": str(e)})

    @mcp.tool()
    def task_get(task_id: str) -> str:
        """
        Get a single task by ID with nested subtasks.

        Args:
            task_id: Task ID in the form "<path>:<line>", e.g. "projects/launch.md:12"

        Returns:
            JSON task object, or error message
        """
        return json.dumps(handle_task_get(engine, task_id=task_id), indent=2)

    @mcp.tool()
    async def task_add(
        text: str,
        file_path: Optional[str] = None,
        owner: Optional[str] = None,
        due: Optional[str] = None,
        project: Optional[str] = None,
        stage: Optional[str] = None,
        priority: Optional[str] = None,
        tags: Optional[str] = None,
        recurrence: Optional[str] = None,
        estimate: Optional[str] = None,
        at_line: Optional[int] = None,
    ) -> str:
        """
        Add a new task. The line is stamped with [created:<today>].

        Args:
            text: Task description
            file_path: Target document relative to the vault; omit to use today's daily note
            owner: Owner name
            due: Due date (ISO date or natural language: "friday", "in 3 days", "eom")
            project: Project name
            stage: Workflow stage
            priority: high, medium or low
            tags: Comma-separated tags
            recurrence: Repeat rule, e.g. "weekly", "every 2 weeks", "every mon,thu"
            estimate: Time estimate (e.g. "2h", "30m", "1d4h")
            at_line: 0-based line to insert at (default: end of document)

        Returns:
            JSON object with the new task
        """
        return json.dumps(
            await handle_task_add(
                engine,
                text=text,
                file_path=file_path,
                owner=owner,
                due=due,
                project=project,
                stage=stage,
                priority=priority,
                tags=tags,
                recurrence=recurrence,
                estimate=estimate,
                at_line=at_line,
            ),
            indent=2,
        )

    @mcp.tool()
    async def task_update(
        task_id: str,
        text: Optional[str] = None,
        completed: Optional[bool] = None,
        owner: Optional[str] = None,
        due: Optional[str] = None,
        project: Optional[str] = None,
        stage: Optional[str] = None,
        priority: Optional[str] = None,
        tags: Optional[str] = None,
        recurrence: Optional[str] = None,
        estimate: Optional[str] = None,
        logged: Optional[str] = None,
        blocked_by: Optional[str] = None,
        blocks: Optional[str] = None,
    ) -> str:
        """
        Update task fields.

        Only fields you pass will be changed. Pass an empty string to clear a field.
        Fails with kind "conflict" if the line was edited since the last refresh.

        Args:
            task_id: The task ID to update
            text: New description
            completed: Mark done (True) or open (False)
            owner: New owner
            due: New due date (ISO date, natural language, or "" to clear)
            project: New project
            stage: New stage; "Completed" also ticks the checkbox
            priority: high, medium or low
            tags: Comma-separated tags (replaces existing tags)
            recurrence: Repeat rule (or "" to clear)
            estimate: Time estimate (or "" to clear)
            logged: Time logged (or "" to clear)
            blocked_by: Comma-separated refs like "roadmap:4" (replaces the list)
            blocks: Comma-separated refs (replaces the list)

        Returns:
            Updated task JSON or error message
        """
        return json.dumps(
            await handle_task_update(
                engine,
                task_id=task_id,
                text=text,
                completed=completed,
                owner=owner,
                due=due,
                project=project,
                stage=stage,
                priority=priority,
                tags=tags,
                recurrence=recurrence,
                estimate=estimate,
                logged=logged,
                blocked_by=blocked_by,
                blocks=blocks,
            ),
            indent=2,
        )

    @mcp.tool()
    async def task_toggle(task_id: str, stage: Optional[str] = None) -> str:
        """
        Toggle a task between open and done.

        Completing a recurring task creates its next occurrence.

        Args:
            task_id: The task ID
            stage: Stage to set instead of the default
        """
        return json.dumps(await handle_task_toggle(engine, task_id=task_id, stage=stage), indent=2)

    @mcp.tool()
    async def task_delete(task_id: str) -> str:
        """
        Delete a task line. Line numbers of later tasks in the same document shift.

        Args:
            task_id: The task ID
        """
        return json.dumps(await handle_task_delete(engine, task_id=task_id), indent=2)

    @mcp.tool()
    def task_dependencies(task_id: str) -> str:
        """
        Show blocking relationships for a task.

        Returns what blocks this task, what it blocks, unresolved references,
        any dependency cycle through it, and which tasks completing it would unblock.

        Args:
            task_id: The task ID to inspect
        """
        return json.dumps(handle_task_dependencies(engine, task_id=task_id), indent=2)

    @mcp.tool()
    def task_stats() -> str:
        """
        Task statistics: totals, overdue, due today/this week, and counts by
        stage, owner, project and priority.
        """
        return json.dumps(handle_task_stats(engine), indent=2)

    @mcp.tool()
    async def task_undo() -> str:
        """Undo the most recent task edit."""
        return json.dumps(await handle_undo(engine), indent=2)

    @mcp.tool()
    def cache_status() -> str:
        """
        Show task cache statistics.

        Returns:
            JSON with document and task counts, cache hits/misses, parse failures, last refresh time
        """
        return json.dumps(handle_cache_status(engine), indent=2)
