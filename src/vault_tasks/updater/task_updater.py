"""
Writes task edits back into their documents.

Every edit follows the same steps:
1. Validate the requested field values (nothing is read or written on failure)
2. Re-read the document and check the task's line still equals ``raw_line``
3. Render the new line through utils.formatting
4. Push an UndoEntry, then write the whole document in a single call

Failures come back as UpdateResult values tagged with a FailureKind:
VALIDATION (bad input), CONFLICT (the line changed underneath us; refresh
and retry), STORE (read/write failed). No exception crosses this boundary.
"""

import logging
import re
import time
from collections import deque
from dataclasses import replace
from datetime import date
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional, TypeVar

from vault_tasks.config import EngineSettings
from vault_tasks.constants import COMPLETED_STAGE, DEFAULT_RECURRING_STAGE
from vault_tasks.daily_notes import daily_note_path, daily_note_template, task_insert_position
from vault_tasks.errors import StaleTaskError, StoreError, ValidationError, VaultTasksError
from vault_tasks.models.results import BulkResult, CreateOptions, FailureKind, UpdateResult
from vault_tasks.models.task import Recurrence, Task, UndoEntry
from vault_tasks.parsers.task_parser import parse_line, parse_recurrence, split_lines
from vault_tasks.store.base import DocumentStore
from vault_tasks.updater.recurrence import next_occurrence_date
from vault_tasks.utils import dates
from vault_tasks.utils.formatting import render_task_line
from vault_tasks.utils.text import sanitize_task_text
from vault_tasks.utils.validation import (
    validate_date,
    validate_line_index,
    validate_line_length,
    validate_owner,
    validate_priority,
    validate_project,
    validate_stage,
    validate_tags,
    validate_task_text,
)

log = logging.getLogger(__name__)

T = TypeVar("T")

EDITABLE_FIELDS = frozenset({
    "text",
    "completed",
    "due_date",
    "owner",
    "project",
    "stage",
    "priority",
    "tags",
    "recurrence",
    "estimate",
    "time_logged",
    "blocked_by",
    "blocks",
    "completed_date",
    "created_date",
})

DEPENDENCY_KINDS = {"blocked-by": "blocked_by", "blocks": "blocks"}

_REFERENCE = re.compile(r"^[^,\[\]]+:\d+$")


def _join(lines: List[str]) -> str:
    return "\n".join(lines)


def coerce_date(value: Optional[str], today: date, first_day: int = 0) -> Optional[str]:
    """Accept ISO or natural-language dates ("tomorrow", "next friday")."""
    if value is None or not str(value).strip():
        return None
    parsed = dates.parse_date(str(value), ref=today, first_day=first_day)
    return validate_date(parsed or str(value))


def _coerce_duration(value: Optional[str], name: str) -> Optional[str]:
    if value is None or not str(value).strip():
        return None
    normalized = dates.parse_duration(str(value))
    if normalized is None:
        raise ValidationError(f"Invalid {name} duration: {value}")
    return normalized


def _coerce_recurrence(value: Any) -> Optional[Recurrence]:
    if value is None or value == "":
        return None
    if isinstance(value, Recurrence):
        return value
    rule = parse_recurrence(str(value).strip())
    if rule is None:
        raise ValidationError(f"Unrecognised recurrence rule: {value}")
    return rule


def _coerce_refs(value: Optional[Iterable[str]]) -> List[str]:
    if isinstance(value, str):
        value = value.split(",")
    refs: List[str] = []
    for ref in value or ():
        ref = ref.strip()
        if not ref:
            continue
        if not _REFERENCE.match(ref):
            raise ValidationError(f"Invalid task reference: {ref} (expected <note>:<line>)")
        if ref not in refs:
            refs.append(ref)
    return refs


class TaskUpdater:
    """
    Usage:
        updater = TaskUpdater(store, settings)
        result = await updater.update(task, priority="high")
        if not result.success and result.kind == FailureKind.CONFLICT:
            ...  # refresh the cache and retry
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[EngineSettings] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self._store = store
        self._settings = settings or EngineSettings()
        self._today = today or dates.today
        self._undo: Deque[UndoEntry] = deque(maxlen=self._settings.max_undo_entries)

    # ------------------------------------------------------------------
    # Undo stack
    # ------------------------------------------------------------------

    def can_undo(self) -> bool:
        return bool(self._undo)

    def clear_undo(self) -> None:
        self._undo.clear()

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    def undo_entries(self) -> List[UndoEntry]:
        """Undo history, most recent first."""
        return list(reversed(self._undo))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _fail(self, kind: FailureKind, error: Exception) -> UpdateResult:
        log.warning("Task edit failed (%s): %s", kind.value, error)
        return UpdateResult.fail(kind, str(error))

    def _parse(self, line: str, path: str, index: int) -> Optional[Task]:
        return parse_line(
            line,
            path,
            index,
            self._settings.custom_stages,
            self._settings.metadata_delimiter,
        )

    def _render(self, task: Task) -> str:
        return validate_line_length(render_task_line(task, self._settings.metadata_delimiter))

    async def _store_call(self, action: str, path: str, method: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Await a store call; anything it raises other than our own errors becomes StoreError."""
        try:
            return await method(*args)
        except VaultTasksError:
            raise
        except Exception as e:
            raise StoreError(f"Could not {action} {path}: {e}") from e

    async def _read_lines(self, path: str) -> List[str]:
        content = await self._store_call("read", path, self._store.read, path)
        return split_lines(content) if content else []

    async def _read_checked(self, task: Task) -> List[str]:
        lines = await self._read_lines(task.path)
        if task.line_index >= len(lines) or lines[task.line_index] != task.raw_line:
            raise StaleTaskError(
                f"Task at {task.path}:{task.line_index} was modified since it was read; refresh and try again"
            )
        return lines

    async def _commit(self, path: str, lines: List[str], entry: UndoEntry, create: bool = False) -> None:
        """Record ``entry`` and write the document; the entry is dropped if the write fails."""
        self._undo.append(entry)
        try:
            if create:
                await self._store_call("create", path, self._store.create, path, _join(lines) + "\n")
            else:
                await self._store_call("write", path, self._store.write, path, _join(lines))
        except Exception:
            if self._undo and self._undo[-1] is entry:
                self._undo.pop()
            raise

    def _normalize_changes(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown task fields: {', '.join(sorted(unknown))}")

        today = self._today()
        first_day = self._settings.first_day_of_week
        result: Dict[str, Any] = {}
        for name, value in changes.items():
            if name == "text":
                result[name] = sanitize_task_text(validate_task_text(value))
            elif name == "completed":
                result[name] = bool(value)
            elif name in ("due_date", "completed_date", "created_date"):
                result[name] = coerce_date(value, today, first_day)
            elif name == "owner":
                result[name] = validate_owner(value)
            elif name == "project":
                result[name] = validate_project(value)
            elif name == "stage":
                result[name] = validate_stage(value, self._settings.custom_stages)
            elif name == "priority":
                result[name] = validate_priority(value)
            elif name == "tags":
                result[name] = validate_tags(value)
            elif name == "recurrence":
                result[name] = _coerce_recurrence(value)
            elif name in ("estimate", "time_logged"):
                result[name] = _coerce_duration(value, name.replace("_", " "))
            else:
                result[name] = _coerce_refs(value)
        return result

    def _merge(self, task: Task, changes: Dict[str, Any]) -> Task:
        """
        Apply normalized changes, keeping completion and stage consistent:
        completing sets stage Completed and stamps [done:]; reopening clears a
        Completed stage; setting a stage flips the checkbox to match it.
        """
        changes = dict(changes)
        completed = changes.pop("completed", task.completed)

        if "stage" in changes and "completed" not in changes:
            stage = changes["stage"]
            if stage == COMPLETED_STAGE:
                completed = True
            elif task.completed and stage is not None:
                completed = False

        if completed and not task.completed:
            changes.setdefault("stage", COMPLETED_STAGE)
            changes.setdefault("completed_date", self._today().isoformat())
        elif not completed and task.completed:
            if "stage" not in changes and task.stage == COMPLETED_STAGE:
                changes["stage"] = None
            changes.setdefault("completed_date", None)

        if completed and changes.get("stage", task.stage) not in (None, COMPLETED_STAGE):
            raise ValidationError(f"A completed task can only have stage {COMPLETED_STAGE}")

        return replace(task, completed=completed, **changes)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update(self, task: Task, **changes: Any) -> UpdateResult:
        """
        Apply field changes to ``task``'s line.

        Completing a recurring task also appends its next occurrence to the
        same document (unless the rule's end date has passed).
        """
        try:
            normalized = self._normalize_changes(changes)
            updated = self._merge(task, normalized)
            new_line = self._render(updated)

            next_due = None
            rolls_forward = (
                updated.completed
                and not task.completed
                and updated.recurrence is not None
                and self._settings.recurring_auto_create
            )
            if rolls_forward:
                # Counted from the occurrence being completed, not the edited one.
                following = next_occurrence_date(task.due_date, updated.recurrence, self._today())
                next_due = following.isoformat() if following else None

            lines = await self._read_checked(task)
            lines[task.line_index] = new_line
            entry = UndoEntry(task.path, task.line_index, task.raw_line, new_line, time.time())
            await self._commit(task.path, lines, entry)
        except ValidationError as e:
            return self._fail(FailureKind.VALIDATION, e)
        except StaleTaskError as e:
            return self._fail(FailureKind.CONFLICT, e)
        except StoreError as e:
            return self._fail(FailureKind.STORE, e)

        result_task = self._parse(new_line, task.path, task.line_index)
        next_task = None
        if next_due is not None:
            next_task = await self._create_next_occurrence(updated, next_due)
        elif rolls_forward:
            log.info("Recurrence for %s ended; no next occurrence created", task.id)
        return UpdateResult.ok(result_task, next_task)

    async def _create_next_occurrence(self, task: Task, due_date: str) -> Optional[Task]:
        options = CreateOptions(
            owner=task.owner,
            due_date=due_date,
            project=task.project,
            stage=DEFAULT_RECURRING_STAGE,
            priority=task.priority,
            tags=list(task.tags),
            recurrence=task.recurrence.raw if task.recurrence else None,
            estimate=task.estimate,
        )
        result = await self.create(task.path, task.text, options)
        if not result.success:
            log.warning("Could not create next occurrence of %s: %s", task.id, result.error)
            return None
        log.info("Created next occurrence of %s due %s", task.id, due_date)
        return result.task

    async def toggle(self, task: Task, stage: Optional[str] = None) -> UpdateResult:
        """Flip completion; ``stage`` overrides the stage the toggle would set."""
        changes: Dict[str, Any] = {"completed": not task.completed}
        if stage is not None:
            changes["stage"] = stage
        return await self.update(task, **changes)

    async def set_stage(self, task: Task, stage: Optional[str]) -> UpdateResult:
        return await self.update(task, stage=stage)

    async def add_dependency(self, task: Task, ref: str, kind: str = "blocked-by") -> UpdateResult:
        field_name = DEPENDENCY_KINDS.get(kind)
        if field_name is None:
            return self._fail(FailureKind.VALIDATION, ValidationError(f"Unknown dependency kind: {kind}"))
        refs = list(getattr(task, field_name))
        if ref.strip() not in refs:
            refs.append(ref.strip())
        return await self.update(task, **{field_name: refs})

    async def remove_dependency(self, task: Task, ref: str, kind: str = "blocked-by") -> UpdateResult:
        field_name = DEPENDENCY_KINDS.get(kind)
        if field_name is None:
            return self._fail(FailureKind.VALIDATION, ValidationError(f"Unknown dependency kind: {kind}"))
        refs = [r for r in getattr(task, field_name) if r != ref.strip()]
        return await self.update(task, **{field_name: refs})

    # ------------------------------------------------------------------
    # Create / delete
    # ------------------------------------------------------------------

    def _new_task(self, path: str, text: str, options: Optional[CreateOptions]) -> Task:
        options = options or CreateOptions()
        today = self._today()
        return Task(
            path=path,
            line_index=0,
            text=sanitize_task_text(validate_task_text(text)),
            raw_line="",
            owner=validate_owner(options.owner),
            due_date=coerce_date(options.due_date, today, self._settings.first_day_of_week),
            project=validate_project(options.project),
            stage=validate_stage(options.stage, self._settings.custom_stages),
            priority=validate_priority(options.priority),
            tags=validate_tags(options.tags),
            recurrence=_coerce_recurrence(options.recurrence),
            estimate=_coerce_duration(options.estimate, "estimate"),
            created_date=today.isoformat(),
        )

    @staticmethod
    def _append_position(lines: List[str]) -> int:
        """End of the document, keeping a trailing newline last."""
        if lines and lines[-1] == "":
            return len(lines) - 1
        return len(lines)

    async def _insert(self, path: str, lines: List[str], index: int, task: Task, exists: bool) -> UpdateResult:
        new_line = self._render(replace(task, line_index=index))
        lines.insert(index, new_line)
        entry = UndoEntry(path, index, None, new_line, time.time())
        await self._commit(path, lines, entry, create=not exists)
        return UpdateResult.ok(self._parse(new_line, path, index))

    async def create(
        self,
        path: str,
        text: str,
        options: Optional[CreateOptions] = None,
        at_line: Optional[int] = None,
    ) -> UpdateResult:
        """
        Insert a new task line, creating the document if needed.

        ``at_line`` may range from 0 to the document's line count; anything
        else is rejected without writing. Without it the task is appended.
        """
        try:
            task = self._new_task(path, text, options)
            exists = await self._store_call("check", path, self._store.exists, path)
            lines = await self._read_lines(path) if exists else []
            if at_line is not None:
                index = validate_line_index(at_line, len(lines), allow_end=True)
            else:
                index = self._append_position(lines)
            return await self._insert(path, lines, index, task, exists)
        except ValidationError as e:
            return self._fail(FailureKind.VALIDATION, e)
        except StoreError as e:
            return self._fail(FailureKind.STORE, e)

    async def add_to_daily_note(
        self,
        day: date,
        text: str,
        options: Optional[CreateOptions] = None,
    ) -> UpdateResult:
        """
        Add a task under the tasks heading of ``day``'s daily note, creating
        the note from its template if needed. A note without the heading gets
        it appended first.
        """
        path = daily_note_path(day, self._settings)
        heading = self._settings.daily_note_tasks_heading
        try:
            task = self._new_task(path, text, options)
            if not await self._store_call("check", path, self._store.exists, path):
                template = daily_note_template(day, self._settings)
                await self._store_call("create", path, self._store.create, path, template)
            lines = await self._read_lines(path)
            index = task_insert_position(lines, heading)
            if index is None:
                while lines and lines[-1].strip() == "":
                    lines.pop()
                if lines:
                    lines.append("")
                lines.extend([heading, ""])
                index = len(lines) - 1
            return await self._insert(path, lines, index, task, exists=True)
        except ValidationError as e:
            return self._fail(FailureKind.VALIDATION, e)
        except StoreError as e:
            return self._fail(FailureKind.STORE, e)

    async def delete(self, task: Task) -> UpdateResult:
        """Remove the task's line. Later lines in the document shift up by one."""
        try:
            lines = await self._read_checked(task)
            del lines[task.line_index]
            entry = UndoEntry(task.path, task.line_index, task.raw_line, None, time.time())
            await self._commit(task.path, lines, entry)
        except StaleTaskError as e:
            return self._fail(FailureKind.CONFLICT, e)
        except StoreError as e:
            return self._fail(FailureKind.STORE, e)
        return UpdateResult.ok(task)

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def bulk_update(self, tasks: Iterable[Task], **changes: Any) -> BulkResult:
        result = BulkResult()
        for task in tasks:
            outcome = await self.update(task, **changes)
            if outcome.success:
                result.successful += 1
            else:
                result.failed += 1
                result.errors.append(f"{task.id}: {outcome.error}")
        return result

    async def bulk_delete(self, tasks: Iterable[Task]) -> BulkResult:
        """Delete bottom-up within each document so earlier indices stay valid."""
        result = BulkResult()
        ordered = sorted(tasks, key=lambda t: (t.path, -t.line_index))
        for task in ordered:
            outcome = await self.delete(task)
            if outcome.success:
                result.successful += 1
            else:
                result.failed += 1
                result.errors.append(f"{task.id}: {outcome.error}")
        return result

    # ------------------------------------------------------------------
    # Undo
    # ------------------------------------------------------------------

    async def undo(self) -> UpdateResult:
        """
        Reverse the most recent edit.

        The target line must still hold what the edit wrote; otherwise the
        entry is discarded with a CONFLICT. A STORE failure keeps the entry
        so the undo can be retried.
        """
        if not self._undo:
            return UpdateResult.fail(FailureKind.NOT_FOUND, "Nothing to undo")

        entry = self._undo.pop()
        index = entry.line_index
        try:
            lines = await self._read_lines(entry.path)
            if entry.is_delete:
                if index > len(lines):
                    raise StaleTaskError(f"Cannot restore line {index} of {entry.path}; the document is shorter")
                lines.insert(index, entry.original_line)
                restored: Optional[str] = entry.original_line
            else:
                if index >= len(lines) or lines[index] != entry.new_line:
                    raise StaleTaskError(f"Line {index} of {entry.path} changed since the edit; cannot undo")
                if entry.is_insert:
                    del lines[index]
                    restored = None
                else:
                    lines[index] = entry.original_line
                    restored = entry.original_line
            await self._store_call("write", entry.path, self._store.write, entry.path, _join(lines))
        except StaleTaskError as e:
            return self._fail(FailureKind.CONFLICT, e)
        except StoreError as e:
            self._undo.append(entry)
            return self._fail(FailureKind.STORE, e)

        log.info("Undid edit of %s:%d", entry.path, index)
        task = self._parse(restored, entry.path, index) if restored is not None else None
        return UpdateResult.ok(task)
