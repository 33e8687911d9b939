"""
TaskEngine - the facade the REST API, MCP tools and watcher talk to.

It owns one TaskCache and one TaskUpdater over the same DocumentStore.
Every successful edit re-parses the touched document through
``TaskCache.refresh_one`` so the snapshot never lags behind the text.
Edits take a task id, look the task up in the current snapshot, and report
NOT_FOUND when it is gone.
"""

import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from vault_tasks.cache.task_cache import TaskCache
from vault_tasks.config import EngineSettings
from vault_tasks.dependencies import resolver
from vault_tasks.errors import StoreError
from vault_tasks.models.results import BulkResult, CreateOptions, FailureKind, UpdateResult
from vault_tasks.models.task import DependencyStatus, Task
from vault_tasks.store.base import DocumentEvent, DocumentStore, EventKind
from vault_tasks.updater.task_updater import TaskUpdater
from vault_tasks.utils import dates

log = logging.getLogger(__name__)


class TaskEngine:
    """
    Usage:
        engine = TaskEngine(FileSystemStore(root), EngineSettings.from_env())
        await engine.initialize()
        result = await engine.toggle("notes/todo.md:4")
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[EngineSettings] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.store = store
        self.settings = settings or EngineSettings()
        self._today = today or dates.today
        self.cache = TaskCache(store, self.settings, today=self._today)
        self.updater = TaskUpdater(store, self.settings, today=self._today)

    # ------------------------------------------------------------------
    # Lifecycle and change notifications
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        log.info("Loading tasks from document store")
        await self.cache.refresh_all()

    async def refresh(self) -> UpdateResult:
        try:
            await self.cache.refresh_all()
        except StoreError as e:
            log.warning("Refresh failed: %s", e)
            return UpdateResult.fail(FailureKind.STORE, str(e))
        return UpdateResult.ok()

    async def handle_event(self, event: DocumentEvent) -> None:
        """Route a store change notification to the matching cache operation."""
        log.debug("Document event %s: %s", event.kind.value, event.path)
        try:
            if event.kind in (EventKind.MODIFY, EventKind.CREATE):
                await self.cache.refresh_one(event.path)
            elif event.kind == EventKind.DELETE:
                self.cache.remove_document(event.path)
            elif event.kind == EventKind.RENAME:
                await self.cache.rename_document(event.old_path or event.path, event.path)
        except StoreError:
            log.exception("Failed to apply %s event for %s", event.kind.value, event.path)

    async def _refresh_after(self, result: UpdateResult, *paths: str) -> UpdateResult:
        if result.success:
            for path in dict.fromkeys(paths):
                try:
                    await self.cache.refresh_one(path)
                except StoreError:
                    log.exception("Failed to refresh %s after edit", path)
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.cache.get_task(task_id)

    def _lookup(self, task_id: str) -> Optional[Task]:
        task = self.cache.get_task(task_id)
        if task is None:
            log.debug("Task not found: %s", task_id)
        return task

    @staticmethod
    def _not_found(task_id: str) -> UpdateResult:
        return UpdateResult.fail(FailureKind.NOT_FOUND, f"Task not found: {task_id}")

    def dependency_status(self, task_id: str) -> Optional[DependencyStatus]:
        task = self.cache.get_task(task_id)
        if task is None:
            return None
        return resolver.resolve_status(task, self.cache.all_tasks(), self.cache.reference_index())

    def blocked_tasks(self) -> List[Task]:
        return resolver.get_blocked_tasks(self.cache.all_tasks(), self.cache.reference_index())

    def ready_tasks(self) -> List[Task]:
        return resolver.get_ready_tasks(self.cache.all_tasks(), self.cache.reference_index())

    def dependency_order(self, tasks: Optional[List[Task]] = None) -> List[Task]:
        all_tasks = self.cache.all_tasks()
        subset = tasks if tasks is not None else [t for t in all_tasks if not t.completed]
        return resolver.sort_by_dependency_order(subset, all_tasks, self.cache.reference_index())

    def find_cycles(self) -> List[List[str]]:
        """Distinct dependency cycles in the snapshot."""
        all_tasks = self.cache.all_tasks()
        index = self.cache.reference_index()
        cycles: List[List[str]] = []
        seen = set()
        for task in all_tasks:
            if not task.blocks and not index.dependents_of(task.id):
                continue
            cycle = resolver.detect_cycle(task, all_tasks, index)
            if cycle and frozenset(cycle) not in seen:
                seen.add(frozenset(cycle))
                cycles.append(cycle)
        return cycles

    def unblocked_by(self, task_id: str) -> List[Task]:
        task = self.cache.get_task(task_id)
        if task is None:
            return []
        return resolver.tasks_unblocked_by(task, self.cache.all_tasks(), self.cache.reference_index())

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    async def update(self, task_id: str, **changes: Any) -> UpdateResult:
        task = self._lookup(task_id)
        if task is None:
            return self._not_found(task_id)
        return await self._refresh_after(await self.updater.update(task, **changes), task.path)

    async def toggle(self, task_id: str, stage: Optional[str] = None) -> UpdateResult:
        task = self._lookup(task_id)
        if task is None:
            return self._not_found(task_id)
        return await self._refresh_after(await self.updater.toggle(task, stage), task.path)

    async def set_stage(self, task_id: str, stage: Optional[str]) -> UpdateResult:
        task = self._lookup(task_id)
        if task is None:
            return self._not_found(task_id)
        return await self._refresh_after(await self.updater.set_stage(task, stage), task.path)

    async def add_dependency(self, task_id: str, ref: str, kind: str = "blocked-by") -> UpdateResult:
        task = self._lookup(task_id)
        if task is None:
            return self._not_found(task_id)
        return await self._refresh_after(await self.updater.add_dependency(task, ref, kind), task.path)

    async def remove_dependency(self, task_id: str, ref: str, kind: str = "blocked-by") -> UpdateResult:
        task = self._lookup(task_id)
        if task is None:
            return self._not_found(task_id)
        return await self._refresh_after(await self.updater.remove_dependency(task, ref, kind), task.path)

    async def create(
        self,
        path: str,
        text: str,
        options: Optional[CreateOptions] = None,
        at_line: Optional[int] = None,
    ) -> UpdateResult:
        result = await self.updater.create(path, text, options, at_line)
        return await self._refresh_after(result, path)

    async def add_to_daily_note(
        self,
        text: str,
        options: Optional[CreateOptions] = None,
        day: Optional[date] = None,
    ) -> UpdateResult:
        result = await self.updater.add_to_daily_note(day or self._today(), text, options)
        paths = [result.task.path] if result.success and result.task else []
        return await self._refresh_after(result, *paths)

    async def delete(self, task_id: str) -> UpdateResult:
        task = self._lookup(task_id)
        if task is None:
            return self._not_found(task_id)
        return await self._refresh_after(await self.updater.delete(task), task.path)

    def _resolve_many(self, task_ids: List[str], result: BulkResult) -> List[Task]:
        tasks = []
        for task_id in task_ids:
            task = self.cache.get_task(task_id)
            if task is None:
                result.failed += 1
                result.errors.append(f"Task not found: {task_id}")
            else:
                tasks.append(task)
        return tasks

    async def bulk_update(self, task_ids: List[str], **changes: Any) -> BulkResult:
        missing = BulkResult()
        tasks = self._resolve_many(task_ids, missing)
        result = await self.updater.bulk_update(tasks, **changes)
        for path in {t.path for t in tasks}:
            await self.cache.refresh_one(path)
        result.failed += missing.failed
        result.errors = missing.errors + result.errors
        return result

    async def bulk_delete(self, task_ids: List[str]) -> BulkResult:
        missing = BulkResult()
        tasks = self._resolve_many(task_ids, missing)
        result = await self.updater.bulk_delete(tasks)
        for path in {t.path for t in tasks}:
            await self.cache.refresh_one(path)
        result.failed += missing.failed
        result.errors = missing.errors + result.errors
        return result

    async def undo(self) -> UpdateResult:
        entries = self.updater.undo_entries()
        path = entries[0].path if entries else None
        result = await self.updater.undo()
        return await self._refresh_after(result, *([path] if path else []))

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        status = self.cache.status()
        status["undo_depth"] = self.updater.undo_depth
        return status
