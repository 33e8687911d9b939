"""
Per-document task cache with an in-memory SQLite query index.

Design:
    Entries        - Dict[str, CacheEntry]   (tasks parsed from one document + its mtime)
    Snapshot       - List[Task] / Dict[str, Task] rebuilt from all entries
    Reference index - ReferenceIndex over the snapshot (short refs, reverse edges)
    SQLite :memory: - tasks + task_tags tables (filtered queries)

A refresh pass re-parses only documents whose mtime changed, builds the new
entry map on the side and swaps it in once the pass is complete, so readers
never see a half-refreshed snapshot. A document that fails to read or parse
is logged and contributes no tasks until a later refresh succeeds.

The cache is owned by one event loop and is not re-entrant: callers must not
start a refresh while another is in flight. Queries may come from worker
threads (sync REST routes), so SQLite access goes through _db_lock.
"""

import logging
import sqlite3
import threading
from collections import Counter
from dataclasses import replace
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Set

from vault_tasks.config import EngineSettings
from vault_tasks.constants import PRIORITIES
from vault_tasks.dependencies.resolver import ReferenceIndex
from vault_tasks.errors import StoreError, VaultTasksError
from vault_tasks.models.query import DUE_PRESETS, CacheStats, TaskFilter, TaskStats
from vault_tasks.models.task import CacheEntry, Task
from vault_tasks.parsers.hierarchy import build_hierarchy
from vault_tasks.parsers.search_query import parse_search_query
from vault_tasks.parsers.task_parser import parse_document
from vault_tasks.store.base import DocumentStore
from vault_tasks.utils import dates
from vault_tasks.utils.text import glob_to_regex
from vault_tasks.utils.validation import valid_stages

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# SQLite schema
# ---------------------------------------------------------------------------

_CREATE_TASKS_TABLE = """
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    path TEXT NOT NULL,
    path_lc TEXT NOT NULL,
    line_index INTEGER NOT NULL,
    text_lc TEXT NOT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    owner TEXT,
    owner_lc TEXT,
    project TEXT,
    project_lc TEXT,
    stage TEXT,
    priority TEXT,
    due_date TEXT,
    parent_id TEXT
);
"""

_CREATE_TAGS_TABLE = """
CREATE TABLE IF NOT EXISTS task_tags (
    task_id TEXT NOT NULL,
    tag TEXT NOT NULL
);
"""

_CREATE_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_tasks_due ON tasks (due_date);
CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks (owner, completed);
CREATE INDEX IF NOT EXISTS idx_task_tags ON task_tags (tag, task_id);
"""

SUGGESTION_FIELDS = ("owner", "project", "priority", "tag")
VALUE_FIELDS = ("owners", "projects", "due_dates", "tags")


def _task_to_row(task: Task) -> dict:
    return {
        "id": task.id,
        "path": task.path,
        "path_lc": task.path.lower(),
        "line_index": task.line_index,
        "text_lc": task.text.lower(),
        "completed": 1 if task.completed else 0,
        "owner": task.owner,
        "owner_lc": task.owner.lower() if task.owner else None,
        "project": task.project,
        "project_lc": task.project.lower() if task.project else None,
        "stage": task.stage,
        "priority": task.priority,
        "due_date": task.due_date,
        "parent_id": task.parent_id,
    }


class TaskCache:
    """
    Usage:
        cache = TaskCache(store, settings)
        await cache.refresh_all()
        cache.filter_tasks(TaskFilter(owner="John"))
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
        self._entries: Dict[str, CacheEntry] = {}
        self._tasks: List[Task] = []
        self._by_id: Dict[str, Task] = {}
        self._roots: List[Task] = []
        self._ref_index = ReferenceIndex(())
        self._excluded_patterns = [glob_to_regex(p) for p in self._settings.excluded_patterns]
        self._excluded_folders = [
            f.replace("\\", "/").strip("/") for f in self._settings.excluded_folders if f.strip("/\\")
        ]
        self._hits = 0
        self._misses = 0
        self._failures = 0
        self._known: Set[str] = set()
        self._last_refresh: Optional[datetime] = None
        self._db_lock = threading.Lock()
        self._db = sqlite3.connect(":memory:", check_same_thread=False)
        self._db.row_factory = sqlite3.Row
        self._db.executescript(_CREATE_TASKS_TABLE + _CREATE_TAGS_TABLE + _CREATE_INDEXES)

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Inclusion policy
    # ------------------------------------------------------------------

    def is_eligible(self, path: str) -> bool:
        normalized = path.replace("\\", "/")
        if not normalized.endswith(self._settings.document_extension):
            return False

        folder = normalized.rsplit("/", 1)[0] if "/" in normalized else ""
        for excluded in self._excluded_folders:
            if folder == excluded or folder.startswith(excluded + "/"):
                return False

        return not any(p.match(normalized) for p in self._excluded_patterns)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def _load(self, path: str, mtime: float) -> Optional[CacheEntry]:
        try:
            content = await self._store.read(path)
            tasks = parse_document(
                content,
                path,
                self._settings.custom_stages,
                self._settings.metadata_delimiter,
            )
        except Exception:
            log.exception("Failed to parse %s", path)
            self._failures += 1
            return None
        return CacheEntry(path=path, tasks=tasks, mtime=mtime)

    async def refresh_all(self) -> None:
        """
        Re-scan every eligible document, re-parsing only those whose mtime
        changed. Store listing failures propagate; per-document failures do not.
        """
        try:
            listed = await self._store.list_documents()
        except VaultTasksError:
            raise
        except Exception as e:
            raise StoreError(f"Could not list documents: {e}") from e
        docs = [d for d in listed if self.is_eligible(d.path)]
        entries: Dict[str, CacheEntry] = {}
        hits = misses = 0

        for doc in docs:
            cached = self._entries.get(doc.path)
            if cached is not None and cached.mtime == doc.mtime:
                log.debug("Cache hit: %s", doc.path)
                entries[doc.path] = cached
                hits += 1
                continue

            log.debug("Cache miss: %s", doc.path)
            misses += 1
            entry = await self._load(doc.path, doc.mtime)
            if entry is not None:
                entries[doc.path] = entry

        dropped = set(self._entries) - {d.path for d in docs}
        if dropped:
            log.debug("Dropping %d documents no longer in the store", len(dropped))

        self._hits += hits
        self._misses += misses
        self._known = {d.path for d in docs}
        self._entries = entries
        self._rebuild()
        self._last_refresh = datetime.now()
        log.info(
            "Refreshed %d documents (%d cached, %d parsed): %d tasks",
            len(docs),
            hits,
            misses,
            len(self._tasks),
        )

    async def refresh_one(self, path: str) -> None:
        """Re-parse a single document and splice its entry into the snapshot."""
        if not self.is_eligible(path):
            self.remove_document(path)
            return

        try:
            info = await self._store.stat(path)
        except VaultTasksError:
            raise
        except Exception as e:
            raise StoreError(f"Could not stat {path}: {e}") from e
        if info is None:
            self.remove_document(path)
            return

        self._misses += 1
        entry = await self._load(path, info.mtime)
        entries = dict(self._entries)
        if entry is None:
            entries.pop(path, None)
        else:
            entries[path] = entry
        self._known.add(path)
        self._entries = entries
        self._rebuild()

    def remove_document(self, path: str) -> None:
        self._known.discard(path)
        if path not in self._entries:
            return
        entries = dict(self._entries)
        del entries[path]
        self._entries = entries
        self._rebuild()
        log.debug("Removed %s from cache", path)

    async def rename_document(self, old_path: str, new_path: str) -> None:
        """
        Move a cache entry to its new path. Tasks get new ids; the document is
        not re-read. A rename into an excluded location drops the entry.
        """
        old = self._entries.get(old_path)
        if old is None:
            self._known.discard(old_path)
            await self.refresh_one(new_path)
            return

        entries = dict(self._entries)
        del entries[old_path]
        self._known.discard(old_path)
        if self.is_eligible(new_path):
            tasks = [replace(t, path=new_path, parent_id=None, children=[]) for t in old.tasks]
            entries[new_path] = CacheEntry(path=new_path, tasks=tasks, mtime=old.mtime)
            self._known.add(new_path)
        self._entries = entries
        self._rebuild()
        log.debug("Renamed %s -> %s in cache", old_path, new_path)

    def _rebuild(self) -> None:
        tasks: List[Task] = []
        for path in sorted(self._entries):
            tasks.extend(self._entries[path].tasks)

        self._roots = build_hierarchy(tasks)
        self._tasks = tasks
        self._by_id = {t.id: t for t in tasks}
        self._ref_index = ReferenceIndex(tasks)

        with self._db_lock, self._db:
            self._db.execute("DELETE FROM tasks")
            self._db.execute("DELETE FROM task_tags")
            self._db.executemany(
                """
                INSERT INTO tasks
                (id, path, path_lc, line_index, text_lc, completed, owner, owner_lc,
                 project, project_lc, stage, priority, due_date, parent_id)
                VALUES
                (:id, :path, :path_lc, :line_index, :text_lc, :completed, :owner, :owner_lc,
                 :project, :project_lc, :stage, :priority, :due_date, :parent_id)
                """,
                [_task_to_row(t) for t in tasks],
            )
            self._db.executemany(
                "INSERT INTO task_tags (task_id, tag) VALUES (?, ?)",
                [(t.id, tag) for t in tasks for tag in t.tags],
            )

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    def all_tasks(self) -> List[Task]:
        return list(self._tasks)

    def root_tasks(self) -> List[Task]:
        return list(self._roots)

    def get_task(self, task_id: str) -> Optional[Task]:
        return self._by_id.get(task_id)

    def tasks_for_document(self, path: str) -> List[Task]:
        entry = self._entries.get(path)
        return list(entry.tasks) if entry else []

    def entry(self, path: str) -> Optional[CacheEntry]:
        return self._entries.get(path)

    def children_of(self, task: Task) -> List[Task]:
        return [self._by_id[c] for c in task.children if c in self._by_id]

    def reference_index(self) -> ReferenceIndex:
        return self._ref_index

    def task_index(self) -> Dict[str, Task]:
        return self._by_id

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def filter_tasks(self, options: Optional[TaskFilter] = None) -> List[Task]:
        """
        Query the snapshot through the SQLite index.

        Results are ordered by (path, line_index).
        """
        options = options or TaskFilter()
        clauses = []
        params: list = []

        if options.completed is not None:
            clauses.append("completed = ?")
            params.append(1 if options.completed else 0)

        for column in ("owner", "project", "stage", "priority"):
            value = getattr(options, column)
            if value:
                clauses.append(f"{column} = ?")
                params.append(value)

        for tag in options.tags:
            clauses.append("id IN (SELECT task_id FROM task_tags WHERE tag = ?)")
            params.append(tag.lstrip("#").lower())

        if options.path:
            clauses.append("instr(path_lc, ?) > 0")
            params.append(options.path.lower())

        if options.search:
            needle = options.search.lower()
            clauses.append(
                "(instr(text_lc, ?) > 0 OR instr(coalesce(owner_lc, ''), ?) > 0"
                " OR instr(coalesce(project_lc, ''), ?) > 0)"
            )
            params.extend([needle, needle, needle])

        if options.due:
            if options.due not in DUE_PRESETS:
                raise ValueError(f"Unknown due filter: {options.due}")
            today = self._today()
            if options.due == "today":
                clauses.append("due_date = ?")
                params.append(today.isoformat())
            elif options.due == "this_week":
                first = self._settings.first_day_of_week
                clauses.append("due_date BETWEEN ? AND ?")
                params.append(dates.start_of_week(today, first).isoformat())
                params.append(dates.end_of_week(today, first).isoformat())
            elif options.due == "overdue":
                clauses.append("due_date < ?")
                params.append(today.isoformat())
            else:
                clauses.append("due_date IS NULL")

        if options.due_date:
            clauses.append("due_date = ?")
            params.append(options.due_date)
        if options.due_from:
            clauses.append("due_date >= ?")
            params.append(options.due_from)
        if options.due_to:
            clauses.append("due_date <= ?")
            params.append(options.due_to)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT id FROM tasks {where} ORDER BY path, line_index LIMIT ?"
        params.append(options.limit if options.limit is not None else -1)

        with self._db_lock:
            rows = self._db.execute(sql, params).fetchall()
        return [self._by_id[row["id"]] for row in rows if row["id"] in self._by_id]

    def search(self, query: str, limit: Optional[int] = None) -> List[Task]:
        """Run an operator query such as ``owner:John due:overdue #urgent``."""
        options = parse_search_query(query, ref=self._today(), first_day=self._settings.first_day_of_week)
        options.limit = limit
        return self.filter_tasks(options)

    def task_stats(self, today: Optional[date] = None) -> TaskStats:
        today = today or self._today()
        first = self._settings.first_day_of_week
        stats = TaskStats(total=len(self._tasks))
        stats.by_stage = {stage: 0 for stage in valid_stages(self._settings.custom_stages)}
        stats.by_stage["unassigned"] = 0
        stats.by_priority = {p: 0 for p in PRIORITIES}

        for task in self._tasks:
            if task.completed:
                stats.completed += 1
            else:
                stats.active += 1
                if dates.is_overdue(task.due_date, today):
                    stats.overdue += 1
                if dates.is_due_today(task.due_date, today):
                    stats.due_today += 1
                if dates.is_due_this_week(task.due_date, today, first):
                    stats.due_this_week += 1

            if task.stage in stats.by_stage:
                stats.by_stage[task.stage] += 1
            else:
                stats.by_stage["unassigned"] += 1

            if task.owner:
                stats.by_owner[task.owner] = stats.by_owner.get(task.owner, 0) + 1
            if task.project:
                stats.by_project[task.project] = stats.by_project.get(task.project, 0) + 1
            if task.priority:
                stats.by_priority[task.priority] += 1

        return stats

    def cache_stats(self) -> CacheStats:
        completed = sum(1 for t in self._tasks if t.completed)
        return CacheStats(
            total_documents=len(self._known),
            cached_documents=len(self._entries),
            total_tasks=len(self._tasks),
            completed_tasks=completed,
            incomplete_tasks=len(self._tasks) - completed,
            hits=self._hits,
            misses=self._misses,
            failures=self._failures,
            last_refresh=self._last_refresh,
        )

    # ------------------------------------------------------------------
    # Distinct values and suggestions
    # ------------------------------------------------------------------

    def unique_owners(self) -> List[str]:
        return sorted({t.owner for t in self._tasks if t.owner})

    def unique_projects(self) -> List[str]:
        return sorted({t.project for t in self._tasks if t.project})

    def unique_due_dates(self) -> List[str]:
        return sorted({t.due_date for t in self._tasks if t.due_date})

    def unique_tags(self) -> List[str]:
        return sorted({tag for t in self._tasks for tag in t.tags})

    def unique_values(self, field: str) -> List[str]:
        if field not in VALUE_FIELDS:
            raise ValueError(f"Unknown field: {field}. Expected one of {', '.join(VALUE_FIELDS)}")
        return getattr(self, f"unique_{field}")()

    def suggest(self, field: str, project: Optional[str] = None, limit: int = 5) -> List[dict]:
        """
        Most frequent values of ``field`` across the snapshot.

        With ``project`` set, only tasks in that project are counted.
        """
        if field not in SUGGESTION_FIELDS:
            raise ValueError(f"Unknown field: {field}. Expected one of {', '.join(SUGGESTION_FIELDS)}")
        counts: Counter = Counter()
        for task in self._tasks:
            if project and task.project != project:
                continue
            if field == "tag":
                counts.update(task.tags)
            else:
                value = getattr(task, field)
                if value:
                    counts[value] += 1
        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return [{"value": value, "count": count} for value, count in ranked[:limit]]

    # ------------------------------------------------------------------
    # Status / diagnostics
    # ------------------------------------------------------------------

    def status(self) -> dict:
        stats = self.cache_stats()
        return {
            "documents_indexed": stats.cached_documents,
            "documents_seen": stats.total_documents,
            "tasks_indexed": stats.total_tasks,
            "completed_tasks": stats.completed_tasks,
            "incomplete_tasks": stats.incomplete_tasks,
            "cache_hits": stats.hits,
            "cache_misses": stats.misses,
            "parse_failures": stats.failures,
            "last_refresh": stats.last_refresh.isoformat() if stats.last_refresh else None,
            "excluded_folders": list(self._excluded_folders),
            "excluded_patterns": list(self._settings.excluded_patterns),
        }
