from .task import (
    CacheEntry,
    DependencyStatus,
    Recurrence,
    Task,
    UndoEntry,
    document_basename,
    make_short_ref,
    make_task_id,
)
from .results import BulkResult, CreateOptions, FailureKind, UpdateResult
from .query import DUE_PRESETS, CacheStats, TaskFilter, TaskStats

__all__ = [
    "Task",
    "Recurrence",
    "CacheEntry",
    "UndoEntry",
    "DependencyStatus",
    "document_basename",
    "make_short_ref",
    "make_task_id",
    "UpdateResult",
    "BulkResult",
    "CreateOptions",
    "FailureKind",
    "TaskFilter",
    "TaskStats",
    "CacheStats",
    "DUE_PRESETS",
]
