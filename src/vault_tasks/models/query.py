"""
Query and statistics models for the task cache.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

DUE_PRESETS = ("today", "this_week", "overdue", "none")


@dataclass
class TaskFilter:
    """
    Filter options for TaskCache.filter_tasks.

    Unset fields do not constrain the result. ``tags`` requires every listed
    tag; ``path`` and ``search`` are case-insensitive substring matches
    (``search`` looks at text, owner and project). ``due`` is one of
    DUE_PRESETS; ``due_from`` / ``due_to`` bound an inclusive range.
    """

    completed: Optional[bool] = None
    owner: Optional[str] = None
    project: Optional[str] = None
    stage: Optional[str] = None
    priority: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    path: Optional[str] = None
    search: Optional[str] = None
    due: Optional[str] = None
    due_date: Optional[str] = None
    due_from: Optional[str] = None
    due_to: Optional[str] = None
    limit: Optional[int] = None


@dataclass
class TaskStats:
    total: int = 0
    completed: int = 0
    active: int = 0
    overdue: int = 0
    due_today: int = 0
    due_this_week: int = 0
    by_stage: Dict[str, int] = field(default_factory=dict)
    by_owner: Dict[str, int] = field(default_factory=dict)
    by_project: Dict[str, int] = field(default_factory=dict)
    by_priority: Dict[str, int] = field(default_factory=dict)


@dataclass
class CacheStats:
    total_documents: int = 0
    cached_documents: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0
    incomplete_tasks: int = 0
    hits: int = 0
    misses: int = 0
    failures: int = 0
    last_refresh: Optional[datetime] = None
