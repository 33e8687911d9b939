"""
Core task data models.

A Task is one parsed checklist line. ``raw_line`` keeps the exact source text
so the updater can verify a line is unchanged before rewriting it; every other
field is derived from that line by parsers.task_parser, and
utils.formatting defines the canonical rendering back to text.

Hierarchy links are stored as task ids (``parent_id`` / ``children``) rather
than object references, so a snapshot of tasks is an arena keyed by id.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import List, Optional, Tuple

from vault_tasks.utils.dates import duration_to_minutes


def document_basename(path: str) -> str:
    """File name of a document path without its extension."""
    return PurePosixPath(path.replace("\\", "/")).stem


def make_task_id(path: str, line_index: int) -> str:
    return f"{path}:{line_index}"


def make_short_ref(path: str, line_index: int) -> str:
    """Short dependency reference ``<basename>:<line>`` for a location."""
    return f"{document_basename(path)}:{line_index}"


@dataclass(frozen=True)
class Recurrence:
    """
    Rule describing how a completed task regenerates.

    ``days_of_week`` uses Sunday = 0 … Saturday = 6. ``raw`` is the rule text
    exactly as written inside ``[repeat:...]``.
    """

    type: str
    raw: str
    interval: Optional[int] = None
    days_of_week: Optional[Tuple[int, ...]] = None
    end_date: Optional[str] = None


@dataclass
class Task:
    """
    A single checklist item parsed from a document line.
    """

    path: str
    line_index: int
    text: str
    raw_line: str
    completed: bool = False
    indent: str = ""
    depth: int = 0
    due_date: Optional[str] = None
    completed_date: Optional[str] = None
    created_date: Optional[str] = None
    owner: Optional[str] = None
    project: Optional[str] = None
    stage: Optional[str] = None
    priority: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    recurrence: Optional[Recurrence] = None
    estimate: Optional[str] = None
    time_logged: Optional[str] = None
    blocked_by: List[str] = field(default_factory=list)
    blocks: List[str] = field(default_factory=list)
    parent_id: Optional[str] = None
    children: List[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        """Composite identity ``<path>:<line_index>``."""
        return make_task_id(self.path, self.line_index)

    @property
    def basename(self) -> str:
        return document_basename(self.path)

    @property
    def short_ref(self) -> str:
        """Reference authors type in ``[blocked-by:...]`` / ``[blocks:...]``."""
        return make_short_ref(self.path, self.line_index)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def has_structured_fields(self) -> bool:
        """True if the line needs a ``**...:**`` metadata block."""
        return any((self.owner, self.due_date, self.stage, self.project))

    @property
    def estimate_minutes(self) -> Optional[int]:
        return duration_to_minutes(self.estimate or "")

    @property
    def logged_minutes(self) -> Optional[int]:
        return duration_to_minutes(self.time_logged or "")


@dataclass
class CacheEntry:
    """Tasks parsed from one document and the mtime they were derived from."""

    path: str
    tasks: List[Task]
    mtime: float


@dataclass(frozen=True)
class UndoEntry:
    """
    One reversible line edit.

    ``new_line`` is None for a deleted line, ``original_line`` is None for an
    inserted one.
    """

    path: str
    line_index: int
    original_line: Optional[str]
    new_line: Optional[str]
    timestamp: float

    @property
    def is_delete(self) -> bool:
        return self.new_line is None

    @property
    def is_insert(self) -> bool:
        return self.original_line is None


@dataclass(frozen=True)
class DependencyStatus:
    """Blocking state of one task within one task universe."""

    is_blocked: bool
    blocked_by_tasks: Tuple[str, ...] = ()
    blocks_tasks: Tuple[str, ...] = ()
    unresolved: Tuple[str, ...] = ()

    @property
    def blocked_by_count(self) -> int:
        return len(self.blocked_by_tasks)

    @property
    def blocks_count(self) -> int:
        return len(self.blocks_tasks)
