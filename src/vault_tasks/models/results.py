"""
Result values returned by the updater and engine.

Validation, concurrency and store failures are reported as data so callers
can tell "refresh and try again" apart from "fix your input".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from vault_tasks.models.task import Task


class FailureKind(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    STORE = "store"
    NOT_FOUND = "not_found"


@dataclass
class UpdateResult:
    success: bool
    error: Optional[str] = None
    kind: Optional[FailureKind] = None
    task: Optional[Task] = None
    next_occurrence: Optional[Task] = None

    @classmethod
    def ok(cls, task: Optional[Task] = None, next_occurrence: Optional[Task] = None) -> UpdateResult:
        return cls(success=True, task=task, next_occurrence=next_occurrence)

    @classmethod
    def fail(cls, kind: FailureKind, error: str) -> UpdateResult:
        return cls(success=False, error=error, kind=kind)


@dataclass
class BulkResult:
    successful: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class CreateOptions:
    """Optional fields for a newly created task."""

    owner: Optional[str] = None
    due_date: Optional[str] = None
    project: Optional[str] = None
    stage: Optional[str] = None
    priority: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    recurrence: Optional[str] = None
    estimate: Optional[str] = None
