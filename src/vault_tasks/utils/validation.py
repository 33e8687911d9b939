"""
Field validation for task edits.

Each ``validate_*`` returns the sanitised value (None for an absent optional
value) and raises ValidationError with a readable reason otherwise. The
updater runs every supplied field through these before touching a document.
"""

import re
from typing import Iterable, List, Optional, Sequence

from vault_tasks.constants import PRIORITIES, STAGES, VALIDATION_LIMITS
from vault_tasks.errors import ValidationError
from vault_tasks.utils.dates import parse_iso_date

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
OWNER_PATTERN = re.compile(r"^[\w\s\-.']+$")
PROJECT_PATTERN = re.compile(r"^[\w\s\-_]+$")
TAG_PATTERN = re.compile(r"^[\w\-]+$")


def _blank(value: Optional[str]) -> bool:
    return value is None or value.strip() == ""


def validate_date(value: Optional[str]) -> Optional[str]:
    if _blank(value):
        return None
    trimmed = value.strip()
    if not DATE_PATTERN.match(trimmed):
        raise ValidationError("Date must be in YYYY-MM-DD format")
    if parse_iso_date(trimmed) is None:
        raise ValidationError(f"Invalid date value: {trimmed}")
    return trimmed


def validate_task_text(text: Optional[str]) -> str:
    if text is None:
        raise ValidationError("Task text is required")
    trimmed = text.strip()
    if not trimmed:
        raise ValidationError("Task text cannot be empty")
    limit = VALIDATION_LIMITS["max_task_text_length"]
    if len(trimmed) > limit:
        raise ValidationError(f"Task text exceeds maximum length of {limit} characters")
    return trimmed


def validate_owner(owner: Optional[str]) -> Optional[str]:
    if _blank(owner):
        return None
    trimmed = owner.strip()
    limit = VALIDATION_LIMITS["max_owner_length"]
    if len(trimmed) > limit:
        raise ValidationError(f"Owner name exceeds maximum length of {limit} characters")
    if not OWNER_PATTERN.match(trimmed):
        raise ValidationError("Owner name contains invalid characters")
    return trimmed


def validate_project(project: Optional[str]) -> Optional[str]:
    if _blank(project):
        return None
    trimmed = project.strip()
    limit = VALIDATION_LIMITS["max_project_length"]
    if len(trimmed) > limit:
        raise ValidationError(f"Project name exceeds maximum length of {limit} characters")
    if not PROJECT_PATTERN.match(trimmed):
        raise ValidationError("Project name contains invalid characters")
    return trimmed


def valid_stages(custom_stages: Iterable[str] = ()) -> List[str]:
    stages = list(STAGES)
    stages.extend(s for s in custom_stages if s not in stages)
    return stages


def validate_stage(stage: Optional[str], custom_stages: Sequence[str] = ()) -> Optional[str]:
    if _blank(stage):
        return None
    trimmed = stage.strip()
    stages = valid_stages(custom_stages)
    if trimmed not in stages:
        raise ValidationError(f"Invalid stage. Valid stages are: {', '.join(stages)}")
    return trimmed


def validate_priority(priority: Optional[str]) -> Optional[str]:
    if _blank(priority):
        return None
    lowered = priority.strip().lower()
    if lowered not in PRIORITIES:
        raise ValidationError(f"Invalid priority. Valid priorities are: {', '.join(PRIORITIES)}")
    return lowered


def validate_line_index(index, line_count: int, allow_end: bool = False) -> int:
    """
    Bounds-check a line index.

    With ``allow_end`` the index may equal ``line_count`` (append position).
    """
    if isinstance(index, bool) or not isinstance(index, int):
        raise ValidationError("Line number must be an integer")
    if index < 0:
        raise ValidationError("Line number cannot be negative")
    upper = line_count if allow_end else line_count - 1
    if index > upper:
        raise ValidationError(f"Line number {index} is out of range (document has {line_count} lines)")
    return index


def validate_tag(tag: Optional[str]) -> str:
    if _blank(tag):
        raise ValidationError("Tag cannot be empty")
    cleaned = tag.strip().lstrip("#").lower()
    limit = VALIDATION_LIMITS["max_tag_length"]
    if len(cleaned) > limit:
        raise ValidationError(f"Tag exceeds maximum length of {limit} characters")
    if not TAG_PATTERN.match(cleaned):
        raise ValidationError(f"Tag contains invalid characters: {tag}")
    return cleaned


def validate_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Validate a tag collection; returns de-duplicated, lower-cased tags in order."""
    result: List[str] = []
    for tag in tags or ():
        cleaned = validate_tag(tag)
        if cleaned not in result:
            result.append(cleaned)
    limit = VALIDATION_LIMITS["max_tags_count"]
    if len(result) > limit:
        raise ValidationError(f"Too many tags (maximum {limit})")
    return result


def validate_line_length(line: str) -> str:
    limit = VALIDATION_LIMITS["max_line_length"]
    if len(line) > limit:
        raise ValidationError(f"Task line exceeds maximum length of {limit} characters")
    return line
