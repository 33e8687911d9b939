"""
Text helpers: sanitising user input and indentation arithmetic.
"""

import re
from typing import Optional

from vault_tasks.constants import VALIDATION_LIMITS


def clean_text(text: str) -> str:
    """Neutralise characters that would be read back as line metadata."""
    return (
        text.replace("**", "")
        .replace("|", "-")
        .replace(":", "-")
        .replace("[", "(")
        .replace("]", ")")
        .replace("\n", " ")
        .replace("\r", "")
        .strip()
    )


def sanitize_owner(owner: Optional[str]) -> Optional[str]:
    if not owner:
        return None
    cleaned = re.sub(r"<[^>]*>", "", owner)
    cleaned = re.sub(r"[^\w\s\-.']", "", cleaned).strip()
    return cleaned[: VALIDATION_LIMITS["max_owner_length"]] or None


def sanitize_project(project: Optional[str]) -> Optional[str]:
    if not project:
        return None
    cleaned = re.sub(r"[^\w\s\-_]", "", project).strip()
    return cleaned[: VALIDATION_LIMITS["max_project_length"]] or None


def sanitize_task_text(text: str) -> str:
    """Collapse a task description onto one line."""
    cleaned = re.sub(r"\s+", " ", text.replace("\r", "")).strip()
    return cleaned[: VALIDATION_LIMITS["max_task_text_length"]]


def indent_depth(indent: str) -> int:
    """Nesting level of a leading-whitespace run (2 spaces per level, tab = 2)."""
    return len(indent.replace("\t", "  ")) // 2


def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Anchored regex for a glob where ``*`` is any run and ``?`` one character."""
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(f"^{escaped}$")
