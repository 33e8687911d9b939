"""
Parser for checklist task lines.

Main API:
    parse_line(raw_line, path, line_index)  → Optional[Task]
    parse_document(content, path)          → List[Task]

A line is a task when it matches ``<indent>- [ |x|X] <content>``. Inline
bracket tags are extracted first, in a fixed order, each removed from the
working text before the next runs; whatever remains may start with a
``**field | field:**`` block whose fields are classified by shape. The
inverse lives in utils.formatting.render_task_line.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from vault_tasks.constants import COMPLETED_STAGE, DAY_NAMES, DAY_NAMES_SHORT, PRIORITIES, RECURRENCE_TYPES
from vault_tasks.errors import ValidationError
from vault_tasks.models.task import Recurrence, Task, make_short_ref
from vault_tasks.utils.text import indent_depth
from vault_tasks.utils.validation import valid_stages, validate_date, validate_owner, validate_project

log = logging.getLogger(__name__)

TASK_LINE = re.compile(r"^(\s*)-\s+\[([ xX])\]\s+(.+)$")
METADATA_BLOCK = re.compile(r"^\*\*(.+?):\*\*\s*(.*)$")
DATE_WITH_PREFIX = re.compile(r"^(?:Due\s+)?(\d{4}-\d{2}-\d{2})$", re.IGNORECASE)

DONE_TAG = re.compile(r"\[done:(\d{4}-\d{2}-\d{2})\]")
CREATED_TAG = re.compile(r"\[created:(\d{4}-\d{2}-\d{2})\]")
PRIORITY_TAG = re.compile(r"\[priority:(high|medium|low)\]", re.IGNORECASE)
REPEAT_TAG = re.compile(r"\[repeat:([^\]]+)\]", re.IGNORECASE)
BLOCKED_BY_TAG = re.compile(r"\[blocked-by:([^\]]+)\]")
BLOCKS_TAG = re.compile(r"\[blocks:([^\]]+)\]")
ESTIMATE_TAG = re.compile(r"\[estimate:([^\]]+)\]")
LOGGED_TAG = re.compile(r"\[logged:([^\]]+)\]")
HASHTAG = re.compile(r"(?<!\S)#([\w\-]+)")
WIKI_LINK = re.compile(r"\[\[.*?\]\]")

_INTERVAL_RULE = re.compile(r"^every\s+(\d+)\s+(day|days|week|weeks|month|months|year|years)$")
_DAY_WORD = "(?:" + "|".join(DAY_NAMES + DAY_NAMES_SHORT) + ")"
_DAYS_RULE = re.compile(rf"^every\s+({_DAY_WORD}(?:\s*,\s*{_DAY_WORD})*)$")
_UNTIL_SUFFIX = re.compile(r"^(.*?)\s+until\s+(\d{4}-\d{2}-\d{2})$")
_UNIT_TYPES = {"day": "daily", "week": "weekly", "month": "monthly", "year": "yearly"}


@dataclass
class ParsedMetadata:
    owner: Optional[str] = None
    due_date: Optional[str] = None
    stage: Optional[str] = None
    project: Optional[str] = None
    priority: Optional[str] = None
    completed_date: Optional[str] = None
    created_date: Optional[str] = None
    recurrence: Optional[Recurrence] = None
    estimate: Optional[str] = None
    time_logged: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)
    blocks: List[str] = field(default_factory=list)


def _unique(items: Sequence[str]) -> List[str]:
    seen: List[str] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def short_ref_for(path: str, line_index: int) -> str:
    return make_short_ref(path, line_index)


# ---------------------------------------------------------------------------
# Recurrence rules
# ---------------------------------------------------------------------------

def _day_number(word: str) -> Optional[int]:
    word = word.strip().lower()
    for i, (full, short) in enumerate(zip(DAY_NAMES, DAY_NAMES_SHORT)):
        if word in (full, short):
            return i
    return None


def parse_recurrence(rule: str) -> Optional[Recurrence]:
    """
    Parse the text of a ``[repeat:...]`` tag.

    Accepted forms: ``daily|weekly|monthly|yearly|custom``, ``every N days``
    (or weeks/months/years), ``every mon,wed,fri``, ``weekdays``,
    ``weekends``. Any of them may end in ``until YYYY-MM-DD``. Returns None
    for anything else.
    """
    text = re.sub(r"\s+", " ", rule.strip().lower())
    end_date = None
    until = _UNTIL_SUFFIX.match(text)
    if until:
        text = until.group(1)
        try:
            end_date = validate_date(until.group(2))
        except ValidationError:
            return None

    if text in RECURRENCE_TYPES:
        return Recurrence(type=text, raw=rule, end_date=end_date)

    m = _INTERVAL_RULE.match(text)
    if m:
        unit = m.group(2).rstrip("s")
        return Recurrence(type=_UNIT_TYPES[unit], raw=rule, interval=int(m.group(1)), end_date=end_date)

    m = _DAYS_RULE.match(text)
    if m:
        days = [_day_number(d) for d in m.group(1).split(",")]
        return Recurrence(
            type="weekly",
            raw=rule,
            days_of_week=tuple(d for d in days if d is not None),
            end_date=end_date,
        )

    if text == "weekdays":
        return Recurrence(type="weekly", raw=rule, days_of_week=(1, 2, 3, 4, 5), end_date=end_date)
    if text == "weekends":
        return Recurrence(type="weekly", raw=rule, days_of_week=(0, 6), end_date=end_date)

    return None


# ---------------------------------------------------------------------------
# Inline tags and metadata block
# ---------------------------------------------------------------------------

def _split_refs(value: str) -> List[str]:
    return [ref.strip() for ref in value.split(",") if ref.strip()]


def _extract_hashtags(text: str) -> Tuple[str, List[str]]:
    """
    Remove hashtags from ``text``.

    Wiki-links are masked with equal-length spaces first so ``[[Note#Heading]]``
    is not read as a tag, and positions stay aligned with the original text.
    """
    masked = WIKI_LINK.sub(lambda m: " " * len(m.group()), text)
    tags: List[str] = []
    pieces: List[str] = []
    last = 0
    for m in HASHTAG.finditer(masked):
        tags.append(m.group(1).lower())
        pieces.append(text[last:m.start()])
        last = m.end()
    pieces.append(text[last:])
    return "".join(pieces), tags


def extract_inline_metadata(text: str) -> Tuple[str, ParsedMetadata]:
    """
    Strip inline tags from ``text``; returns (remaining text, metadata).

    Every copy of a single-valued tag is removed and the first one wins.
    """
    meta = ParsedMetadata()

    m = DONE_TAG.search(text)
    if m:
        meta.completed_date = m.group(1)
        text = DONE_TAG.sub("", text)

    m = CREATED_TAG.search(text)
    if m:
        meta.created_date = m.group(1)
        text = CREATED_TAG.sub("", text)

    m = PRIORITY_TAG.search(text)
    if m:
        meta.priority = m.group(1).lower()
        text = PRIORITY_TAG.sub("", text)

    def _take_repeat(m: re.Match) -> str:
        recurrence = parse_recurrence(m.group(1))
        # Unrecognised rules stay in the text so a rewrite keeps them.
        if recurrence is None:
            return m.group()
        if meta.recurrence is None:
            meta.recurrence = recurrence
        return ""

    text = REPEAT_TAG.sub(_take_repeat, text)

    for m in BLOCKED_BY_TAG.finditer(text):
        meta.blocked_by.extend(_split_refs(m.group(1)))
    text = BLOCKED_BY_TAG.sub("", text)

    for m in BLOCKS_TAG.finditer(text):
        meta.blocks.extend(_split_refs(m.group(1)))
    text = BLOCKS_TAG.sub("", text)

    m = ESTIMATE_TAG.search(text)
    if m:
        meta.estimate = m.group(1).strip()
        text = ESTIMATE_TAG.sub("", text)

    m = LOGGED_TAG.search(text)
    if m:
        meta.time_logged = m.group(1).strip()
        text = LOGGED_TAG.sub("", text)

    text, tags = _extract_hashtags(text)
    meta.tags = _unique(tags)
    meta.blocked_by = _unique(meta.blocked_by)
    meta.blocks = _unique(meta.blocks)

    return re.sub(r"\s+", " ", text).strip(), meta


def _valid_or_none(validator, value: str) -> Optional[str]:
    try:
        return validator(value)
    except ValidationError:
        return None


def _classify_date(part: str) -> Optional[str]:
    m = DATE_WITH_PREFIX.match(part)
    if not m:
        return None
    return _valid_or_none(validate_date, m.group(1))


def parse_metadata_block(block: str, custom_stages: Sequence[str] = (), delimiter: str = "|") -> ParsedMetadata:
    """
    Classify the fields of a ``**...:**`` block.

    With the delimiter present every field is tried as date, stage, priority,
    then owner (first free field) and project (second). A single value is
    tried as date, stage, priority, owner; the first match wins.
    """
    meta = ParsedMetadata()
    stages = valid_stages(custom_stages)

    if delimiter not in block:
        value = block.strip()
        due = _classify_date(value)
        if due:
            meta.due_date = due
        elif value in stages:
            meta.stage = value
        elif value.lower() in PRIORITIES:
            meta.priority = value.lower()
        else:
            meta.owner = _valid_or_none(validate_owner, value)
        return meta

    parts = [p.strip() for p in block.split(delimiter) if p.strip()]
    for part in parts:
        if DATE_WITH_PREFIX.match(part):
            meta.due_date = _classify_date(part) or meta.due_date
            continue
        if part in stages:
            meta.stage = part
            continue
        if part.lower() in PRIORITIES:
            meta.priority = part.lower()
            continue
        if not meta.owner:
            owner = _valid_or_none(validate_owner, part)
            if owner:
                meta.owner = owner
                continue
        if not meta.project:
            meta.project = _valid_or_none(validate_project, part)
    return meta


# ---------------------------------------------------------------------------
# Main parse API
# ---------------------------------------------------------------------------

def parse_line(
    raw_line: str,
    path: str,
    line_index: int,
    custom_stages: Sequence[str] = (),
    delimiter: str = "|",
) -> Optional[Task]:
    """
    Parse one document line into a Task, or None if it is not a checklist line.

    Inline tag values win over block values for the same field; tags and
    dependency references from both are unioned.
    """
    m = TASK_LINE.match(raw_line)
    if not m:
        return None

    indent = m.group(1)
    completed = m.group(2).lower() == "x"
    text, inline = extract_inline_metadata(m.group(3))

    block = ParsedMetadata()
    block_match = METADATA_BLOCK.match(text)
    if block_match:
        block = parse_metadata_block(block_match.group(1).strip(), custom_stages, delimiter)
        text = block_match.group(2).strip()

    stage = block.stage
    if completed and stage and stage != COMPLETED_STAGE:
        stage = COMPLETED_STAGE

    return Task(
        path=path,
        line_index=line_index,
        text=text,
        raw_line=raw_line,
        completed=completed,
        indent=indent,
        depth=indent_depth(indent),
        due_date=block.due_date,
        completed_date=inline.completed_date,
        created_date=inline.created_date,
        owner=block.owner,
        project=block.project,
        stage=stage,
        priority=inline.priority or block.priority,
        tags=_unique(inline.tags + block.tags),
        recurrence=inline.recurrence,
        estimate=inline.estimate,
        time_logged=inline.time_logged,
        blocked_by=_unique(inline.blocked_by + block.blocked_by),
        blocks=_unique(inline.blocks + block.blocks),
    )


def split_lines(content: str) -> List[str]:
    """Split document content on ``\\n`` only, keeping any ``\\r``."""
    return content.split("\n")


def parse_document(
    content: str,
    path: str,
    custom_stages: Sequence[str] = (),
    delimiter: str = "|",
) -> List[Task]:
    """
    Parse every line of a document.

    A line that fails to parse is logged and skipped; the rest of the
    document is still parsed.
    """
    tasks: List[Task] = []
    for index, line in enumerate(split_lines(content)):
        try:
            task = parse_line(line, path, index, custom_stages, delimiter)
        except Exception:
            log.debug("Skipping unparseable line %s:%d", path, index, exc_info=True)
            continue
        if task is not None:
            tasks.append(task)
    return tasks
