"""
Operator search queries.

    owner:John due:thisweek priority:high #urgent quarterly report

Recognised operators are ``owner:``, ``project:``, ``stage:``,
``priority:``, ``due:``, ``file:``, ``tag:`` and bare ``#tag``. Words left
over become the free-text search.
"""

import re
from datetime import date
from typing import Optional

from vault_tasks.models.query import TaskFilter
from vault_tasks.utils.dates import parse_date

_OPERATORS = {
    "owner": re.compile(r"\bowner:(\S+)", re.IGNORECASE),
    "project": re.compile(r"\bproject:(\S+)", re.IGNORECASE),
    "stage": re.compile(r"\bstage:(\S+)", re.IGNORECASE),
    "priority": re.compile(r"\bpriority:(high|medium|low)\b", re.IGNORECASE),
    "due": re.compile(r"\bdue:(\S+)", re.IGNORECASE),
    "path": re.compile(r"\bfile:(\S+)", re.IGNORECASE),
}
_TAG_OPERATOR = re.compile(r"\btag:(\S+)", re.IGNORECASE)
_HASHTAG = re.compile(r"(?<!\S)#([\w\-]+)")

_DUE_KEYWORDS = {
    "today": "today",
    "thisweek": "this_week",
    "overdue": "overdue",
    "none": "none",
}


def parse_search_query(query: str, ref: Optional[date] = None, first_day: int = 0) -> TaskFilter:
    result = TaskFilter()
    remaining = query or ""

    for name, pattern in _OPERATORS.items():
        m = pattern.search(remaining)
        if not m:
            continue
        remaining = remaining[:m.start()] + remaining[m.end():]
        value = m.group(1)
        if name == "priority":
            result.priority = value.lower()
        elif name == "due":
            keyword = _DUE_KEYWORDS.get(value.lower())
            if keyword:
                result.due = keyword
            else:
                result.due_date = parse_date(value.replace("_", " "), ref=ref, first_day=first_day)
        else:
            setattr(result, name, value)

    tags = [m.group(1).lower() for m in _TAG_OPERATOR.finditer(remaining)]
    remaining = _TAG_OPERATOR.sub("", remaining)
    tags.extend(m.group(1).lower() for m in _HASHTAG.finditer(remaining))
    remaining = _HASHTAG.sub("", remaining)
    result.tags = list(dict.fromkeys(tags))

    text = re.sub(r"\s+", " ", remaining).strip()
    if text:
        result.search = text
    return result
