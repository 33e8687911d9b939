"""
Daily note helpers.

A daily note lives at ``<daily_note_folder>/<formatted date>.md`` and holds
its tasks under a configurable heading (``## Tasks`` by default). Date
formats understand the tokens YYYY, MM, DD, M and D.
"""

import re
from datetime import date
from pathlib import PurePosixPath
from typing import List, Optional

from vault_tasks.config import EngineSettings

_FORMAT_TOKEN = re.compile(r"YYYY|MM|DD|M|D")
_TOKEN_PATTERNS = {
    "YYYY": r"(\d{4})",
    "MM": r"(\d{2})",
    "DD": r"(\d{2})",
    "M": r"(\d{1,2})",
    "D": r"(\d{1,2})",
}
_HEADING = re.compile(r"^#+\s")
_TASK = re.compile(r"^\s*-\s*\[[ xX]\]")


def format_daily_note_date(d: date, fmt: str) -> str:
    values = {
        "YYYY": f"{d.year:04d}",
        "MM": f"{d.month:02d}",
        "DD": f"{d.day:02d}",
        "M": str(d.month),
        "D": str(d.day),
    }
    return _FORMAT_TOKEN.sub(lambda m: values[m.group()], fmt)


def parse_daily_note_filename(name: str, fmt: str) -> Optional[date]:
    """Date encoded in a daily note file name (without extension), or None."""
    order: List[str] = []
    pattern = []
    last = 0
    for m in _FORMAT_TOKEN.finditer(fmt):
        pattern.append(re.escape(fmt[last:m.start()]))
        pattern.append(_TOKEN_PATTERNS[m.group()])
        order.append(m.group()[0])
        last = m.end()
    pattern.append(re.escape(fmt[last:]))

    match = re.match(f"^{''.join(pattern)}$", name)
    if not match or sorted(order) != ["D", "M", "Y"]:
        return None
    parts = dict(zip(order, (int(g) for g in match.groups())))
    try:
        return date(parts["Y"], parts["M"], parts["D"])
    except ValueError:
        return None


def daily_note_path(d: date, settings: EngineSettings) -> str:
    filename = format_daily_note_date(d, settings.daily_note_date_format) + settings.document_extension
    folder = settings.daily_note_folder.strip().strip("/")
    return f"{folder}/{filename}" if folder else filename


def daily_note_template(d: date, settings: EngineSettings) -> str:
    title = format_daily_note_date(d, settings.daily_note_date_format)
    return f"# {title}\n\n{settings.daily_note_tasks_heading}\n\n"


def is_daily_note(path: str, settings: EngineSettings) -> bool:
    posix = PurePosixPath(path.replace("\\", "/"))
    folder = settings.daily_note_folder.strip().strip("/")
    parent = "" if str(posix.parent) == "." else str(posix.parent)
    if folder and parent != folder:
        return False
    return parse_daily_note_filename(posix.stem, settings.daily_note_date_format) is not None


def find_tasks_heading(lines: List[str], heading: str) -> int:
    """Index of the tasks heading (case-insensitive), or -1."""
    wanted = heading.strip().lower()
    for i, line in enumerate(lines):
        if line.strip().lower() == wanted:
            return i
    return -1


def task_insert_position(lines: List[str], heading: str) -> Optional[int]:
    """
    Where a new task goes: the first non-blank line after the tasks heading,
    or one blank line below it when nothing follows. None when the note has
    no tasks heading.
    """
    index = find_tasks_heading(lines, heading)
    if index == -1:
        return None
    position = index + 1
    while position < len(lines) and lines[position].strip() == "":
        position += 1
    if position == len(lines) and index + 1 < len(lines):
        return index + 2
    return position


def tasks_in_daily_note(content: str, heading: str) -> List[str]:
    """Raw task lines under the tasks heading, up to the next heading."""
    lines = content.split("\n")
    index = find_tasks_heading(lines, heading)
    if index == -1:
        return []
    found = []
    for line in lines[index + 1:]:
        if _HEADING.match(line):
            break
        if _TASK.match(line):
            found.append(line)
    return found
