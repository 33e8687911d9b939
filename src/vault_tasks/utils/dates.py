"""
Date and duration parsing utilities.

Pure functions, no external dependencies. Dates travel through the engine as
ISO 8601 strings (YYYY-MM-DD); these helpers convert at the edges.

Weekday numbers follow the Sunday = 0 … Saturday = 6 convention used by
recurrence rules and ``first_day_of_week``.
"""

import calendar
import re
from datetime import date, timedelta
from typing import Optional

from vault_tasks.constants import DAY_NAMES, DAY_NAMES_SHORT, MONTH_NAMES, MONTH_NAMES_SHORT

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_EU_DATE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_RELATIVE = re.compile(r"^in\s+(\d+)\s+(days?|weeks?|months?|years?)$")
_MONTH_DAY = re.compile(r"^([a-z]+)\s+(\d{1,2})(?:st|nd|rd|th)?(?:,?\s+(\d{4}))?$")


def today() -> date:
    return date.today()


def parse_iso_date(value: str) -> Optional[date]:
    """Return the date for a strict ``YYYY-MM-DD`` string, or None."""
    if not value:
        return None
    m = _ISO_DATE.match(value.strip())
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def js_weekday(d: date) -> int:
    """Weekday with Sunday = 0."""
    return (d.weekday() + 1) % 7


# ---------------------------------------------------------------------------
# Calendar arithmetic
# ---------------------------------------------------------------------------

def add_days(d: date, days: int) -> date:
    return d + timedelta(days=days)


def add_weeks(d: date, weeks: int) -> date:
    return d + timedelta(weeks=weeks)


def add_months(d: date, months: int) -> date:
    """Add calendar months, clamping the day to the end of the target month."""
    index = d.month - 1 + months
    year = d.year + index // 12
    month = index % 12 + 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last))


def add_years(d: date, years: int) -> date:
    return add_months(d, years * 12)


def start_of_week(d: date, first_day: int = 0) -> date:
    offset = (js_weekday(d) - first_day) % 7
    return d - timedelta(days=offset)


def end_of_week(d: date, first_day: int = 0) -> date:
    return start_of_week(d, first_day) + timedelta(days=6)


def end_of_month(d: date) -> date:
    return date(d.year, d.month, calendar.monthrange(d.year, d.month)[1])


def is_overdue(due: Optional[str], ref: Optional[date] = None) -> bool:
    parsed = parse_iso_date(due or "")
    return parsed is not None and parsed < (ref or today())


def is_due_today(due: Optional[str], ref: Optional[date] = None) -> bool:
    parsed = parse_iso_date(due or "")
    return parsed is not None and parsed == (ref or today())


def is_due_this_week(due: Optional[str], ref: Optional[date] = None, first_day: int = 0) -> bool:
    parsed = parse_iso_date(due or "")
    if parsed is None:
        return False
    ref = ref or today()
    return start_of_week(ref, first_day) <= parsed <= end_of_week(ref, first_day)


# ---------------------------------------------------------------------------
# Natural-language dates
# ---------------------------------------------------------------------------

def _day_index(word: str) -> Optional[int]:
    for i, (full, short) in enumerate(zip(DAY_NAMES, DAY_NAMES_SHORT)):
        if word in (full.lower(), short.lower()):
            return i
    return None


def _month_index(word: str) -> Optional[int]:
    for i, (full, short) in enumerate(zip(MONTH_NAMES, MONTH_NAMES_SHORT)):
        if word in (full.lower(), short.lower()):
            return i + 1
    return None


def _next_weekday(ref: date) -> date:
    d = ref + timedelta(days=1)
    while js_weekday(d) in (0, 6):
        d += timedelta(days=1)
    return d


def parse_date(date_str: str, ref: Optional[date] = None, first_day: int = 0) -> Optional[str]:
    """
    Parse a date expression into ISO 8601 (YYYY-MM-DD).

    Supports:
    - Absolute: "2026-02-15", "02/15/2026" (MM/DD/YYYY), "15-02-2026" (DD-MM-YYYY)
    - Keywords: "today", "tomorrow", "yesterday"
    - Relative: "in 3 days", "in 2 weeks", "in 1 month", "in 2 years"
    - Day names: "friday", "next monday", "this wed"
    - Periods: "next week", "next month", "end of week" / "eow", "end of month" / "eom"
    - "weekday" / "next weekday"
    - Month and day: "March 15", "mar 15 2027" (rolls to next year if already past)

    Returns:
        ISO 8601 date string or None if unparseable
    """
    if not date_str:
        return None

    s = re.sub(r"\s+", " ", date_str.strip().lower())
    ref = ref or today()

    iso = parse_iso_date(s)
    if iso:
        return iso.isoformat()
    for pattern, order in ((_US_DATE, (3, 1, 2)), (_EU_DATE, (3, 2, 1))):
        m = pattern.match(s)
        if m:
            try:
                return date(*(int(m.group(i)) for i in order)).isoformat()
            except ValueError:
                return None

    if s == "today":
        return ref.isoformat()
    if s == "tomorrow":
        return add_days(ref, 1).isoformat()
    if s == "yesterday":
        return add_days(ref, -1).isoformat()

    m = _RELATIVE.match(s)
    if m:
        amount = int(m.group(1))
        unit = m.group(2)
        if unit.startswith("day"):
            return add_days(ref, amount).isoformat()
        if unit.startswith("week"):
            return add_weeks(ref, amount).isoformat()
        if unit.startswith("month"):
            return add_months(ref, amount).isoformat()
        return add_years(ref, amount).isoformat()

    if s == "next week":
        return add_days(start_of_week(ref, first_day), 7).isoformat()
    if s == "next month":
        return date(ref.year + ref.month // 12, ref.month % 12 + 1, 1).isoformat()
    if s in ("end of week", "eow"):
        return end_of_week(ref, first_day).isoformat()
    if s in ("end of month", "eom"):
        return end_of_month(ref).isoformat()
    if s in ("weekday", "next weekday"):
        return _next_weekday(ref).isoformat()

    modifier = None
    word = s
    if s.startswith("next ") or s.startswith("this "):
        modifier, word = s.split(" ", 1)
    day = _day_index(word)
    if day is not None:
        ahead = (day - js_weekday(ref)) % 7
        if modifier == "next" or (modifier is None and ahead == 0):
            ahead += 7
        return add_days(ref, ahead).isoformat()

    m = _MONTH_DAY.match(s)
    if m:
        month = _month_index(m.group(1))
        if month is None:
            return None
        try:
            if m.group(3):
                return date(int(m.group(3)), month, int(m.group(2))).isoformat()
            parsed = date(ref.year, month, int(m.group(2)))
        except ValueError:
            return None
        if parsed < ref:
            parsed = parsed.replace(year=ref.year + 1)
        return parsed.isoformat()

    return None


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------

def duration_to_minutes(duration_str: str) -> Optional[int]:
    """
    Parse duration string into total minutes.

    Supports: "2h", "30m", "2d", "2h30m", "2.5h", "2 hours", "45 minutes"
    """
    if not duration_str:
        return None

    s = duration_str.strip().lower()
    total = 0

    days = re.search(r'(\d+(?:\.\d+)?)\s*(?:d|days?)\b', s)
    if days:
        total += int(float(days.group(1)) * 24 * 60)

    hours = re.search(r'(\d+(?:\.\d+)?)\s*(?:h|hrs?|hours?)', s)
    if hours:
        total += int(float(hours.group(1)) * 60)

    minutes = re.search(r'(\d+)\s*(?:m|mins?|minutes?)\b', s)
    if minutes:
        total += int(minutes.group(1))

    return total if total > 0 else None


def minutes_to_duration(total_minutes: int) -> Optional[str]:
    """Format minutes as a compact duration string (e.g. "2h30m", "3d")."""
    if not total_minutes:
        return None

    days, remainder = divmod(total_minutes, 24 * 60)
    hours, mins = divmod(remainder, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if mins:
        parts.append(f"{mins}m")

    return "".join(parts) if parts else None


def parse_duration(duration_str: str) -> Optional[str]:
    """
    Parse duration string into normalized compact format.

    "2 hours 30 minutes" → "2h30m", "2.5h" → "2h30m"
    """
    total = duration_to_minutes(duration_str)
    if total is None:
        return None
    return minutes_to_duration(total)
