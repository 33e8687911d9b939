"""
Fixed vocabularies and limits shared by the parser, validator and updater.
"""

from typing import Dict, Tuple

# Built-in stages; user-defined stages are appended from settings.
STAGES: Tuple[str, ...] = (
    "Requested",
    "Staged",
    "In-Progress",
    "In-Review",
    "Completed",
)

COMPLETED_STAGE = "Completed"
DEFAULT_RECURRING_STAGE = "Requested"

PRIORITIES: Tuple[str, ...] = ("high", "medium", "low")

RECURRENCE_TYPES: Tuple[str, ...] = ("daily", "weekly", "monthly", "yearly", "custom")

# Sunday-first numbering, matching the weekday sets written in [repeat:] rules.
DAY_NAMES: Tuple[str, ...] = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)
DAY_NAMES_SHORT: Tuple[str, ...] = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

MONTH_NAMES: Tuple[str, ...] = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)
MONTH_NAMES_SHORT: Tuple[str, ...] = (
    "jan",
    "feb",
    "mar",
    "apr",
    "may",
    "jun",
    "jul",
    "aug",
    "sep",
    "oct",
    "nov",
    "dec",
)

VALIDATION_LIMITS: Dict[str, int] = {
    "max_task_text_length": 1000,
    "max_owner_length": 50,
    "max_project_length": 100,
    "max_tag_length": 50,
    "max_tags_count": 20,
    "max_line_length": 2000,
}
