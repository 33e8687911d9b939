"""
Recurrence roll-forward.
"""

from datetime import date
from typing import Optional

from vault_tasks.models.task import Recurrence
from vault_tasks.utils.dates import add_days, add_months, add_weeks, add_years, js_weekday, parse_iso_date


def next_due_date(current: date, rule: Recurrence) -> date:
    """
    The due date of the occurrence after one due on ``current``.

    Weekly rules with explicit days jump to the next listed weekday after
    ``current`` (wrapping into next week) and ignore ``interval``.
    """
    interval = rule.interval or 1

    if rule.type == "weekly" and rule.days_of_week:
        today_index = js_weekday(current)
        days = sorted(set(rule.days_of_week))
        later = [d for d in days if d > today_index]
        if later:
            return add_days(current, later[0] - today_index)
        return add_days(current, 7 - today_index + days[0])

    if rule.type == "weekly":
        return add_weeks(current, interval)
    if rule.type == "monthly":
        return add_months(current, interval)
    if rule.type == "yearly":
        return add_years(current, interval)
    # daily and custom
    return add_days(current, interval)


def next_occurrence_date(due_date: Optional[str], rule: Recurrence, today: date) -> Optional[date]:
    """
    Next due date for a task being completed, or None once the rule's end
    date has passed. Counts from ``due_date`` when set, else from ``today``.
    """
    current = parse_iso_date(due_date or "") or today
    following = next_due_date(current, rule)
    end = parse_iso_date(rule.end_date or "")
    if end is not None and following > end:
        return None
    return following
