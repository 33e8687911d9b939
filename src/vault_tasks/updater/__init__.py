from .recurrence import next_due_date, next_occurrence_date
from .task_updater import TaskUpdater

__all__ = ["TaskUpdater", "next_due_date", "next_occurrence_date"]
