"""
Tests for updater/task_updater.py and updater/recurrence.py.

Covers:
- update: field changes, natural-language dates, validation failures
- Completion rules: stage/checkbox consistency, [done:] stamping, reopening
- Recurring tasks: next occurrence on completion, end dates, auto-create off
- Concurrency: stale raw_line → CONFLICT, document untouched
- create: new documents, append position, at_line bounds
- delete, bulk operations, dependencies
- Undo: line edits, inserts, deletes, conflicts, store failures
- Daily notes: template creation, heading insertion
"""

import asyncio
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from vault_tasks.config import EngineSettings
from vault_tasks.errors import StoreError
from vault_tasks.models.results import CreateOptions, FailureKind
from vault_tasks.models.task import Recurrence
from vault_tasks.parsers.task_parser import parse_document
from vault_tasks.store.memory import MemoryStore
from vault_tasks.updater.recurrence import next_due_date, next_occurrence_date
from vault_tasks.updater.task_updater import TaskUpdater

TODAY = date(2025, 3, 3)  # Monday


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _run(coro):
    return asyncio.run(coro)


def _setup(content: str, path: str = "todo.md", **settings):
    store = MemoryStore({path: content})
    updater = TaskUpdater(store, EngineSettings(**settings), today=lambda: TODAY)
    return store, updater


def _tasks(store: MemoryStore, path: str = "todo.md"):
    return parse_document(store.content(path), path)


class _ReadOnlyStore(MemoryStore):
    async def write(self, path, content):
        raise StoreError("disk full")


class _BrokenDiskStore(MemoryStore):
    """Raises plain OSError instead of StoreError."""

    def __init__(self, documents, fail_reads=False):
        super().__init__(documents)
        self.fail_reads = fail_reads
        self.fail_writes = True

    async def read(self, path):
        if self.fail_reads:
            raise OSError("I/O error")
        return await super().read(path)

    async def write(self, path, content):
        if self.fail_writes:
            raise OSError("disk full")
        await super().write(path, content)

    async def exists(self, path):
        if self.fail_reads:
            raise OSError("I/O error")
        return await super().exists(path)


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------

class TestUpdate:
    def test_changes_fields(self):
        store, updater = _setup("- [ ] **John:** Write report\n")
        task = _tasks(store)[0]
        result = _run(updater.update(task, priority="High", due_date="tomorrow"))
        assert result.success
        assert result.task.priority == "high"
        assert store.content("todo.md") == "- [ ] **John | 2025-03-04:** Write report [priority:high]\n"

    def test_clear_field(self):
        store, updater = _setup("- [ ] **John | 2025-03-04:** Write report\n")
        result = _run(updater.update(_tasks(store)[0], owner=None, due_date=""))
        assert result.success
        assert store.content("todo.md") == "- [ ] Write report\n"

    def test_other_lines_untouched(self):
        store, updater = _setup("# Notes\n- [ ] A\nprose line\n- [ ] B\n")
        task = _tasks(store)[1]
        _run(updater.update(task, tags=["x"]))
        assert store.content("todo.md") == "# Notes\n- [ ] A\nprose line\n- [ ] B #x\n"

    def test_invalid_value_is_rejected_without_writing(self):
        store, updater = _setup("- [ ] Task\n")
        result = _run(updater.update(_tasks(store)[0], priority="urgent"))
        assert not result.success
        assert result.kind == FailureKind.VALIDATION
        assert store.writes == 0

    def test_unknown_field(self):
        store, updater = _setup("- [ ] Task\n")
        result = _run(updater.update(_tasks(store)[0], colour="red"))
        assert result.kind == FailureKind.VALIDATION

    def test_bad_date(self):
        store, updater = _setup("- [ ] Task\n")
        result = _run(updater.update(_tasks(store)[0], due_date="someday soon"))
        assert result.kind == FailureKind.VALIDATION

    def test_duration_is_normalised(self):
        store, updater = _setup("- [ ] Task\n")
        result = _run(updater.update(_tasks(store)[0], estimate="2 hours 30 minutes"))
        assert result.task.estimate == "2h30m"

    def test_text_is_collapsed_to_one_line(self):
        store, updater = _setup("- [ ] Task\n")
        result = _run(updater.update(_tasks(store)[0], text="Two\nlines"))
        assert result.task.text == "Two lines"

    def test_stale_line_is_a_conflict(self):
        store, updater = _setup("- [ ] Task\n")
        task = _tasks(store)[0]
        store.put("todo.md", "- [ ] Task edited elsewhere\n")
        result = _run(updater.update(task, priority="high"))
        assert result.kind == FailureKind.CONFLICT
        assert store.content("todo.md") == "- [ ] Task edited elsewhere\n"
        assert not updater.can_undo()

    def test_store_failure(self):
        store = _ReadOnlyStore({"todo.md": "- [ ] Task\n"})
        updater = TaskUpdater(store, today=lambda: TODAY)
        result = _run(updater.update(_tasks(store)[0], priority="high"))
        assert result.kind == FailureKind.STORE
        assert updater.undo_depth == 0

    def test_crlf_preserved(self):
        store, updater = _setup("- [ ] One\r\n- [ ] Two\r\n")
        _run(updater.update(_tasks(store)[0], priority="low"))
        assert store.content("todo.md") == "- [ ] One [priority:low]\r\n- [ ] Two\r\n"


class TestCompletion:
    def test_toggle_completes(self):
        store, updater = _setup("- [ ] **Ann | Staged:** Ship\n")
        result = _run(updater.toggle(_tasks(store)[0]))
        assert result.task.completed
        assert result.task.stage == "Completed"
        assert result.task.completed_date == "2025-03-03"
        assert store.content("todo.md") == "- [x] **Ann | Completed:** Ship [done:2025-03-03]\n"

    def test_toggle_reopens(self):
        store, updater = _setup("- [x] **Completed:** Ship [done:2025-03-01]\n")
        result = _run(updater.toggle(_tasks(store)[0]))
        assert not result.task.completed
        assert result.task.stage is None
        assert store.content("todo.md") == "- [ ] Ship\n"

    def test_toggle_with_stage(self):
        store, updater = _setup("- [x] **Completed:** Ship [done:2025-03-01]\n")
        result = _run(updater.toggle(_tasks(store)[0], stage="In-Review"))
        assert result.task.stage == "In-Review"
        assert not result.task.completed

    def test_completed_stage_ticks_checkbox(self):
        store, updater = _setup("- [ ] Ship\n")
        result = _run(updater.set_stage(_tasks(store)[0], "Completed"))
        assert result.task.completed

    def test_open_stage_unticks_checkbox(self):
        store, updater = _setup("- [x] **Completed:** Ship [done:2025-03-01]\n")
        result = _run(updater.set_stage(_tasks(store)[0], "In-Progress"))
        assert not result.task.completed
        assert result.task.completed_date is None

    def test_completed_with_open_stage_is_rejected(self):
        store, updater = _setup("- [ ] Ship\n")
        result = _run(updater.update(_tasks(store)[0], completed=True, stage="Staged"))
        assert result.kind == FailureKind.VALIDATION


class TestRecurring:
    def test_next_occurrence_on_listed_weekday(self):
        store, updater = _setup("- [ ] **2025-03-03:** Standup [repeat:every mon,wed,fri]\n")
        result = _run(updater.toggle(_tasks(store)[0]))
        assert result.success
        following = result.next_occurrence
        assert following.due_date == "2025-03-05"
        assert following.stage == "Requested"
        assert not following.completed
        assert following.line_index == 1
        assert store.content("todo.md") == (
            "- [x] **2025-03-03 | Completed:** Standup [repeat:every mon,wed,fri] [done:2025-03-03]\n"
            "- [ ] **2025-03-05 | Requested:** Standup [repeat:every mon,wed,fri] [created:2025-03-03]\n"
        )

    def test_no_occurrence_after_end_date(self):
        store, updater = _setup("- [ ] **2025-03-03:** Pay rent [repeat:daily until 2025-03-03]\n")
        result = _run(updater.toggle(_tasks(store)[0]))
        assert result.success
        assert result.next_occurrence is None
        assert len(_tasks(store)) == 1

    def test_auto_create_disabled(self):
        store, updater = _setup("- [ ] **2025-03-03:** Standup [repeat:daily]\n", recurring_auto_create=False)
        result = _run(updater.toggle(_tasks(store)[0]))
        assert result.next_occurrence is None

    def test_reopening_does_not_create(self):
        store, updater = _setup("- [x] **Completed:** Standup [repeat:daily] [done:2025-03-01]\n")
        result = _run(updater.toggle(_tasks(store)[0]))
        assert result.next_occurrence is None


class TestRecurrenceDates:
    @pytest.mark.parametrize("rule,current,expected", [
        (Recurrence("daily", "daily"), date(2025, 3, 3), date(2025, 3, 4)),
        (Recurrence("daily", "every 3 days", interval=3), date(2025, 3, 3), date(2025, 3, 6)),
        (Recurrence("weekly", "weekly"), date(2025, 3, 3), date(2025, 3, 10)),
        (Recurrence("monthly", "monthly"), date(2025, 1, 31), date(2025, 2, 28)),
        (Recurrence("yearly", "yearly"), date(2024, 2, 29), date(2025, 2, 28)),
        (Recurrence("weekly", "every mon,wed,fri", days_of_week=(1, 3, 5)), date(2025, 3, 7), date(2025, 3, 10)),
        (Recurrence("weekly", "weekends", days_of_week=(0, 6)), date(2025, 3, 3), date(2025, 3, 8)),
    ])
    def test_next_due_date(self, rule, current, expected):
        assert next_due_date(current, rule) == expected

    def test_counts_from_today_without_due_date(self):
        assert next_occurrence_date(None, Recurrence("daily", "daily"), TODAY) == date(2025, 3, 4)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

class TestDependencies:
    def test_add_and_remove(self):
        store, updater = _setup("- [ ] Deploy\n")
        result = _run(updater.add_dependency(_tasks(store)[0], "build:3"))
        assert result.task.blocked_by == ["build:3"]
        result = _run(updater.remove_dependency(_tasks(store)[0], "build:3"))
        assert result.task.blocked_by == []
        assert store.content("todo.md") == "- [ ] Deploy\n"

    def test_blocks_kind(self):
        store, updater = _setup("- [ ] Build\n")
        result = _run(updater.add_dependency(_tasks(store)[0], "deploy:0", kind="blocks"))
        assert store.content("todo.md") == "- [ ] Build [blocks:deploy:0]\n"
        assert result.task.blocks == ["deploy:0"]

    def test_invalid_reference(self):
        store, updater = _setup("- [ ] Deploy\n")
        result = _run(updater.add_dependency(_tasks(store)[0], "not a ref"))
        assert result.kind == FailureKind.VALIDATION

    def test_unknown_kind(self):
        store, updater = _setup("- [ ] Deploy\n")
        result = _run(updater.add_dependency(_tasks(store)[0], "build:3", kind="depends-on"))
        assert result.kind == FailureKind.VALIDATION


# ---------------------------------------------------------------------------
# Create / delete
# ---------------------------------------------------------------------------

class TestCreate:
    def test_new_document(self):
        store = MemoryStore()
        updater = TaskUpdater(store, today=lambda: TODAY)
        result = _run(updater.create("inbox.md", "Call Sam", CreateOptions(owner="Me", tags=["Phone"])))
        assert result.success
        assert store.content("inbox.md") == "- [ ] **Me:** Call Sam #phone [created:2025-03-03]\n"
        assert result.task.id == "inbox.md:0"

    def test_appends_before_trailing_newline(self):
        store, updater = _setup("# List\n- [ ] A\n")
        result = _run(updater.create("todo.md", "B"))
        assert result.task.line_index == 2
        assert store.content("todo.md") == "# List\n- [ ] A\n- [ ] B [created:2025-03-03]\n"

    def test_at_line(self):
        store, updater = _setup("# List\n- [ ] A\n")
        _run(updater.create("todo.md", "Top", at_line=1))
        assert store.content("todo.md").splitlines()[1] == "- [ ] Top [created:2025-03-03]"

    def test_at_line_past_end_is_rejected(self):
        store, updater = _setup("a\nb\n")
        result = _run(updater.create("todo.md", "Late", at_line=10))
        assert result.kind == FailureKind.VALIDATION
        assert store.content("todo.md") == "a\nb\n"
        assert store.writes == 0

    def test_negative_at_line(self):
        store, updater = _setup("a\n")
        assert _run(updater.create("todo.md", "X", at_line=-1)).kind == FailureKind.VALIDATION

    def test_empty_text(self):
        store, updater = _setup("a\n")
        assert _run(updater.create("todo.md", "   ")).kind == FailureKind.VALIDATION

    def test_natural_language_due_date(self):
        store, updater = _setup("")
        result = _run(updater.create("todo.md", "Pay", CreateOptions(due_date="friday")))
        assert result.task.due_date == "2025-03-07"


class TestDelete:
    def test_removes_line(self):
        store, updater = _setup("- [ ] A\n- [ ] B\n")
        result = _run(updater.delete(_tasks(store)[0]))
        assert result.success
        assert store.content("todo.md") == "- [ ] B\n"

    def test_stale_delete_is_conflict(self):
        store, updater = _setup("- [ ] A\n")
        task = _tasks(store)[0]
        store.put("todo.md", "- [ ] Changed\n")
        assert _run(updater.delete(task)).kind == FailureKind.CONFLICT
        assert store.content("todo.md") == "- [ ] Changed\n"


class TestBulk:
    def test_bulk_update(self):
        store, updater = _setup("- [ ] A\n- [ ] B\n")
        result = _run(updater.bulk_update(_tasks(store), priority="medium"))
        assert result.successful == 2
        assert result.failed == 0
        assert store.content("todo.md") == "- [ ] A [priority:medium]\n- [ ] B [priority:medium]\n"

    def test_bulk_update_reports_failures(self):
        store, updater = _setup("- [ ] A\n- [ ] B\n")
        result = _run(updater.bulk_update(_tasks(store), priority="nope"))
        assert result.failed == 2
        assert len(result.errors) == 2

    def test_bulk_delete_bottom_up(self):
        store, updater = _setup("- [ ] A\n- [ ] B\n- [ ] C\n")
        tasks = _tasks(store)
        result = _run(updater.bulk_delete([tasks[0], tasks[1]]))
        assert result.successful == 2
        assert store.content("todo.md") == "- [ ] C\n"


# ---------------------------------------------------------------------------
# Store failures outside StoreError
# ---------------------------------------------------------------------------

class TestForeignStoreErrors:
    def test_write_oserror_is_store_failure(self):
        store = _BrokenDiskStore({"todo.md": "- [ ] Task\n"})
        updater = TaskUpdater(store, today=lambda: TODAY)
        result = _run(updater.update(_tasks(store)[0], priority="high"))
        assert not result.success
        assert result.kind == FailureKind.STORE
        assert "disk full" in result.error
        assert updater.undo_depth == 0
        assert store.content("todo.md") == "- [ ] Task\n"

    def test_read_oserror_is_store_failure(self):
        store = _BrokenDiskStore({"todo.md": "- [ ] Task\n"})
        task = _tasks(store)[0]
        store.fail_reads = True
        updater = TaskUpdater(store, today=lambda: TODAY)
        assert _run(updater.delete(task)).kind == FailureKind.STORE
        assert _run(updater.create("todo.md", "New")).kind == FailureKind.STORE
        assert _run(updater.add_to_daily_note(TODAY, "New")).kind == FailureKind.STORE

    def test_undo_write_oserror_keeps_entry(self):
        store = _BrokenDiskStore({"todo.md": "- [ ] Task\n"})
        store.fail_writes = False
        updater = TaskUpdater(store, today=lambda: TODAY)
        _run(updater.update(_tasks(store)[0], priority="high"))
        store.fail_writes = True
        result = _run(updater.undo())
        assert result.kind == FailureKind.STORE
        assert updater.undo_depth == 1


# ---------------------------------------------------------------------------
# Undo
# ---------------------------------------------------------------------------

class TestUndo:
    def test_undo_update(self):
        store, updater = _setup("- [ ] A\n")
        _run(updater.update(_tasks(store)[0], priority="high"))
        result = _run(updater.undo())
        assert result.success
        assert result.task.text == "A"
        assert store.content("todo.md") == "- [ ] A\n"
        assert not updater.can_undo()

    def test_undo_create(self):
        store, updater = _setup("- [ ] A\n")
        _run(updater.create("todo.md", "B"))
        _run(updater.undo())
        assert store.content("todo.md") == "- [ ] A\n"

    def test_undo_delete(self):
        store, updater = _setup("- [ ] A\n- [ ] B\n")
        _run(updater.delete(_tasks(store)[0]))
        _run(updater.undo())
        assert store.content("todo.md") == "- [ ] A\n- [ ] B\n"

    def test_most_recent_first(self):
        store, updater = _setup("- [ ] A\n")
        _run(updater.update(_tasks(store)[0], priority="high"))
        _run(updater.update(_tasks(store)[0], priority="low"))
        assert updater.undo_entries()[0].new_line == "- [ ] A [priority:low]"
        _run(updater.undo())
        assert store.content("todo.md") == "- [ ] A [priority:high]\n"

    def test_nothing_to_undo(self):
        _, updater = _setup("- [ ] A\n")
        assert _run(updater.undo()).kind == FailureKind.NOT_FOUND

    def test_conflict_discards_entry(self):
        store, updater = _setup("- [ ] A\n")
        _run(updater.update(_tasks(store)[0], priority="high"))
        store.put("todo.md", "- [ ] A edited by hand\n")
        result = _run(updater.undo())
        assert result.kind == FailureKind.CONFLICT
        assert store.content("todo.md") == "- [ ] A edited by hand\n"
        assert updater.undo_depth == 0

    def test_history_is_bounded(self):
        store, updater = _setup("- [ ] A\n", max_undo_entries=2)
        for priority in ("high", "low", "medium"):
            _run(updater.update(_tasks(store)[0], priority=priority))
        assert updater.undo_depth == 2

    def test_clear_undo(self):
        store, updater = _setup("- [ ] A\n")
        _run(updater.update(_tasks(store)[0], priority="high"))
        updater.clear_undo()
        assert not updater.can_undo()
        assert _run(updater.undo()).kind == FailureKind.NOT_FOUND


# ---------------------------------------------------------------------------
# Daily notes
# ---------------------------------------------------------------------------

class TestDailyNote:
    def test_creates_note_from_template(self):
        store = MemoryStore()
        updater = TaskUpdater(store, EngineSettings(daily_note_folder="journal"), today=lambda: TODAY)
        result = _run(updater.add_to_daily_note(TODAY, "Call mom"))
        assert result.task.path == "journal/2025-03-03.md"
        assert store.content("journal/2025-03-03.md") == (
            "# 2025-03-03\n\n## Tasks\n\n- [ ] Call mom [created:2025-03-03]\n"
        )

    def test_newest_task_goes_first(self):
        store = MemoryStore()
        updater = TaskUpdater(store, today=lambda: TODAY)
        _run(updater.add_to_daily_note(TODAY, "First"))
        result = _run(updater.add_to_daily_note(TODAY, "Second"))
        assert result.task.line_index == 4
        lines = store.content("2025-03-03.md").split("\n")
        assert lines[4:6] == ["- [ ] Second [created:2025-03-03]", "- [ ] First [created:2025-03-03]"]

    def test_heading_added_when_missing(self):
        store = MemoryStore({"2025-03-03.md": "# 2025-03-03\nSome notes\n"})
        updater = TaskUpdater(store, today=lambda: TODAY)
        _run(updater.add_to_daily_note(TODAY, "Follow up"))
        assert store.content("2025-03-03.md") == (
            "# 2025-03-03\nSome notes\n\n## Tasks\n- [ ] Follow up [created:2025-03-03]\n"
        )
