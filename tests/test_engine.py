"""
Tests for engine.py.

Covers:
- Edits by id keep the cache in step with the document
- NOT_FOUND for unknown ids
- Scenario: completing a blocker unblocks its dependents
- handle_event routing (modify, create, delete, rename)
- Dependency queries, cycles, bulk operations, undo, status
- Store exceptions other than StoreError come back as STORE results
"""

import asyncio
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vault_tasks.engine import TaskEngine
from vault_tasks.models.results import FailureKind
from vault_tasks.store.base import DocumentEvent, EventKind
from vault_tasks.store.memory import MemoryStore

TODAY = date(2025, 3, 3)


def _engine(documents=None):
    store = MemoryStore(documents if documents is not None else {
        "fileA.md": "# A\n\n\n\n- [ ] Blocker\n",
        "fileX.md": "- [ ] X [blocked-by:fileA:4]\n",
    })
    engine = TaskEngine(store, today=lambda: TODAY)
    asyncio.run(engine.initialize())
    return store, engine


class _FlakyStore(MemoryStore):
    """Raises OSError from listing and writing once ``broken`` is set."""

    broken = False

    async def list_documents(self):
        if self.broken:
            raise OSError("share unmounted")
        return await super().list_documents()

    async def write(self, path, content):
        if self.broken:
            raise OSError("share unmounted")
        await super().write(path, content)


class TestEdits:
    def test_completing_blocker_unblocks(self):
        _, engine = _engine()
        assert engine.dependency_status("fileX.md:0").is_blocked
        result = asyncio.run(engine.toggle("fileA.md:4"))
        assert result.success
        assert engine.get_task("fileA.md:4").completed
        assert not engine.dependency_status("fileX.md:0").is_blocked

    def test_unknown_id(self):
        _, engine = _engine()
        result = asyncio.run(engine.update("nope.md:1", priority="high"))
        assert result.kind == FailureKind.NOT_FOUND
        assert asyncio.run(engine.delete("nope.md:1")).kind == FailureKind.NOT_FOUND

    def test_create_is_visible(self):
        _, engine = _engine()
        result = asyncio.run(engine.create("fileX.md", "Y"))
        assert engine.get_task(result.task.id).text == "Y"

    def test_delete_shifts_ids(self):
        _, engine = _engine({"a.md": "- [ ] One\n- [ ] Two\n"})
        asyncio.run(engine.delete("a.md:0"))
        assert engine.get_task("a.md:0").text == "Two"
        assert engine.get_task("a.md:1") is None

    def test_undo_refreshes(self):
        _, engine = _engine({"a.md": "- [ ] One\n"})
        asyncio.run(engine.update("a.md:0", priority="high"))
        assert engine.get_task("a.md:0").priority == "high"
        asyncio.run(engine.undo())
        assert engine.get_task("a.md:0").priority is None

    def test_add_dependency(self):
        _, engine = _engine({"a.md": "- [ ] One\n- [ ] Two\n"})
        asyncio.run(engine.add_dependency("a.md:1", "a:0"))
        assert engine.dependency_status("a.md:1").blocked_by_tasks == ("a.md:0",)
        assert [t.text for t in engine.unblocked_by("a.md:0")] == ["Two"]

    def test_bulk_with_missing_ids(self):
        _, engine = _engine({"a.md": "- [ ] One\n- [ ] Two\n"})
        result = asyncio.run(engine.bulk_update(["a.md:0", "a.md:9"], priority="low"))
        assert result.successful == 1
        assert result.failed == 1
        assert engine.get_task("a.md:0").priority == "low"

    def test_bulk_delete(self):
        _, engine = _engine({"a.md": "- [ ] One\n- [ ] Two\n- [ ] Three\n"})
        result = asyncio.run(engine.bulk_delete(["a.md:0", "a.md:2"]))
        assert result.successful == 2
        assert [t.text for t in engine.cache.all_tasks()] == ["Two"]

    def test_daily_note(self):
        _, engine = _engine({})
        result = asyncio.run(engine.add_to_daily_note("Stretch"))
        assert engine.get_task(result.task.id).text == "Stretch"


class TestEvents:
    def test_modify(self):
        store, engine = _engine({"a.md": "- [ ] One\n"})
        store.put("a.md", "- [ ] One\n- [ ] Two\n")
        asyncio.run(engine.handle_event(DocumentEvent(EventKind.MODIFY, "a.md")))
        assert len(engine.cache.all_tasks()) == 2

    def test_delete(self):
        store, engine = _engine({"a.md": "- [ ] One\n"})
        store.remove("a.md")
        asyncio.run(engine.handle_event(DocumentEvent(EventKind.DELETE, "a.md")))
        assert engine.cache.all_tasks() == []

    def test_rename(self):
        store, engine = _engine({"a.md": "- [ ] One\n"})
        store.rename("a.md", "b.md")
        asyncio.run(engine.handle_event(DocumentEvent(EventKind.RENAME, "b.md", old_path="a.md")))
        assert engine.get_task("b.md:0").text == "One"


class TestQueries:
    def test_blocked_and_ready(self):
        _, engine = _engine()
        assert [t.id for t in engine.blocked_tasks()] == ["fileX.md:0"]
        assert [t.id for t in engine.ready_tasks()] == ["fileA.md:4"]
        assert [t.id for t in engine.dependency_order()] == ["fileA.md:4", "fileX.md:0"]

    def test_find_cycles(self):
        _, engine = _engine({"a.md": "- [ ] One [blocked-by:a:1]\n- [ ] Two [blocked-by:a:0]\n"})
        cycles = engine.find_cycles()
        assert len(cycles) == 1
        assert set(cycles[0]) == {"a.md:0", "a.md:1"}

    def test_refresh_and_status(self):
        _, engine = _engine()
        assert asyncio.run(engine.refresh()).success
        status = engine.status()
        assert status["tasks_indexed"] == 2
        assert status["undo_depth"] == 0


class TestStoreFailures:
    def _flaky_engine(self):
        store = _FlakyStore({"a.md": "- [ ] One\n"})
        engine = TaskEngine(store, today=lambda: TODAY)
        asyncio.run(engine.initialize())
        store.broken = True
        return store, engine

    def test_toggle_with_oserror(self):
        store, engine = self._flaky_engine()
        result = asyncio.run(engine.toggle("a.md:0"))
        assert result.kind == FailureKind.STORE
        assert store.content("a.md") == "- [ ] One\n"
        assert not engine.get_task("a.md:0").completed

    def test_refresh_with_oserror(self):
        _, engine = self._flaky_engine()
        result = asyncio.run(engine.refresh())
        assert result.kind == FailureKind.STORE
        assert engine.get_task("a.md:0").text == "One"
