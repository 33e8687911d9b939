"""
Tests for the REST API routes.

Uses FastAPI TestClient against a real TaskEngine over a MemoryStore.
"""

import asyncio
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from fastapi.testclient import TestClient

from vault_tasks.api.app import create_app
from vault_tasks.engine import TaskEngine
from vault_tasks.store.memory import MemoryStore

TODAY = date(2025, 3, 3)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_store() -> MemoryStore:
    return MemoryStore({
        "projects/launch.md": (
            "# Launch\n"
            "- [ ] **John | 2025-03-01 | In-Progress:** Write copy [priority:high] #urgent\n"
            "  - [ ] Headline\n"
            "- [ ] Publish [blocked-by:launch:1]\n"
        ),
        "inbox.md": "- [x] **Completed:** Old thing [done:2025-02-01]\n",
    })


@pytest.fixture
def setup():
    store = _make_store()
    engine = TaskEngine(store, today=lambda: TODAY)
    asyncio.run(engine.initialize())
    client = TestClient(create_app(engine))
    return client, store, engine


# ---------------------------------------------------------------------------
# Listing and lookup
# ---------------------------------------------------------------------------

class TestList:
    def test_all(self, setup):
        client, _, _ = setup
        resp = client.get("/api/tasks")
        assert resp.status_code == 200
        assert len(resp.json()) == 4

    def test_filters(self, setup):
        client, _, _ = setup
        data = client.get("/api/tasks", params={"owner": "John", "completed": "false"}).json()
        assert [t["text"] for t in data] == ["Write copy"]

    def test_query(self, setup):
        client, _, _ = setup
        data = client.get("/api/tasks", params={"q": "#urgent"}).json()
        assert [t["id"] for t in data] == ["projects/launch.md:1"]

    def test_blocked(self, setup):
        client, _, _ = setup
        data = client.get("/api/tasks", params={"blocked": "true"}).json()
        assert [t["text"] for t in data] == ["Publish"]

    def test_bad_due_preset(self, setup):
        client, _, _ = setup
        assert client.get("/api/tasks", params={"due": "someday"}).status_code == 400


class TestGet:
    def test_nested_children(self, setup):
        client, _, _ = setup
        resp = client.get("/api/tasks/projects/launch.md:1")
        assert resp.status_code == 200
        data = resp.json()
        assert data["owner"] == "John"
        assert data["ref"] == "launch:1"
        assert [c["text"] for c in data["children"]] == ["Headline"]
        assert data["is_blocked"] is False

    def test_not_found(self, setup):
        client, _, _ = setup
        assert client.get("/api/tasks/missing.md:0").status_code == 404

    def test_dependencies(self, setup):
        client, _, _ = setup
        data = client.get("/api/tasks/projects/launch.md:3/dependencies").json()
        assert data["is_blocked"] is True
        assert data["blocked_by"][0]["id"] == "projects/launch.md:1"
        assert data["cycle"] is None


# ---------------------------------------------------------------------------
# Edits
# ---------------------------------------------------------------------------

class TestEdits:
    def test_add(self, setup):
        client, store, _ = setup
        resp = client.post("/api/tasks", json={"text": "Email list", "file_path": "inbox.md", "priority": "low"})
        assert resp.status_code == 201
        assert resp.json()["id"] == "inbox.md:1"
        assert "Email list [priority:low]" in store.content("inbox.md")

    def test_add_to_daily_note(self, setup):
        client, store, _ = setup
        resp = client.post("/api/tasks", json={"text": "Stretch"})
        assert resp.status_code == 201
        assert resp.json()["path"] == "2025-03-03.md"

    def test_add_invalid(self, setup):
        client, _, _ = setup
        resp = client.post("/api/tasks", json={"text": "X", "file_path": "inbox.md", "at_line": 50})
        assert resp.status_code == 400

    def test_update(self, setup):
        client, _, _ = setup
        resp = client.patch("/api/tasks/projects/launch.md:2", json={"owner": "Ann", "tags": "copy,web"})
        assert resp.status_code == 200
        assert resp.json()["owner"] == "Ann"
        assert resp.json()["tags"] == ["copy", "web"]

    def test_update_conflict(self, setup):
        client, store, _ = setup
        store.put("inbox.md", "- [ ] Rewritten outside\n")
        resp = client.patch("/api/tasks/inbox.md:0", json={"priority": "high"})
        assert resp.status_code == 409

    def test_update_not_found(self, setup):
        client, _, _ = setup
        assert client.patch("/api/tasks/missing.md:0", json={"priority": "high"}).status_code == 404

    def test_toggle_then_undo(self, setup):
        client, store, _ = setup
        before = store.content("projects/launch.md")
        resp = client.post("/api/tasks/projects/launch.md:1/toggle")
        assert resp.status_code == 200
        assert resp.json()["completed"] is True
        assert client.post("/api/undo").status_code == 200
        assert store.content("projects/launch.md") == before

    def test_undo_empty(self, setup):
        client, _, _ = setup
        assert client.post("/api/undo").status_code == 404

    def test_delete(self, setup):
        client, store, _ = setup
        resp = client.delete("/api/tasks/inbox.md:0")
        assert resp.status_code == 200
        assert store.content("inbox.md") == ""


# ---------------------------------------------------------------------------
# Stats and status
# ---------------------------------------------------------------------------

class TestInfo:
    def test_stats(self, setup):
        client, _, _ = setup
        data = client.get("/api/stats").json()
        assert data["total"] == 4
        assert data["completed"] == 1
        assert data["overdue"] == 1

    def test_values(self, setup):
        client, _, _ = setup
        assert client.get("/api/values/owners").json() == ["John"]
        assert client.get("/api/values/colours").status_code == 400

    def test_refresh_and_status(self, setup):
        client, _, _ = setup
        assert client.post("/api/refresh").status_code == 200
        data = client.get("/api/cache/status").json()
        assert data["tasks_indexed"] == 4
        assert data["documents_indexed"] == 2
