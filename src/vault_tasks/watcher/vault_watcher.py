"""
Vault watcher, polling-based.

Container volume mounts often do not forward inotify events, so the watcher
compares mtime snapshots of ``store.list_documents()`` instead.

Each cycle:
1. Lists eligible documents and their mtimes
2. Emits CREATE for new paths and MODIFY for paths whose mtime moved
3. Emits DELETE for paths that disappeared
"""

import asyncio
import logging
from typing import Dict, List, Optional

from vault_tasks.store.base import DocumentEvent, EventKind

log = logging.getLogger(__name__)

_DEFAULT_POLL_INTERVAL = 5.0


class VaultWatcher:
    """
    Polling watcher feeding DocumentEvents to a TaskEngine.

    Usage:
        watcher = VaultWatcher(engine, poll_interval=5.0)
        await watcher.start()
        ...
        await watcher.stop()
    """

    def __init__(self, engine, poll_interval: Optional[float] = None) -> None:
        self._engine = engine
        self._poll_interval = poll_interval or _DEFAULT_POLL_INTERVAL
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._known: Dict[str, float] = {}

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Seed the snapshot and start the polling task."""
        if self.running:
            return
        log.info("Starting vault watcher (polling every %.1fs)", self._poll_interval)
        self._known = await self._snapshot()
        self._stop_event.clear()
        self._task = asyncio.create_task(self._poll_loop(), name="vault-watcher")

    async def stop(self) -> None:
        """Signal the polling task to stop and wait for it."""
        if self._task is None:
            return
        log.info("Stopping vault watcher")
        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=self._poll_interval + 2)
        except asyncio.TimeoutError:
            self._task.cancel()
        self._task = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval)
            except asyncio.TimeoutError:
                pass
            if self._stop_event.is_set():
                break
            try:
                await self.check_for_changes()
            except Exception:
                log.exception("Error during poll cycle")

    async def check_for_changes(self) -> List[DocumentEvent]:
        """Single poll cycle: diff the current snapshot and dispatch events."""
        current = await self._snapshot()
        events: List[DocumentEvent] = []

        for path, mtime in current.items():
            old_mtime = self._known.get(path)
            if old_mtime is None:
                log.debug("New document detected: %s", path)
                events.append(DocumentEvent(EventKind.CREATE, path))
            elif mtime != old_mtime:
                log.debug("Modified document: %s", path)
                events.append(DocumentEvent(EventKind.MODIFY, path))

        for path in self._known:
            if path not in current:
                log.debug("Deleted document: %s", path)
                events.append(DocumentEvent(EventKind.DELETE, path))

        self._known = current
        for event in events:
            await self._engine.handle_event(event)
        return events

    async def _snapshot(self) -> Dict[str, float]:
        cache = self._engine.cache
        docs = await self._engine.store.list_documents()
        return {d.path: d.mtime for d in docs if cache.is_eligible(d.path)}
