"""
Document store backed by a vault directory on local disk.

Blocking file I/O runs in a worker thread via ``asyncio.to_thread`` so the
event loop stays responsive for the MCP and REST transports. Writes go to a
temporary file in the same folder and are swapped in with ``os.replace``.
An existing document keeps its permission bits; a new one gets the usual
mode for the process umask.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Set

from vault_tasks.errors import StoreError
from vault_tasks.store.base import DocumentInfo, DocumentStore

log = logging.getLogger(__name__)

_UMASK = os.umask(0)
os.umask(_UMASK)


class FileSystemStore(DocumentStore):
    """
    Usage:
        store = FileSystemStore(Path("/vault"), {".git", ".obsidian"})
        docs = await store.list_documents()
    """

    def __init__(
        self,
        root: Path,
        skip_dirs: Optional[Iterable[str]] = None,
        extensions: Iterable[str] = (".md",),
    ) -> None:
        self._root = Path(root).resolve()
        self._skip_dirs: Set[str] = set(skip_dirs or ())
        self._extensions = tuple(extensions)

    @property
    def root(self) -> Path:
        return self._root

    def _full_path(self, path: str) -> Path:
        full = (self._root / path).resolve()
        if full != self._root and self._root not in full.parents:
            raise StoreError(f"Path escapes vault root: {path}")
        return full

    def _relative(self, full: Path) -> str:
        return full.relative_to(self._root).as_posix()

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _walk(self) -> List[DocumentInfo]:
        docs: List[DocumentInfo] = []
        for dirpath, dirnames, filenames in os.walk(self._root):
            dirnames[:] = sorted(d for d in dirnames if d not in self._skip_dirs)
            for name in sorted(filenames):
                if not name.endswith(self._extensions):
                    continue
                full = Path(dirpath) / name
                try:
                    docs.append(DocumentInfo(self._relative(full), full.stat().st_mtime))
                except OSError:
                    log.debug("Could not stat %s", full, exc_info=True)
        return docs

    def _stat(self, path: str) -> Optional[DocumentInfo]:
        full = self._full_path(path)
        try:
            return DocumentInfo(path, full.stat().st_mtime)
        except FileNotFoundError:
            return None

    def _write_atomic(self, full: Path, content: str) -> None:
        fd, tmp = tempfile.mkstemp(dir=full.parent, prefix=f".{full.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                fh.write(content)
            if full.exists():
                shutil.copymode(full, tmp)
            else:
                os.chmod(tmp, 0o666 & ~_UMASK)
            os.replace(tmp, full)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def _read(self, path: str) -> str:
        with open(self._full_path(path), encoding="utf-8", newline="") as fh:
            return fh.read()

    def _write(self, path: str, content: str) -> None:
        full = self._full_path(path)
        if not full.is_file():
            raise StoreError(f"Document does not exist: {path}")
        self._write_atomic(full, content)

    def _create(self, path: str, content: str) -> None:
        full = self._full_path(path)
        if full.exists():
            raise StoreError(f"Document already exists: {path}")
        full.parent.mkdir(parents=True, exist_ok=True)
        self._write_atomic(full, content)

    # ------------------------------------------------------------------
    # DocumentStore
    # ------------------------------------------------------------------

    async def list_documents(self) -> List[DocumentInfo]:
        try:
            return await asyncio.to_thread(self._walk)
        except OSError as e:
            raise StoreError(f"Could not list vault documents: {e}") from e

    async def stat(self, path: str) -> Optional[DocumentInfo]:
        try:
            return await asyncio.to_thread(self._stat, path)
        except OSError as e:
            raise StoreError(f"Could not stat {path}: {e}") from e

    async def read(self, path: str) -> str:
        try:
            return await asyncio.to_thread(self._read, path)
        except (OSError, UnicodeDecodeError) as e:
            raise StoreError(f"Could not read {path}: {e}") from e

    async def write(self, path: str, content: str) -> None:
        try:
            await asyncio.to_thread(self._write, path, content)
        except OSError as e:
            raise StoreError(f"Could not write {path}: {e}") from e
        log.debug("Wrote %s (%d bytes)", path, len(content))

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._full_path(path).is_file)

    async def create(self, path: str, content: str) -> None:
        try:
            await asyncio.to_thread(self._create, path, content)
        except OSError as e:
            raise StoreError(f"Could not create {path}: {e}") from e
        log.info("Created document %s", path)
