"""In-memory document store."""

import itertools
from typing import Dict, List, Optional

from vault_tasks.errors import StoreError
from vault_tasks.store.base import DocumentInfo, DocumentStore


class MemoryStore(DocumentStore):
    """
    Dict-backed store. Every write bumps a monotonic counter used as the
    document's mtime, so any change is visible to mtime comparison.
    """

    def __init__(self, documents: Optional[Dict[str, str]] = None) -> None:
        self._clock = itertools.count(1)
        self._content: Dict[str, str] = {}
        self._mtimes: Dict[str, float] = {}
        self.reads = 0
        self.writes = 0
        for path, content in (documents or {}).items():
            self.put(path, content)

    def put(self, path: str, content: str) -> None:
        """Set a document's content directly, as an external editor would."""
        self._content[path] = content
        self._mtimes[path] = float(next(self._clock))

    def remove(self, path: str) -> None:
        self._content.pop(path, None)
        self._mtimes.pop(path, None)

    def rename(self, old_path: str, new_path: str) -> None:
        self._content[new_path] = self._content.pop(old_path)
        self._mtimes[new_path] = self._mtimes.pop(old_path)

    def content(self, path: str) -> str:
        return self._content[path]

    async def list_documents(self) -> List[DocumentInfo]:
        return [DocumentInfo(path, self._mtimes[path]) for path in sorted(self._content)]

    async def stat(self, path: str) -> Optional[DocumentInfo]:
        if path not in self._content:
            return None
        return DocumentInfo(path, self._mtimes[path])

    async def read(self, path: str) -> str:
        if path not in self._content:
            raise StoreError(f"Document does not exist: {path}")
        self.reads += 1
        return self._content[path]

    async def write(self, path: str, content: str) -> None:
        if path not in self._content:
            raise StoreError(f"Document does not exist: {path}")
        self.writes += 1
        self.put(path, content)

    async def exists(self, path: str) -> bool:
        return path in self._content

    async def create(self, path: str, content: str) -> None:
        if path in self._content:
            raise StoreError(f"Document already exists: {path}")
        self.writes += 1
        self.put(path, content)
