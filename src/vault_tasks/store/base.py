"""
Document store interface consumed by the cache and updater.

Paths are POSIX strings relative to the store root. All I/O is async; the
engine suspends only at these calls.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class EventKind(str, Enum):
    MODIFY = "modify"
    CREATE = "create"
    DELETE = "delete"
    RENAME = "rename"


@dataclass(frozen=True)
class DocumentInfo:
    path: str
    mtime: float


@dataclass(frozen=True)
class DocumentEvent:
    """A change notification; ``old_path`` is only set for renames."""

    kind: EventKind
    path: str
    old_path: Optional[str] = None


class DocumentStore(ABC):
    """
    Implementations should raise StoreError for I/O failures. The cache and
    updater also wrap any other exception from these calls in StoreError, so
    a failing store surfaces as a STORE result rather than an exception.
    """

    @abstractmethod
    async def list_documents(self) -> List[DocumentInfo]:
        """Every document in the store with its modification time."""

    @abstractmethod
    async def stat(self, path: str) -> Optional[DocumentInfo]:
        """Info for one document, or None if it does not exist."""

    @abstractmethod
    async def read(self, path: str) -> str:
        ...

    @abstractmethod
    async def write(self, path: str, content: str) -> None:
        """Replace the whole content of an existing document."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    async def create(self, path: str, content: str) -> None:
        """Create a document, including any missing parent folders."""
