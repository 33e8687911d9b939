from .base import DocumentEvent, DocumentInfo, DocumentStore, EventKind
from .filesystem import FileSystemStore
from .memory import MemoryStore

__all__ = [
    "DocumentStore",
    "DocumentInfo",
    "DocumentEvent",
    "EventKind",
    "FileSystemStore",
    "MemoryStore",
]
