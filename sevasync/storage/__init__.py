"""Local persistence package for SevaSync"""

from .local import LocalStore, MemoryLocalStore, FileLocalStore, StorageError
from .persistence import AssignmentStore

__all__ = [
    "LocalStore",
    "MemoryLocalStore",
    "FileLocalStore",
    "StorageError",
    "AssignmentStore",
]
