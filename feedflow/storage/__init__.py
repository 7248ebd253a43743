"""
FeedFlow Storage Layer
======================

Storage port consumed by the refresh manager and its implementations:
- In-memory storage for tests and one-shot runs
- SQLite storage for the command line tool
"""

from .base import StoragePort
from .memory_storage import InMemoryStorage
from .sqlite_storage import SQLiteStorage

__all__ = [
    "StoragePort",
    "InMemoryStorage",
    "SQLiteStorage",
]
