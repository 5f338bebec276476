"""
Storage implementations.

Provides implementations of the TaskStorage interface for holding tasks,
their scores and the vote audit log.

Available implementations:
- InMemoryStorage: Reference implementation for tests and embedding
- JSONLStorage: JSON state file plus append-only JSONL vote log
- SQLiteStorage: SQLite database with transactional score updates
"""

from .memory_storage import InMemoryStorage
from .jsonl_storage import JSONLStorage
from .sqlite_storage import SQLiteStorage

__all__ = ["InMemoryStorage", "JSONLStorage", "SQLiteStorage"]
