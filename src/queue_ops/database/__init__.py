"""Async SQLite persistence for the control plane.

This package provides the bundled queue, worker, config and media catalog
storage. All operations are async using aiosqlite for non-blocking I/O.
"""

from __future__ import annotations

from .backends import SqliteConfigStore, SqliteQueueBackend, SqliteWorkerBackend
from .connection import DEFAULT_DB_PATH, SCHEMA_PATH
from .core import QueueOpsDB

__all__ = [
    "DEFAULT_DB_PATH",
    "QueueOpsDB",
    "SCHEMA_PATH",
    "SqliteConfigStore",
    "SqliteQueueBackend",
    "SqliteWorkerBackend",
]
