"""Backend interfaces and the bundled filesystem storage backend."""

from .interfaces import ConfigStore, QueueBackend, StorageBackend, WorkerBackend
from .storage import LocalStorageBackend

__all__ = [
    "ConfigStore",
    "LocalStorageBackend",
    "QueueBackend",
    "StorageBackend",
    "WorkerBackend",
]
