"""Async Python client for the Queue Ops REST API."""

from .client import QueueOpsClient
from .errors import (
    ClientError,
    ConflictError,
    NotFoundError,
    ServerError,
    ServiceUnavailableError,
)

__all__ = [
    "ClientError",
    "ConflictError",
    "NotFoundError",
    "QueueOpsClient",
    "ServerError",
    "ServiceUnavailableError",
]
