"""Exception classes for the queue control plane.

``CircuitOpenError`` lives with the circuit breaker in
``queue_ops.circuit_breaker.exceptions``.
"""

from __future__ import annotations


class QueueOpsError(Exception):
    """Base exception for control plane errors."""

    pass


class BackendUnavailableError(QueueOpsError):
    """Raised when a queue, worker, config or storage backend call fails."""

    def __init__(self, backend: str, operation: str, reason: str) -> None:
        self.backend = backend
        self.operation = operation
        self.reason = reason
        super().__init__(f"{backend} backend unavailable during {operation}: {reason}")


class WorkerNotFoundError(QueueOpsError, LookupError):
    """Raised for an unknown worker id in config operations."""

    def __init__(self, worker_id: str) -> None:
        self.worker_id = worker_id
        super().__init__(f"Worker {worker_id} not found")


class JobNotFoundError(QueueOpsError, LookupError):
    """Raised when a job id does not exist on the queue backend."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class InvalidJobStateError(QueueOpsError):
    """Raised when a job is not in a state that permits the requested action."""

    def __init__(self, job_id: str, state: str, action: str) -> None:
        self.job_id = job_id
        self.state = state
        self.action = action
        super().__init__(f"Cannot {action} job {job_id} in state {state}")


class InvalidTransitionError(QueueOpsError):
    """A lifecycle command issued from a state that does not permit it.

    The lifecycle controller treats these as no-op successes and only logs
    them; the class exists so the condition has a name and a message.
    """

    def __init__(self, action: str, state: str) -> None:
        self.action = action
        self.state = state
        super().__init__(f"Cannot {action} workers while {state}")


class WorkerCommandError(QueueOpsError):
    """Raised when the worker backend rejects a lifecycle command."""

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(f"Failed to {action} workers: {reason}")
