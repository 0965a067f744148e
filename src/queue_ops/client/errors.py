"""Custom exceptions for the Queue Ops client."""

from __future__ import annotations


class ClientError(Exception):
    """Base error for client HTTP failures.

    Attributes:
        status_code: The HTTP status code returned by the server.
        message: A human-readable error description.
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}")


class NotFoundError(ClientError):
    """Raised when the server returns a 404 Not Found response."""

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(status_code=404, message=message)


class ConflictError(ClientError):
    """Raised when the server returns 409, e.g. retrying a job that is not failed."""

    def __init__(self, message: str = "Conflict") -> None:
        super().__init__(status_code=409, message=message)


class ServerError(ClientError):
    """Raised when the server returns a 5xx response."""

    def __init__(self, status_code: int = 500, message: str = "Server error") -> None:
        super().__init__(status_code=status_code, message=message)


class ServiceUnavailableError(ServerError):
    """Raised on 503, usually because a backend circuit is open.

    Attributes:
        circuit: Name of the open circuit, if the server reported one.
        retry_after: Seconds until the circuit allows a trial call.
    """

    def __init__(
        self,
        message: str = "Service unavailable",
        circuit: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(status_code=503, message=message)
        self.circuit = circuit
        self.retry_after = retry_after
