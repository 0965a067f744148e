"""Error handler middleware for FastAPI application."""

from __future__ import annotations

import logging
import math

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ...circuit_breaker import CircuitOpenError
from ...errors import BackendUnavailableError, InvalidJobStateError, WorkerCommandError
from ..models.responses import ErrorResponse

logger = logging.getLogger(__name__)


async def _circuit_open_handler(request: Request, exc: CircuitOpenError) -> JSONResponse:
    """Handle CircuitOpenError with 503 and a retry hint.

    The dashboard uses this to show its maintenance banner.
    """
    retry_after = round(exc.time_until_retry, 1)
    error_response = ErrorResponse(
        detail=str(exc), circuit=exc.identifier, retry_after=retry_after
    )
    return JSONResponse(
        status_code=503,
        content=error_response.model_dump(exclude_none=True),
        headers={"Retry-After": str(max(1, math.ceil(exc.time_until_retry)))},
    )


async def _backend_unavailable_handler(
    request: Request, exc: BackendUnavailableError
) -> JSONResponse:
    error_response = ErrorResponse(detail=str(exc))
    return JSONResponse(status_code=503, content=error_response.model_dump(exclude_none=True))


async def _worker_command_handler(request: Request, exc: WorkerCommandError) -> JSONResponse:
    """Handle a rejected worker command with 502 naming the action."""
    error_response = ErrorResponse(detail=str(exc), action=exc.action)
    return JSONResponse(status_code=502, content=error_response.model_dump(exclude_none=True))


async def _invalid_job_state_handler(
    request: Request, exc: InvalidJobStateError
) -> JSONResponse:
    error_response = ErrorResponse(detail=str(exc))
    return JSONResponse(status_code=409, content=error_response.model_dump(exclude_none=True))


async def _value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Handle ValueError exceptions.

    Args:
        request: The request that caused the exception.
        exc: The ValueError exception.

    Returns:
        JSONResponse with 400 status and ErrorResponse body.
    """
    error_message = str(exc) if exc.args else ""
    error_response = ErrorResponse(detail=error_message)
    return JSONResponse(status_code=400, content=error_response.model_dump(exclude_none=True))


async def _lookup_error_handler(request: Request, exc: LookupError) -> JSONResponse:
    """Handle LookupError exceptions (unknown worker ids, jobs, circuits).

    Args:
        request: The request that caused the exception.
        exc: The LookupError exception.

    Returns:
        JSONResponse with 404 status and ErrorResponse body.
    """
    # Extract the actual message from exc.args to avoid KeyError quote wrapping
    if exc.args and exc.args[0]:
        error_message = str(exc.args[0])
    else:
        error_message = "Not found"
    error_response = ErrorResponse(detail=error_message)
    return JSONResponse(status_code=404, content=error_response.model_dump(exclude_none=True))


async def _generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all unhandled exceptions.

    Args:
        request: The request that caused the exception.
        exc: The exception.

    Returns:
        JSONResponse with 500 status and sanitized error message.
    """
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    # Sanitized response - never leak internal error details
    error_response = ErrorResponse(detail="Internal server error")
    return JSONResponse(status_code=500, content=error_response.model_dump(exclude_none=True))


def register_error_handlers(app: FastAPI) -> None:
    """Register exception handlers for the FastAPI application.

    Args:
        app: The FastAPI application instance.
    """
    app.add_exception_handler(CircuitOpenError, _circuit_open_handler)  # type: ignore[arg-type]
    app.add_exception_handler(BackendUnavailableError, _backend_unavailable_handler)  # type: ignore[arg-type]
    app.add_exception_handler(WorkerCommandError, _worker_command_handler)  # type: ignore[arg-type]
    app.add_exception_handler(InvalidJobStateError, _invalid_job_state_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ValueError, _value_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(LookupError, _lookup_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
